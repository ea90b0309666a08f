from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping


_ALLOWED_STRUCTURE: Dict[str, Any] = {
    "scanner": {
        "enabled",
        "scan_on_startup",
        "quick_scan_interval_minutes",
        "full_scan_interval_hours",
        "missing_thumbnail_check_minutes",
        "retry_failed_thumbnails",
        "unmatched_retry_minutes",
        "fetch_episode_metadata",
        "probe_timeout_s",
        "video_extensions",
    },
    "catalog": {
        "enabled",
        "url",
        "max_age_days",
        "download_timeout_s",
        "min_score",
        "max_year_diff",
    },
    "metadata": {
        "timeout_s": None,
        "tmdb": {"api_key", "lang"},
        "anidb": {"client", "client_ver"},
        "rate_limits_ms": "*",
    },
    "queues": "*",
    "api": "*",
    "libraries": None,
    "working_dir": None,
    "version": None,
}


@dataclass(slots=True)
class SettingsValidator:
    schema: Mapping[str, Any]

    def unknown_keys(self, payload: Mapping[str, Any]) -> Iterable[str]:
        return sorted(self._iter_unknown(payload, self.schema, path=""))

    def _iter_unknown(self, payload: Mapping[str, Any], schema: Mapping[str, Any], *, path: str) -> Iterable[str]:
        for key, value in payload.items():
            if key not in schema:
                yield f"{path}{key}"
                continue
            rule = schema[key]
            if rule is None or rule == "*":
                continue
            if isinstance(rule, set):
                if not isinstance(value, Mapping):
                    continue
                for sub in value.keys():
                    if sub not in rule:
                        yield f"{path}{key}.{sub}"
                continue
            if isinstance(rule, Mapping) and isinstance(value, Mapping):
                yield from self._iter_unknown(value, rule, path=f"{path}{key}.")


SETTINGS_VALIDATOR = SettingsValidator(_ALLOWED_STRUCTURE)

__all__ = ["SETTINGS_VALIDATOR", "SettingsValidator"]
