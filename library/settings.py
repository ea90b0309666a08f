from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from core.settings import DEFAULT_VIDEO_EXTENSIONS


@dataclass(slots=True)
class ScannerSettings:
    enabled: bool = True
    scan_on_startup: bool = True
    quick_scan_interval_minutes: float = 15.0
    full_scan_interval_hours: float = 0.0
    missing_thumbnail_check_minutes: float = 60.0
    retry_failed_thumbnails: bool = False
    unmatched_retry_minutes: float = 360.0
    fetch_episode_metadata: bool = True
    probe_timeout_s: float = 30.0
    video_extensions: List[str] = field(default_factory=lambda: list(DEFAULT_VIDEO_EXTENSIONS))


def _float_option(section: Mapping[str, object], key: str, default: float) -> float:
    try:
        return max(0.0, float(section.get(key, default)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def load_scanner_settings(data: Mapping[str, object]) -> ScannerSettings:
    section: Optional[object] = data.get("scanner") if isinstance(data, Mapping) else None
    if not isinstance(section, Mapping):
        section = {}
    settings = ScannerSettings()
    settings.enabled = bool(section.get("enabled", settings.enabled))
    settings.scan_on_startup = bool(section.get("scan_on_startup", settings.scan_on_startup))
    settings.retry_failed_thumbnails = bool(section.get("retry_failed_thumbnails", settings.retry_failed_thumbnails))
    settings.fetch_episode_metadata = bool(section.get("fetch_episode_metadata", settings.fetch_episode_metadata))
    settings.quick_scan_interval_minutes = _float_option(
        section, "quick_scan_interval_minutes", settings.quick_scan_interval_minutes
    )
    settings.full_scan_interval_hours = _float_option(section, "full_scan_interval_hours", settings.full_scan_interval_hours)
    settings.missing_thumbnail_check_minutes = _float_option(
        section, "missing_thumbnail_check_minutes", settings.missing_thumbnail_check_minutes
    )
    settings.unmatched_retry_minutes = _float_option(section, "unmatched_retry_minutes", settings.unmatched_retry_minutes)
    settings.probe_timeout_s = _float_option(section, "probe_timeout_s", settings.probe_timeout_s) or 30.0
    extensions = section.get("video_extensions")
    if isinstance(extensions, list):
        cleaned = [str(ext).strip().lower().lstrip(".") for ext in extensions if str(ext).strip()]
        if cleaned:
            settings.video_extensions = cleaned
    return settings


__all__ = ["ScannerSettings", "load_scanner_settings"]
