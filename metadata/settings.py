from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

DEFAULT_RATE_LIMITS_MS: Dict[str, int] = {
    "anilist": 700,
    "jikan": 350,
    "anidb": 2000,
    "tmdb": 250,
}


@dataclass(slots=True)
class MetadataSettings:
    timeout_s: float = 30.0
    tmdb_api_key: Optional[str] = None
    tmdb_lang: str = "en-US"
    anidb_client: str = "medialib"
    anidb_client_ver: int = 1
    rate_limits_ms: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_RATE_LIMITS_MS))
    fetch_episode_metadata: bool = True

    @property
    def tmdb_enabled(self) -> bool:
        return bool(self.tmdb_api_key)

    def min_interval_s(self, provider: str) -> float:
        return self.rate_limits_ms.get(provider, 0) / 1000.0


def load_metadata_settings(
    data: Mapping[str, object],
    *,
    env: Optional[Mapping[str, str]] = None,
) -> MetadataSettings:
    """Build :class:`MetadataSettings` from the ``metadata`` settings section.

    ``TMDB_API_KEY`` in *env* wins over a configured key; malformed values
    keep their defaults.
    """

    section = data.get("metadata") if isinstance(data, Mapping) else None
    if not isinstance(section, Mapping):
        section = {}
    settings = MetadataSettings()
    try:
        settings.timeout_s = max(1.0, float(section.get("timeout_s", settings.timeout_s)))
    except (TypeError, ValueError):
        pass

    tmdb_section = section.get("tmdb")
    if isinstance(tmdb_section, Mapping):
        api_key = tmdb_section.get("api_key")
        if isinstance(api_key, str) and api_key.strip():
            settings.tmdb_api_key = api_key.strip()
        lang = tmdb_section.get("lang")
        if isinstance(lang, str) and lang.strip():
            settings.tmdb_lang = lang.strip()
    if env is not None:
        env_key = env.get("TMDB_API_KEY")
        if env_key and env_key.strip():
            settings.tmdb_api_key = env_key.strip()

    anidb_section = section.get("anidb")
    if isinstance(anidb_section, Mapping):
        client = anidb_section.get("client")
        if isinstance(client, str) and client.strip():
            settings.anidb_client = client.strip()
        try:
            settings.anidb_client_ver = int(anidb_section.get("client_ver", settings.anidb_client_ver))
        except (TypeError, ValueError):
            pass

    limits = section.get("rate_limits_ms")
    if isinstance(limits, Mapping):
        for provider, value in limits.items():
            try:
                settings.rate_limits_ms[str(provider)] = max(0, int(value))
            except (TypeError, ValueError):
                continue

    scanner = data.get("scanner") if isinstance(data, Mapping) else None
    if isinstance(scanner, Mapping) and "fetch_episode_metadata" in scanner:
        settings.fetch_episode_metadata = bool(scanner.get("fetch_episode_metadata"))
    return settings


__all__ = ["DEFAULT_RATE_LIMITS_MS", "MetadataSettings", "load_metadata_settings"]
