"""Fetch and cache the anime-offline-database JSON dump."""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .entries import CatalogEntry, parse_catalog_payload

LOGGER = logging.getLogger("medialib.catalog.download")

DEFAULT_DATABASE_URL = (
    "https://github.com/manami-project/anime-offline-database/releases/latest/download/"
    "anime-offline-database-minified.json"
)
CACHE_FILENAME = "anime-offline-database.json"


class CatalogUnavailable(RuntimeError):
    """Raised when neither a fresh download nor a cached dump is usable."""


@dataclass(slots=True)
class CatalogSettings:
    enabled: bool = False
    url: str = DEFAULT_DATABASE_URL
    max_age_days: float = 7.0
    download_timeout_s: float = 120.0
    min_score: float = 60.0
    max_year_diff: int = 5


def load_catalog_settings(data: Dict[str, object], *, env: Optional[Dict[str, str]] = None) -> CatalogSettings:
    section = data.get("catalog") if isinstance(data, dict) else None
    if not isinstance(section, dict):
        section = {}
    settings = CatalogSettings()
    settings.enabled = bool(section.get("enabled", settings.enabled))
    if env is not None and "ENABLE_ANIME_DB" in env:
        settings.enabled = env["ENABLE_ANIME_DB"].strip().lower() in {"true", "1"}
    url = section.get("url")
    if isinstance(url, str) and url.strip():
        settings.url = url.strip()
    try:
        settings.max_age_days = max(0.0, float(section.get("max_age_days", settings.max_age_days)))
    except (TypeError, ValueError):
        pass
    try:
        settings.download_timeout_s = float(section.get("download_timeout_s", settings.download_timeout_s))
    except (TypeError, ValueError):
        pass
    try:
        settings.min_score = float(section.get("min_score", settings.min_score))
    except (TypeError, ValueError):
        pass
    try:
        settings.max_year_diff = int(section.get("max_year_diff", settings.max_year_diff))
    except (TypeError, ValueError):
        pass
    return settings


def _read_cached(path: Path) -> List[CatalogEntry]:
    with open(path, "r", encoding="utf-8") as handle:
        payload: Any = json.load(handle)
    return parse_catalog_payload(payload)


def _is_fresh(path: Path, max_age_days: float) -> bool:
    try:
        age_s = time.time() - path.stat().st_mtime
    except OSError:
        return False
    return age_s < max_age_days * 86400.0


def download_catalog(url: str, target: Path, *, timeout: float) -> List[CatalogEntry]:
    LOGGER.info("Downloading anime offline database from %s", url)
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    payload = response.json()
    entries = parse_catalog_payload(payload)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_suffix(".tmp")
    tmp_path.write_bytes(response.content)
    tmp_path.replace(target)
    LOGGER.info("Anime offline database saved (%d entries)", len(entries))
    return entries


def load_or_download(cache_dir: Path, settings: CatalogSettings) -> List[CatalogEntry]:
    """Return catalog entries, refreshing the cached dump when it is stale."""

    cache_path = cache_dir / CACHE_FILENAME
    if cache_path.exists() and _is_fresh(cache_path, settings.max_age_days):
        try:
            return _read_cached(cache_path)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Cached anime database unreadable, downloading again: %s", exc)
    try:
        return download_catalog(settings.url, cache_path, timeout=settings.download_timeout_s)
    except (requests.RequestException, ValueError, OSError) as exc:
        if cache_path.exists():
            LOGGER.warning("Anime database download failed (%s); using stale cache", exc)
            try:
                return _read_cached(cache_path)
            except (OSError, ValueError) as cache_exc:
                raise CatalogUnavailable(f"cached anime database unreadable: {cache_exc}") from exc
        raise CatalogUnavailable(f"anime database download failed: {exc}") from exc


__all__ = [
    "CACHE_FILENAME",
    "CatalogSettings",
    "CatalogUnavailable",
    "DEFAULT_DATABASE_URL",
    "download_catalog",
    "load_catalog_settings",
    "load_or_download",
]
