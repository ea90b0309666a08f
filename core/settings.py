from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .paths import get_default_settings_paths, get_logs_dir
from .settings_schema import SETTINGS_VALIDATOR

__all__ = [
    "DEFAULT_SETTINGS",
    "DEFAULT_VIDEO_EXTENSIONS",
    "SETTINGS_VERSION",
    "load_settings",
    "merge_defaults",
    "save_settings",
    "update_settings",
]

LOGGER = logging.getLogger("medialib.settings")

SETTINGS_VERSION = 1

DEFAULT_VIDEO_EXTENSIONS = [
    "mkv", "mp4", "avi", "mov", "wmv", "flv", "webm", "m4v", "mpg", "mpeg", "ts",
    "m2ts", "mts", "vob", "ogm", "ogv", "divx", "xvid", "rmvb", "rm", "asf", "3gp",
    "3g2", "f4v",
]


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "libraries": [],
    "scanner": {
        "enabled": True,
        "scan_on_startup": True,
        "quick_scan_interval_minutes": 15,
        "full_scan_interval_hours": 0,
        "missing_thumbnail_check_minutes": 60,
        "retry_failed_thumbnails": False,
        "unmatched_retry_minutes": 360,
        "fetch_episode_metadata": True,
        "probe_timeout_s": 30.0,
        "video_extensions": list(DEFAULT_VIDEO_EXTENSIONS),
    },
    "catalog": {
        "enabled": False,
        "url": "https://github.com/manami-project/anime-offline-database/releases/latest/download/anime-offline-database-minified.json",
        "max_age_days": 7,
        "download_timeout_s": 120.0,
        "min_score": 60,
        "max_year_diff": 5,
    },
    "metadata": {
        "timeout_s": 30.0,
        "tmdb": {
            "api_key": None,
            "lang": "en-US",
        },
        "anidb": {
            "client": "medialib",
            "client_ver": 1,
        },
        "rate_limits_ms": {
            "anilist": 700,
            "jikan": 350,
            "anidb": 2000,
            "tmdb": 250,
        },
    },
    "queues": {
        "image_idle_s": 5.0,
        "thumbnail_idle_s": 10.0,
        "image_delay_ms": 100,
        "thumbnail_delay_ms": 200,
        "image_timeout_s": 30.0,
        "thumbnail_width": 480,
    },
    "api": {
        "host": "127.0.0.1",
        "port": 27183,
        "api_key": None,
        "lan_only": True,
        "cors_origins": ["http://localhost", "http://127.0.0.1"],
    },
}


def merge_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    def _merge(default: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, value in default.items():
            if isinstance(value, dict):
                current = payload.get(key)
                if isinstance(current, dict):
                    result[key] = _merge(value, current)
                else:
                    result[key] = _merge(value, {})
            elif isinstance(value, list):
                current = payload.get(key)
                result[key] = list(current) if isinstance(current, list) else list(value)
            else:
                result[key] = payload.get(key, value)
        for key, value in payload.items():
            if key not in result:
                result[key] = value
        return result

    return _merge(DEFAULT_SETTINGS, data or {})


def _apply_migrations(settings: Dict[str, Any]) -> Dict[str, Any]:
    try:
        version = int(settings.get("version") or 0)
    except (TypeError, ValueError):
        version = 0
    if version < SETTINGS_VERSION:
        settings["version"] = SETTINGS_VERSION
    return settings


def _log_unknown_keys(settings: Dict[str, Any], working_dir: Path) -> None:
    unknown = list(SETTINGS_VALIDATOR.unknown_keys(settings))
    if not unknown:
        return
    LOGGER.warning("Ignoring unknown settings keys: %s", ", ".join(unknown))
    logs_dir = get_logs_dir(working_dir)
    target = logs_dir / "settings_unknown.json"
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as handle:
            json.dump({"ts": time.time(), "unknown": unknown}, handle, ensure_ascii=False, indent=2)
    except OSError as exc:
        LOGGER.debug("Cannot write %s: %s", target, exc)


def _read_settings_file(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            loaded = json.load(handle)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return None
    if not isinstance(loaded, dict):
        LOGGER.warning("Ignoring settings file %s: top level is not an object", path)
        return None
    return loaded


def load_settings(working_dir: Path) -> Dict[str, Any]:
    """Return settings from the first readable candidate file, merged over defaults."""

    data: Dict[str, Any] = {}
    for candidate in get_default_settings_paths(working_dir):
        loaded = _read_settings_file(candidate)
        if loaded is not None:
            data = loaded
            break
    merged = _apply_migrations(merge_defaults(data))
    merged.setdefault("working_dir", str(working_dir))
    _log_unknown_keys(merged, working_dir)
    return merged


def save_settings(settings: Dict[str, Any], working_dir: Path) -> None:
    merged = _apply_migrations(merge_defaults(dict(settings)))
    merged.setdefault("working_dir", str(working_dir))
    path = working_dir / "settings.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".json.tmp")
    with open(tmp_path, "w", encoding="utf-8") as handle:
        json.dump(merged, handle, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)


def update_settings(working_dir: Path, **values: Any) -> None:
    current = load_settings(working_dir)
    current.update(values)
    save_settings(current, working_dir)
