from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = [
    "ensure_working_dir_structure",
    "get_cache_dir",
    "get_catalog_cache_dir",
    "get_data_dir",
    "get_default_settings_paths",
    "get_images_dir",
    "get_library_db_path",
    "get_logs_dir",
    "resolve_working_dir",
]

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def _ensure_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    test_file = path / f".write_test_{os.getpid()}"
    try:
        with open(test_file, "w", encoding="utf-8") as handle:
            handle.write("ok")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        try:
            if test_file.exists():
                test_file.unlink()
        except OSError:  # pragma: no cover - cleanup
            pass
        return False


def _prepare_working_dir(candidate: Path) -> Optional[Path]:
    if not _ensure_writable_dir(candidate):
        return None
    try:
        (candidate / "data").mkdir(parents=True, exist_ok=True)
        return candidate
    except OSError:
        return None


def _read_settings(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
        if isinstance(data, dict):
            return data
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        return None
    return None


def resolve_working_dir() -> Path:
    """Resolve the medialib working directory, creating it if required."""

    env_home = os.environ.get("MEDIALIB_HOME")
    if env_home:
        try:
            env_path: Optional[Path] = _expand_path(env_home)
        except (OSError, RuntimeError):
            env_path = None
        if env_path:
            prepared = _prepare_working_dir(env_path)
            if prepared is not None:
                return prepared

    project_settings = _read_settings(_PROJECT_ROOT / "settings.json")
    if project_settings:
        working_dir_value = project_settings.get("working_dir")
        if isinstance(working_dir_value, str) and working_dir_value.strip():
            try:
                candidate = _expand_path(working_dir_value)
            except (OSError, RuntimeError):
                candidate = None
            if candidate is not None:
                prepared = _prepare_working_dir(candidate)
                if prepared is not None:
                    return prepared

    fallback = Path.home() / ".medialib"
    fallback.mkdir(parents=True, exist_ok=True)
    (fallback / "data").mkdir(parents=True, exist_ok=True)
    return fallback


def get_data_dir(working_dir: Path) -> Path:
    return working_dir / "data"


def get_library_db_path(working_dir: Path) -> Path:
    return get_data_dir(working_dir) / "library.db"


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def get_cache_dir(working_dir: Path) -> Path:
    return working_dir / "cache"


def get_images_dir(working_dir: Path) -> Path:
    return get_cache_dir(working_dir) / "images"


def get_catalog_cache_dir(working_dir: Path) -> Path:
    return get_cache_dir(working_dir) / "catalog"


def ensure_working_dir_structure(working_dir: Path) -> None:
    for directory in (
        working_dir,
        get_data_dir(working_dir),
        get_logs_dir(working_dir),
        get_cache_dir(working_dir),
        get_images_dir(working_dir),
        get_catalog_cache_dir(working_dir),
    ):
        directory.mkdir(parents=True, exist_ok=True)


def get_default_settings_paths(working_dir: Path) -> list[Path]:
    """Return the search order for settings.json files."""

    return [working_dir / "settings.json", _PROJECT_ROOT / "settings.json"]
