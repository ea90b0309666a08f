"""Folder skip rules and the recursive video collector used by every scan mode."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set

from naming.parser import is_video_file

from .types import ScanError

LOGGER = logging.getLogger("medialib.library.rules")

IGNORE_MARKER = ".ignore"

SKIP_FOLDER_NAMES = frozenset(
    {
        "nced",
        "ncop",
        "nc",
        "creditless",
        "extras",
        "extra",
        "bonus",
        "specials",
        "behind the scenes",
        "deleted scenes",
        "interviews",
        "scenes",
        "shorts",
        "trailers",
        "featurettes",
        "other",
        "sample",
        "samples",
        ".unwatched",
    }
)

SKIP_FOLDER_SUFFIXES = (
    " - nced",
    " - ncop",
    " - nc",
    " - ending",
    " - opening",
    " - op",
    " - ed",
    " nced",
    " ncop",
    "-nced",
    "-ncop",
    "_nced",
    "_ncop",
    " creditless",
    " textless",
    " - ova",
    " - special",
    " - specials",
    " - extra",
    " - extras",
    " battle stage",
    " extra stage",
)

_SKIP_FOLDER_PREFIXES = ("ncop", "nced")
_SKIP_FOLDER_MARKERS = ("creditless", "textless")
_BRACKET_ONLY_MAX_LEN = 30


def should_skip_folder(folder_name: str) -> bool:
    """True for opening/ending, extras and bare release-group folders."""

    lowered = folder_name.lower()
    if lowered in SKIP_FOLDER_NAMES:
        return True
    if lowered.startswith(_SKIP_FOLDER_PREFIXES):
        return True
    if lowered.endswith(SKIP_FOLDER_SUFFIXES):
        return True
    if any(marker in lowered for marker in _SKIP_FOLDER_MARKERS):
        return True
    # "[SubGroup]" style folders with no show name
    if lowered.startswith("[") and " - " not in lowered and len(lowered) < _BRACKET_ONLY_MAX_LEN:
        return True
    return False


def has_ignore_marker(path: Path, *, stop_at: Optional[Path] = None) -> bool:
    """Look for an ``.ignore`` file in *path* or any of its ancestors."""

    current = Path(path)
    for candidate in (current, *current.parents):
        try:
            if (candidate / IGNORE_MARKER).exists():
                return True
        except OSError:
            pass
        if stop_at is not None and candidate == stop_at:
            break
    return False


def iter_directory(path: Path) -> Iterator[os.DirEntry[str]]:
    """Sorted directory entries; raises :class:`ScanError` when *path* is unreadable."""

    try:
        with os.scandir(path) as handle:
            entries = sorted(handle, key=lambda entry: entry.name)
    except OSError as exc:
        raise ScanError(f"cannot read directory {path}: {exc}") from exc
    yield from entries


def _is_dir(entry: os.DirEntry[str]) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False


def _is_file(entry: os.DirEntry[str]) -> bool:
    try:
        return entry.is_file()
    except OSError:
        return False


def collect_video_files(
    path: Path,
    extensions: Iterable[str],
    *,
    visited: Optional[Set[Path]] = None,
) -> List[Path]:
    """Recursively gather video files under *path*.

    Symlinks are followed; a directory whose resolved path was already
    visited is skipped so link loops terminate. Skip-rule folders and
    ``.ignore`` subtrees are pruned. Unreadable directories are logged and
    contribute nothing.
    """

    extensions = tuple(extensions)
    visited = set() if visited is None else visited
    files: List[Path] = []
    stack = [Path(path)]
    while stack:
        current = stack.pop()
        try:
            canonical = current.resolve(strict=True)
        except (OSError, RuntimeError) as exc:
            LOGGER.warning("Cannot resolve path %s: %s", current, exc)
            continue
        if canonical in visited:
            LOGGER.warning("Symlink loop detected, skipping %s", current)
            continue
        visited.add(canonical)
        try:
            entries = list(iter_directory(current))
        except ScanError as exc:
            LOGGER.warning("%s", exc)
            continue
        subdirs: List[Path] = []
        for entry in entries:
            entry_path = Path(entry.path)
            if _is_file(entry):
                if is_video_file(entry.name, extensions):
                    files.append(entry_path)
            elif _is_dir(entry):
                if should_skip_folder(entry.name):
                    continue
                if (entry_path / IGNORE_MARKER).exists():
                    continue
                subdirs.append(entry_path)
        stack.extend(reversed(subdirs))
    files.sort()
    return files


def ensure_readable_root(path: Path) -> None:
    if not path.is_dir():
        raise ScanError(f"library path is not a directory: {path}")
    if not os.access(path, os.R_OK | os.X_OK):
        raise ScanError(f"library path is not readable: {path}")


__all__ = [
    "IGNORE_MARKER",
    "SKIP_FOLDER_NAMES",
    "SKIP_FOLDER_SUFFIXES",
    "collect_video_files",
    "ensure_readable_root",
    "has_ignore_marker",
    "iter_directory",
    "should_skip_folder",
]
