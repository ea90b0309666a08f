"""Library storage, skip rules and scanning."""

from .cache import SeriesCache
from .rules import collect_video_files, has_ignore_marker, should_skip_folder
from .scanner import LibraryScanner
from .schema import ensure_tables
from .settings import ScannerSettings, load_scanner_settings
from .store import LibraryStore
from .types import (
    EPISODIC,
    MOVIE_LIBRARY,
    LibraryRoot,
    MediaItem,
    MissingMetadataResult,
    QuickScanResult,
    ScanError,
    ScanResult,
    UnmatchedSeries,
    load_libraries,
)

__all__ = [
    "EPISODIC",
    "LibraryRoot",
    "LibraryScanner",
    "LibraryStore",
    "MOVIE_LIBRARY",
    "MediaItem",
    "MissingMetadataResult",
    "QuickScanResult",
    "ScanError",
    "ScanResult",
    "ScannerSettings",
    "SeriesCache",
    "UnmatchedSeries",
    "collect_video_files",
    "ensure_tables",
    "has_ignore_marker",
    "load_libraries",
    "load_scanner_settings",
    "should_skip_folder",
]
