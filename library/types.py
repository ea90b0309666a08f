from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

LibraryKind = Literal["episodic", "movie"]

EPISODIC: LibraryKind = "episodic"
MOVIE_LIBRARY: LibraryKind = "movie"

ITEM_SERIES = "Series"
ITEM_EPISODE = "Episode"
ITEM_MOVIE = "Movie"

IMAGE_PRIMARY = "Primary"
IMAGE_BACKDROP = "Backdrop"

_KIND_ALIASES = {
    "episodic": EPISODIC,
    "tvshows": EPISODIC,
    "tvshow": EPISODIC,
    "series": EPISODIC,
    "anime": EPISODIC,
    "movie": MOVIE_LIBRARY,
    "movies": MOVIE_LIBRARY,
}


class ScanError(RuntimeError):
    """Raised when a library root cannot be read."""


@dataclass(slots=True, frozen=True)
class LibraryRoot:
    id: str
    name: str
    path: Path
    kind: LibraryKind = EPISODIC

    @property
    def is_movie_library(self) -> bool:
        return self.kind == MOVIE_LIBRARY


def library_id_for_path(path: str | Path) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, str(Path(path).expanduser())))


def library_from_mapping(payload: Mapping[str, Any]) -> Optional[LibraryRoot]:
    """Build a :class:`LibraryRoot` from a ``libraries`` settings entry."""

    raw_path = payload.get("path")
    if not isinstance(raw_path, str) or not raw_path.strip():
        return None
    path = Path(raw_path.strip()).expanduser()
    raw_kind = str(payload.get("kind") or payload.get("type") or EPISODIC).strip().lower()
    kind = _KIND_ALIASES.get(raw_kind)
    if kind is None:
        return None
    library_id = payload.get("id")
    name = payload.get("name")
    return LibraryRoot(
        id=str(library_id) if library_id else library_id_for_path(path),
        name=str(name) if name else path.name or str(path),
        path=path,
        kind=kind,
    )


def load_libraries(settings: Mapping[str, Any]) -> List[LibraryRoot]:
    entries = settings.get("libraries") if isinstance(settings, Mapping) else None
    if not isinstance(entries, list):
        return []
    libraries: List[LibraryRoot] = []
    for entry in entries:
        if isinstance(entry, Mapping):
            library = library_from_mapping(entry)
            if library is not None:
                libraries.append(library)
    return libraries


@dataclass(slots=True)
class ScanResult:
    series_added: int = 0
    series_reused: int = 0
    episodes_added: int = 0
    episodes_from_existing_series: int = 0
    movies_added: int = 0
    errors: int = 0

    def merge(self, other: "ScanResult") -> None:
        self.series_added += other.series_added
        self.series_reused += other.series_reused
        self.episodes_added += other.episodes_added
        self.episodes_from_existing_series += other.episodes_from_existing_series
        self.movies_added += other.movies_added
        self.errors += other.errors

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class QuickScanResult:
    files_added: int = 0
    files_removed: int = 0
    libraries_scanned: int = 0
    errors: int = 0

    def merge(self, other: "QuickScanResult") -> None:
        self.files_added += other.files_added
        self.files_removed += other.files_removed
        self.libraries_scanned += other.libraries_scanned
        self.errors += other.errors

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class MissingMetadataResult:
    series_scanned: int = 0
    series_updated: int = 0
    movies_scanned: int = 0
    movies_updated: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class UnmatchedSeries:
    series_id: str
    library_id: str
    folder_name: str
    attempted_title: Optional[str]
    attempted_year: Optional[int]
    attempt_count: int


@dataclass(slots=True)
class MediaItem:
    library_id: str
    item_type: str
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    parent_id: Optional[str] = None
    path: Optional[str] = None
    overview: Optional[str] = None
    year: Optional[int] = None
    runtime_ticks: Optional[int] = None
    premiere_date: Optional[str] = None
    community_rating: Optional[float] = None
    tmdb_id: Optional[str] = None
    imdb_id: Optional[str] = None
    anilist_id: Optional[str] = None
    mal_id: Optional[str] = None
    anidb_id: Optional[str] = None
    kitsu_id: Optional[str] = None
    sort_name: Optional[str] = None
    index_number: Optional[int] = None
    parent_index_number: Optional[int] = None


__all__ = [
    "EPISODIC",
    "IMAGE_BACKDROP",
    "IMAGE_PRIMARY",
    "ITEM_EPISODE",
    "ITEM_MOVIE",
    "ITEM_SERIES",
    "LibraryKind",
    "LibraryRoot",
    "MOVIE_LIBRARY",
    "MediaItem",
    "MissingMetadataResult",
    "QuickScanResult",
    "ScanError",
    "ScanResult",
    "UnmatchedSeries",
    "library_from_mapping",
    "library_id_for_path",
    "load_libraries",
]
