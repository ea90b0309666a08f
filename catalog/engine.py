"""In-memory fuzzy search over the offline anime catalog."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .download import CatalogSettings, CatalogUnavailable, load_or_download
from .entries import CatalogEntry
from .locks import ReadWriteLock
from .similarity import MIN_SCORE, calculate_match_score

LOGGER = logging.getLogger("medialib.catalog")

MAX_RESULTS = 10
FULL_SCAN_THRESHOLD = 5
LOAD_RETRY_BACKOFF_S = 600.0

CatalogLoader = Callable[[Path, CatalogSettings], Sequence[CatalogEntry]]


@dataclass(slots=True, frozen=True)
class CatalogMatch:
    entry: CatalogEntry
    score: float


@dataclass(slots=True, frozen=True)
class CatalogSnapshot:
    """Immutable entries plus the title index built from them."""

    entries: Tuple[CatalogEntry, ...] = ()
    index: Mapping[str, Tuple[int, ...]] = field(default_factory=dict)
    loaded: bool = False


EMPTY_SNAPSHOT = CatalogSnapshot()


def build_title_index(entries: Sequence[CatalogEntry]) -> Dict[str, Tuple[int, ...]]:
    """Map every lowercased title and synonym to the entries carrying it."""

    index: Dict[str, List[int]] = {}
    for position, entry in enumerate(entries):
        for name in (entry.title, *entry.synonyms):
            key = name.lower()
            bucket = index.setdefault(key, [])
            if not bucket or bucket[-1] != position:
                bucket.append(position)
    return {key: tuple(value) for key, value in index.items()}


def search_snapshot(
    snapshot: CatalogSnapshot,
    query: str,
    year: Optional[int],
    *,
    min_score: float = MIN_SCORE,
    limit: int = MAX_RESULTS,
) -> List[CatalogMatch]:
    """Run the three-tier lookup against one snapshot.

    Tier 1 is an exact index hit, tier 2 is bidirectional substring
    containment over every index key and tier 3 is a linear scan of all
    entries that only runs while fewer than five candidates qualified.
    """

    query_lower = query.lower().strip()
    if not query_lower or not snapshot.entries:
        return []
    query_words = query_lower.split()
    entries = snapshot.entries
    results: List[CatalogMatch] = []
    seen: Set[int] = set()

    def consider(position: int) -> None:
        if position in seen or position >= len(entries):
            return
        seen.add(position)
        entry = entries[position]
        score = calculate_match_score(query_lower, query_words, entry, year)
        if score >= min_score:
            results.append(CatalogMatch(entry=entry, score=score))

    for position in snapshot.index.get(query_lower, ()):
        consider(position)

    for key, positions in snapshot.index.items():
        if query_lower in key or key in query_lower:
            for position in positions:
                consider(position)

    if len(results) < FULL_SCAN_THRESHOLD:
        for position in range(len(entries)):
            consider(position)

    results.sort(key=lambda match: match.score, reverse=True)
    return results[:limit]


class AnimeCatalog:
    """Lazily loaded, unloadable catalog guarded by a reader/writer lock."""

    def __init__(
        self,
        cache_dir: Path,
        settings: Optional[CatalogSettings] = None,
        *,
        loader: Optional[CatalogLoader] = None,
    ) -> None:
        self._cache_dir = Path(cache_dir)
        self._settings = settings or CatalogSettings()
        self._loader = loader or load_or_download
        self._lock = ReadWriteLock()
        self._snapshot = EMPTY_SNAPSHOT
        self._retry_after = 0.0

    @classmethod
    def from_entries(
        cls,
        entries: Sequence[CatalogEntry],
        settings: Optional[CatalogSettings] = None,
    ) -> "AnimeCatalog":
        settings = settings or CatalogSettings(enabled=True)
        items = list(entries)
        return cls(Path("."), settings, loader=lambda _cache_dir, _settings: items)

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def settings(self) -> CatalogSettings:
        return self._settings

    @property
    def loaded(self) -> bool:
        with self._lock.read():
            return self._snapshot.loaded

    def ensure_loaded(self) -> bool:
        """Load the dataset if needed; returns whether a usable snapshot exists."""

        if not self.enabled:
            return False
        with self._lock.read():
            if self._snapshot.loaded:
                return True
        with self._lock.write():
            if self._snapshot.loaded:
                return True
            if time.monotonic() < self._retry_after:
                return False
            started = time.perf_counter()
            try:
                entries = tuple(self._loader(self._cache_dir, self._settings))
            except CatalogUnavailable as exc:
                LOGGER.warning("Anime catalog unavailable: %s", exc)
                self._retry_after = time.monotonic() + LOAD_RETRY_BACKOFF_S
                return False
            index = build_title_index(entries)
            self._snapshot = CatalogSnapshot(entries=entries, index=index, loaded=True)
            LOGGER.info(
                "Anime catalog loaded: %d entries, %d index keys (%.1f ms)",
                len(entries),
                len(index),
                (time.perf_counter() - started) * 1000,
            )
            return True

    def unload(self) -> None:
        """Drop the dataset and index; the next lookup reloads transparently."""

        with self._lock.write():
            if not self._snapshot.loaded:
                return
            self._snapshot = EMPTY_SNAPSHOT
            self._retry_after = 0.0
        LOGGER.info("Anime catalog unloaded")

    def search(self, query: str, year: Optional[int] = None, *, limit: int = MAX_RESULTS) -> List[CatalogMatch]:
        if not self.ensure_loaded():
            return []
        with self._lock.read():
            return search_snapshot(
                self._snapshot,
                query,
                year,
                min_score=self._settings.min_score,
                limit=limit,
            )

    def find_by_anilist_id(self, anilist_id: str | int) -> Optional[CatalogEntry]:
        return self._find_by_provider("anilist", anilist_id)

    def find_by_anidb_id(self, anidb_id: str | int) -> Optional[CatalogEntry]:
        return self._find_by_provider("anidb", anidb_id)

    def find_by_mal_id(self, mal_id: str | int) -> Optional[CatalogEntry]:
        return self._find_by_provider("mal", mal_id)

    def _find_by_provider(self, provider: str, value: str | int) -> Optional[CatalogEntry]:
        wanted = str(value).strip()
        if not wanted:
            return None
        if not self.ensure_loaded():
            return None
        with self._lock.read():
            for entry in self._snapshot.entries:
                if entry.provider_ids.get(provider) == wanted:
                    return entry
        return None

    def stats(self) -> Dict[str, object]:
        with self._lock.read():
            snapshot = self._snapshot
        return {
            "enabled": self.enabled,
            "loaded": snapshot.loaded,
            "entries": len(snapshot.entries),
            "index_keys": len(snapshot.index),
        }


__all__ = [
    "AnimeCatalog",
    "CatalogMatch",
    "CatalogSnapshot",
    "EMPTY_SNAPSHOT",
    "build_title_index",
    "search_snapshot",
]
