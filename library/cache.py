from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from metadata.types import PROVIDER_ID_PRIORITY, UnifiedMetadata

from .store import LibraryStore

LOGGER = logging.getLogger("medialib.library.cache")


class SeriesCache:
    """Per-pass index of ``provider:id`` keys to series item ids."""

    def __init__(self) -> None:
        self._by_provider: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._by_provider)

    @classmethod
    def build(cls, store: LibraryStore, library_id: str) -> "SeriesCache":
        cache = cls()
        rows = store.series_rows(library_id)
        for row in rows:
            cache.add(
                row["id"],
                {provider: row[f"{provider}_id"] for provider in PROVIDER_ID_PRIORITY},
            )
        LOGGER.info("Pre-cached %d existing series for library %s", len(rows), library_id)
        return cache

    def add(self, series_id: str, ids: Mapping[str, Optional[str]]) -> None:
        # the oldest series keeps a key once it is taken
        for provider in PROVIDER_ID_PRIORITY:
            value = ids.get(provider)
            if value:
                self._by_provider.setdefault(f"{provider}:{value}", series_id)

    def find(self, metadata: UnifiedMetadata) -> Optional[str]:
        ids = metadata.provider_ids()
        for provider in PROVIDER_ID_PRIORITY:
            value = ids.get(provider)
            if not value:
                continue
            series_id = self._by_provider.get(f"{provider}:{value}")
            if series_id is not None:
                return series_id
        return None


__all__ = ["SeriesCache"]
