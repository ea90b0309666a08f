"""Follow-up passes that fill gaps left by earlier scans."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from metadata.resolver import MetadataResolver
from metadata.types import UnifiedMetadata
from naming.classify import MOVIE, classify
from naming.parser import extract_year

from .store import LibraryStore
from .types import ITEM_MOVIE, ITEM_SERIES, MissingMetadataResult

LOGGER = logging.getLogger("medialib.library.enrich")

ApplyFunc = Callable[[str, UnifiedMetadata], None]
ProbeFunc = Callable[[Path], Optional[int]]


async def scan_missing_metadata(
    store: LibraryStore,
    resolver: MetadataResolver,
    apply: ApplyFunc,
    library_id: Optional[str] = None,
) -> MissingMetadataResult:
    """Re-resolve series and movies that lack an overview or a Primary image."""

    result = MissingMetadataResult()

    series_rows = store.items_missing_metadata(ITEM_SERIES, library_id)
    LOGGER.info("Found %d series missing metadata", len(series_rows))
    for row in series_rows:
        result.series_scanned += 1
        title, folder_year = extract_year(row["name"])
        metadata = await resolver.resolve(title or row["name"], row["year"] or folder_year, classify(row["name"]))
        if metadata is None:
            LOGGER.debug("No metadata found for series %s", row["name"])
            continue
        apply(row["id"], metadata)
        store.clear_unmatched(row["id"])
        result.series_updated += 1

    movie_rows = store.items_missing_metadata(ITEM_MOVIE, library_id)
    LOGGER.info("Found %d movies missing metadata", len(movie_rows))
    for row in movie_rows:
        result.movies_scanned += 1
        metadata = await resolver.resolve(row["name"], row["year"], MOVIE)
        if metadata is None:
            LOGGER.debug("No metadata found for movie %s", row["name"])
            continue
        apply(row["id"], metadata)
        result.movies_updated += 1

    LOGGER.info(
        "Missing metadata scan complete: %d/%d series, %d/%d movies updated",
        result.series_updated,
        result.series_scanned,
        result.movies_updated,
        result.movies_scanned,
    )
    return result


async def update_missing_media_info(store: LibraryStore, probe: ProbeFunc) -> int:
    """Probe items whose runtime is still unknown; returns how many were filled."""

    rows = store.items_missing_runtime()
    LOGGER.info("Updating media info for %d items", len(rows))
    updated = 0
    for row in rows:
        try:
            ticks = await asyncio.to_thread(probe, Path(row["path"]))
        except Exception as exc:
            LOGGER.warning("Failed to extract media info for %s: %s", row["path"], exc)
            continue
        if ticks is None:
            continue
        store.set_runtime(row["id"], ticks)
        updated += 1
    LOGGER.info("Updated media info for %d items", updated)
    return updated


async def retry_unmatched(store: LibraryStore, resolver: MetadataResolver, apply: ApplyFunc) -> int:
    """Retry unmatched series that still have attempts left; returns the number matched."""

    matched = 0
    records = store.unmatched_for_retry()
    if records:
        LOGGER.info("Retrying metadata for %d unmatched series", len(records))
    for record in records:
        title = record.attempted_title
        year = record.attempted_year
        if not title:
            title, year = extract_year(record.folder_name)
        metadata = await resolver.resolve(title or record.folder_name, year, classify(record.folder_name))
        if metadata is None:
            store.mark_unmatched(
                record.library_id,
                record.series_id,
                record.folder_name,
                title,
                year,
                "No metadata match found on retry",
            )
            continue
        apply(record.series_id, metadata)
        store.clear_unmatched(record.series_id)
        matched += 1
        LOGGER.info("Matched previously unmatched series %s via %s", record.folder_name, metadata.provider)
    return matched


__all__ = ["retry_unmatched", "scan_missing_metadata", "update_missing_media_info"]
