"""Library scanning: full passes, refreshes and incremental quick scans.

Episodic libraries treat every top-level directory as one series and every
video below it as an episode of that series. Movie libraries treat every
video as a movie. Metadata lookups, ffprobe and directory walking run off
the event loop; database writes go straight through :class:`LibraryStore`.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

from mediaprobe.ffprobe import probe_runtime_ticks
from metadata.resolver import MetadataResolver
from metadata.types import UnifiedMetadata
from naming.classify import MOVIE, classify
from naming.parser import extract_year, is_video_file, parse_episode, parse_movie

from . import enrich
from .cache import SeriesCache
from .rules import collect_video_files, ensure_readable_root, has_ignore_marker, iter_directory, should_skip_folder
from .settings import ScannerSettings
from .store import LibraryStore, item_from_metadata
from .types import (
    IMAGE_BACKDROP,
    IMAGE_PRIMARY,
    ITEM_EPISODE,
    ITEM_MOVIE,
    ITEM_SERIES,
    LibraryRoot,
    MediaItem,
    MissingMetadataResult,
    QuickScanResult,
    ScanError,
    ScanResult,
)

LOGGER = logging.getLogger("medialib.library.scanner")

UNMATCHED_REASON = "No metadata match found"

ProbeFunc = Callable[[Path], Optional[int]]


@dataclass(slots=True)
class SeriesHandle:
    id: str
    metadata: Optional[UnifiedMetadata]
    created: bool


def _row_metadata(row) -> Optional[UnifiedMetadata]:
    metadata = UnifiedMetadata(
        anilist_id=row["anilist_id"],
        mal_id=row["mal_id"],
        anidb_id=row["anidb_id"],
        tmdb_id=row["tmdb_id"],
        name=row["name"],
        overview=row["overview"],
    )
    if not metadata.provider_ids() and not metadata.overview:
        return None
    return metadata


def _is_richer(new: UnifiedMetadata, row, *, has_poster: bool) -> bool:
    return bool(
        (new.overview and not row["overview"])
        or (new.poster_url and not has_poster)
        or (new.anilist_id and not row["anilist_id"])
        or (new.mal_id and not row["mal_id"])
    )


class LibraryScanner:
    def __init__(
        self,
        store: LibraryStore,
        resolver: Optional[MetadataResolver],
        *,
        image_queue,
        thumbnail_queue,
        settings: Optional[ScannerSettings] = None,
        probe: Optional[ProbeFunc] = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.image_queue = image_queue
        self.thumbnail_queue = thumbnail_queue
        self.settings = settings or ScannerSettings()
        self._probe = probe or self._default_probe
        self._lock: Optional[asyncio.Lock] = None

    def _default_probe(self, path: Path) -> Optional[int]:
        return probe_runtime_ticks(path, timeout=self.settings.probe_timeout_s)

    @property
    def busy(self) -> bool:
        return self._lock is not None and self._lock.locked()

    @asynccontextmanager
    async def _pass(self, *, load_catalog: bool = True) -> AsyncIterator[None]:
        """Serialize passes and keep the catalog loaded for their duration."""

        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if load_catalog and self.resolver is not None:
                await self.resolver.preload_catalog()
            try:
                yield
            finally:
                if load_catalog and self.resolver is not None:
                    self.resolver.unload_catalog()

    # public entry points

    async def scan_library(self, library: LibraryRoot) -> ScanResult:
        async with self._pass():
            return await self._scan_library(library)

    async def scan_all_libraries(self) -> ScanResult:
        total = ScanResult()
        async with self._pass():
            for library in self.store.list_libraries():
                try:
                    total.merge(await self._scan_library(library))
                except ScanError as exc:
                    LOGGER.warning("Skipping library %s: %s", library.name, exc)
                    total.errors += 1
        return total

    async def refresh_library(self, library: LibraryRoot) -> ScanResult:
        async with self._pass():
            return await self._refresh_library(library)

    async def refresh_all_libraries(self) -> ScanResult:
        total = ScanResult()
        async with self._pass():
            for library in self.store.list_libraries():
                try:
                    total.merge(await self._refresh_library(library))
                except ScanError as exc:
                    LOGGER.warning("Skipping library %s: %s", library.name, exc)
                    total.errors += 1
        return total

    async def quick_scan_library(self, library: LibraryRoot) -> QuickScanResult:
        async with self._pass():
            return await self._quick_scan_library(library)

    async def quick_scan_all_libraries(self) -> QuickScanResult:
        total = QuickScanResult()
        async with self._pass():
            for library in self.store.list_libraries():
                try:
                    total.merge(await self._quick_scan_library(library))
                except ScanError as exc:
                    LOGGER.warning("Skipping library %s: %s", library.name, exc)
                    total.errors += 1
        return total

    async def scan_missing_metadata(self, library_id: Optional[str] = None) -> MissingMetadataResult:
        if self.resolver is None:
            return MissingMetadataResult()
        async with self._pass():
            return await enrich.scan_missing_metadata(self.store, self.resolver, self.apply_metadata, library_id)

    async def update_missing_media_info(self) -> int:
        async with self._pass(load_catalog=False):
            return await enrich.update_missing_media_info(self.store, self._probe)

    async def retry_unmatched(self) -> int:
        if self.resolver is None:
            return 0
        async with self._pass():
            return await enrich.retry_unmatched(self.store, self.resolver, self.apply_metadata)

    # full scan

    async def _refresh_library(self, library: LibraryRoot) -> ScanResult:
        await asyncio.to_thread(ensure_readable_root, library.path)
        removed = self.store.delete_library_items(library.id)
        LOGGER.info("Cleared %d items from library %s before refresh", removed, library.name)
        return await self._scan_library(library)

    async def _scan_library(self, library: LibraryRoot) -> ScanResult:
        await asyncio.to_thread(ensure_readable_root, library.path)
        self.store.upsert_library(library)
        LOGGER.info("Scanning library %s at %s", library.name, library.path)
        result = ScanResult()
        if library.is_movie_library:
            await self._scan_movie_library(library, result)
        else:
            cache = SeriesCache.build(self.store, library.id)
            await self._scan_episodic_library(library, result, cache)
        LOGGER.info("Scan of %s complete: %s", library.name, result.to_dict())
        return result

    async def _scan_episodic_library(self, library: LibraryRoot, result: ScanResult, cache: SeriesCache) -> None:
        entries = await asyncio.to_thread(lambda: list(iter_directory(library.path)))
        extensions = self.settings.video_extensions
        loose_files: List[Path] = []
        for entry in entries:
            entry_path = Path(entry.path)
            try:
                is_dir = entry.is_dir()
            except OSError as exc:
                LOGGER.warning("Cannot stat %s: %s", entry_path, exc)
                result.errors += 1
                continue
            if not is_dir:
                if is_video_file(entry.name, extensions):
                    loose_files.append(entry_path)
                continue
            if await asyncio.to_thread(has_ignore_marker, entry_path):
                LOGGER.debug("Skipping ignored folder %s", entry.name)
                continue
            if should_skip_folder(entry.name):
                LOGGER.debug("Skipping special folder %s", entry.name)
                continue

            LOGGER.info("Scanning show folder %s", entry.name)
            series = await self._get_or_create_series(library, entry.name, cache)
            if series.created:
                result.series_added += 1
            else:
                result.series_reused += 1
            files = await asyncio.to_thread(collect_video_files, entry_path, extensions)
            await self._add_episodes(library, series, files, result)

        # videos directly under the root are grouped by the show name in their filename
        loose_series: Dict[str, SeriesHandle] = {}
        for file_path in loose_files:
            parsed = parse_episode(file_path.name)
            if parsed is None:
                LOGGER.debug("Unparseable episode filename %s", file_path.name)
                continue
            LOGGER.warning("Episode file in library root, expected a show folder: %s", file_path.name)
            series = loose_series.get(parsed.show_name)
            if series is None:
                series = await self._get_or_create_series(library, parsed.show_name, cache)
                loose_series[parsed.show_name] = series
                if series.created:
                    result.series_added += 1
                else:
                    result.series_reused += 1
            await self._add_episodes(library, series, [file_path], result)

    async def _scan_movie_library(self, library: LibraryRoot, result: ScanResult) -> None:
        files = await asyncio.to_thread(collect_video_files, library.path, self.settings.video_extensions)
        LOGGER.debug("Found %d video files in movie library %s", len(files), library.name)
        for file_path in files:
            path_str = str(file_path)
            existing = self.store.item_id_for_path(path_str)
            if existing is not None:
                self._ensure_thumbnail(existing, path_str)
                continue
            await self._add_movie(library, file_path)
            result.movies_added += 1

    # quick scan

    async def _quick_scan_library(self, library: LibraryRoot) -> QuickScanResult:
        await asyncio.to_thread(ensure_readable_root, library.path)
        self.store.upsert_library(library)
        result = QuickScanResult(libraries_scanned=1)
        known = self.store.paths_for_library(library.id)

        missing = await asyncio.to_thread(lambda: [path for path in known if not Path(path).exists()])
        for path in missing:
            LOGGER.info("Removing missing file from library: %s", path)
            self.store.delete_item(known.pop(path))
            result.files_removed += 1

        if library.is_movie_library:
            files = await asyncio.to_thread(collect_video_files, library.path, self.settings.video_extensions)
            for file_path in files:
                if str(file_path) in known:
                    continue
                await self._add_movie(library, file_path)
                result.files_added += 1
        else:
            result.files_added += await self._quick_scan_episodic(library, set(known))

        if result.files_added or result.files_removed:
            LOGGER.info(
                "Quick scan of %s: %d added, %d removed",
                library.name,
                result.files_added,
                result.files_removed,
            )
        else:
            LOGGER.debug("Quick scan of %s: no changes", library.name)
        return result

    async def _quick_scan_episodic(self, library: LibraryRoot, known: Set[str]) -> int:
        # session map keyed by folder or show name; existing series seeded by stored name
        series_map: Dict[str, SeriesHandle] = {
            row["name"]: SeriesHandle(row["id"], _row_metadata(row), False)
            for row in self.store.series_rows(library.id)
        }
        extensions = self.settings.video_extensions
        added = 0
        entries = await asyncio.to_thread(lambda: list(iter_directory(library.path)))
        for entry in entries:
            entry_path = Path(entry.path)
            try:
                is_dir = entry.is_dir()
            except OSError:
                continue
            if is_dir:
                if should_skip_folder(entry.name) or await asyncio.to_thread(has_ignore_marker, entry_path):
                    continue
                files = await asyncio.to_thread(collect_video_files, entry_path, extensions)
                new_files = [path for path in files if str(path) not in known]
                if not new_files:
                    continue
                series = series_map.get(entry.name)
                if series is None:
                    series = await self._get_or_create_series(library, entry.name, None)
                    series_map[entry.name] = series
                added += await self._add_episodes(library, series, new_files, None, fetch_episode_metadata=False)
            elif is_video_file(entry.name, extensions) and str(entry_path) not in known:
                parsed = parse_episode(entry.name)
                if parsed is None:
                    continue
                series = series_map.get(parsed.show_name)
                if series is None:
                    series = await self._get_or_create_series(library, parsed.show_name, None)
                    series_map[parsed.show_name] = series
                added += await self._add_episodes(library, series, [entry_path], None, fetch_episode_metadata=False)
        return added

    # series

    async def _resolve(self, name: str, year: Optional[int], classification: str) -> Optional[UnifiedMetadata]:
        if self.resolver is None:
            return None
        metadata = await self.resolver.resolve(name, year, classification)
        if metadata is None:
            LOGGER.debug("No metadata match found for %s", name)
        else:
            LOGGER.info("Found metadata via %s for %s -> %s", metadata.provider, name, metadata.name)
        return metadata

    def _queue_images(self, item_id: str, metadata: Optional[UnifiedMetadata]) -> None:
        if metadata is None:
            return
        if metadata.poster_url:
            self.image_queue.enqueue(item_id, IMAGE_PRIMARY, metadata.poster_url)
        if metadata.backdrop_url:
            self.image_queue.enqueue(item_id, IMAGE_BACKDROP, metadata.backdrop_url)

    def apply_metadata(self, item_id: str, metadata: UnifiedMetadata) -> None:
        """COALESCE *metadata* into an existing item, link it and queue its images."""

        self.store.update_item_metadata(item_id, metadata)
        self._queue_images(item_id, metadata)

    async def _get_or_create_series(
        self,
        library: LibraryRoot,
        folder_name: str,
        cache: Optional[SeriesCache],
    ) -> SeriesHandle:
        title, year = extract_year(folder_name)
        metadata = await self._resolve(title or folder_name, year, classify(folder_name))

        if metadata is not None:
            cached = cache.find(metadata) if cache is not None else None
            if cached is not None:
                LOGGER.info("Reusing cached series %s for folder %s", cached, folder_name)
                return SeriesHandle(cached, metadata, False)
            existing = self.store.find_series_by_provider_ids(library.id, metadata.provider_ids())
            if existing is not None:
                LOGGER.info("Reusing series %s for folder %s (provider id match)", existing, folder_name)
                self.apply_metadata(existing, metadata)
                self.store.clear_unmatched(existing)
                if cache is not None:
                    cache.add(existing, metadata.provider_ids())
                return SeriesHandle(existing, metadata, False)

        row = self.store.find_series_by_name(library.id, folder_name)
        if row is not None:
            series_id = row["id"]
            LOGGER.info("Reusing series %s for folder %s (name match)", series_id, folder_name)
            if metadata is not None and _is_richer(
                metadata, row, has_poster=self.store.has_image(series_id, IMAGE_PRIMARY)
            ):
                self.apply_metadata(series_id, metadata)
                self.store.clear_unmatched(series_id)
                if cache is not None:
                    cache.add(series_id, metadata.provider_ids())
                return SeriesHandle(series_id, metadata, False)
            existing_metadata = _row_metadata(row)
            if metadata is None and (existing_metadata is None or not existing_metadata.provider_ids()):
                self.store.mark_unmatched(library.id, series_id, folder_name, title, year, UNMATCHED_REASON)
            return SeriesHandle(series_id, existing_metadata or metadata, False)

        item = item_from_metadata(metadata, library_id=library.id, item_type=ITEM_SERIES, fallback_name=title or folder_name)
        if item.year is None:
            item.year = year
        self.store.insert_item(item)
        if metadata is None:
            self.store.mark_unmatched(library.id, item.id, folder_name, title, year, UNMATCHED_REASON)
        else:
            self.store.link_metadata(item.id, metadata)
            self._queue_images(item.id, metadata)
            if cache is not None:
                cache.add(item.id, metadata.provider_ids())
        LOGGER.debug("Created series %s (provider: %s)", item.name, metadata.provider if metadata else "none")
        return SeriesHandle(item.id, metadata, True)

    # episodes and movies

    async def _probe_runtime(self, path: Path) -> Optional[int]:
        try:
            return await asyncio.to_thread(self._probe, path)
        except Exception as exc:
            LOGGER.debug("Media probe failed for %s: %s", path, exc)
            return None

    def _ensure_thumbnail(self, item_id: str, path: str) -> None:
        if not self.store.has_image(item_id, IMAGE_PRIMARY):
            self.thumbnail_queue.enqueue(item_id, path)

    async def _add_episodes(
        self,
        library: LibraryRoot,
        series: SeriesHandle,
        files: List[Path],
        result: Optional[ScanResult],
        *,
        fetch_episode_metadata: Optional[bool] = None,
    ) -> int:
        if fetch_episode_metadata is None:
            fetch_episode_metadata = self.settings.fetch_episode_metadata
        added = 0
        for file_path in files:
            parsed = parse_episode(file_path.name)
            if parsed is None:
                LOGGER.debug("Unparseable episode filename %s", file_path.name)
                continue
            path_str = str(file_path)
            existing = self.store.item_id_for_path(path_str)
            if existing is not None:
                self._ensure_thumbnail(existing, path_str)
                continue

            runtime_ticks = await self._probe_runtime(file_path)
            item = MediaItem(
                library_id=library.id,
                item_type=ITEM_EPISODE,
                name=f"Episode {parsed.episode}",
                parent_id=series.id,
                path=path_str,
                runtime_ticks=runtime_ticks,
                index_number=parsed.episode,
                parent_index_number=parsed.season,
            )
            if fetch_episode_metadata and self.resolver is not None:
                episode = await self.resolver.get_episode_metadata(series.metadata, parsed.season, parsed.episode)
                if episode is not None:
                    item.name = episode.name or item.name
                    item.overview = episode.overview
                    item.premiere_date = episode.premiere_date
                    item.community_rating = episode.community_rating
            item.sort_name = item.name.lower()
            self.store.insert_item(item)
            self.thumbnail_queue.enqueue(item.id, path_str)
            added += 1
            if result is not None:
                result.episodes_added += 1
                if not series.created:
                    result.episodes_from_existing_series += 1
        return added

    async def _add_movie(self, library: LibraryRoot, file_path: Path) -> str:
        parsed = parse_movie(file_path.name)
        runtime_ticks = await self._probe_runtime(file_path)
        metadata = await self._resolve(parsed.title, parsed.year, MOVIE)
        item = item_from_metadata(
            metadata,
            library_id=library.id,
            item_type=ITEM_MOVIE,
            fallback_name=parsed.title,
            path=str(file_path),
            runtime_ticks=runtime_ticks,
        )
        if item.year is None:
            item.year = parsed.year
        self.store.insert_item(item)
        if metadata is not None:
            self.store.link_metadata(item.id, metadata)
            self._queue_images(item.id, metadata)
        self.thumbnail_queue.enqueue(item.id, str(file_path))
        LOGGER.debug("Created movie %s (%s)", item.name, item.year)
        return item.id


__all__ = ["LibraryScanner", "SeriesHandle", "UNMATCHED_REASON"]
