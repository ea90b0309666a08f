"""Composition root wiring storage, resolver, scanner and background tasks."""
from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from background.images import ImageDownloader
from background.periodic import PeriodicScheduler
from background.queues import ImageQueue, ThumbnailQueue
from background.workers import ImageWorker, ThumbnailWorker, load_queue_settings
from core.db import connect
from core.paths import ensure_working_dir_structure, get_images_dir, get_library_db_path, resolve_working_dir
from core.settings import load_settings
from library.scanner import LibraryScanner
from library.settings import load_scanner_settings
from library.store import LibraryStore
from library.types import LibraryRoot, load_libraries
from mediaprobe.thumbnail import ThumbnailConfig
from metadata.resolver import MetadataResolver

LOGGER = logging.getLogger("medialib.api.services")


class MediaLibraryServices:
    """Owns every long-lived component of a running medialib instance.

    The scanner, the periodic scheduler and the API endpoints share one
    connection used from the event loop. Each queue worker gets its own
    connection because its database calls run in worker threads.
    """

    def __init__(
        self,
        *,
        working_dir: Optional[Path] = None,
        settings: Optional[Dict[str, Any]] = None,
        resolver: Optional[MetadataResolver] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.working_dir = Path(working_dir or resolve_working_dir())
        ensure_working_dir_structure(self.working_dir)
        self.settings: Dict[str, Any] = dict(settings if settings is not None else load_settings(self.working_dir))
        self.db_path = get_library_db_path(self.working_dir)
        self.images_dir = get_images_dir(self.working_dir)
        self.scanner_settings = load_scanner_settings(self.settings)
        self.queue_settings = load_queue_settings(self.settings)

        self._connections: List[sqlite3.Connection] = []
        conn = self._connect()
        self.store = LibraryStore(conn)
        self.image_queue = ImageQueue(conn, create=False)
        self.thumbnail_queue = ThumbnailQueue(conn, create=False)
        self.resolver = resolver or MetadataResolver.from_settings(
            self.settings,
            self.working_dir,
            env=os.environ if env is None else env,
        )
        self.scanner = LibraryScanner(
            self.store,
            self.resolver,
            image_queue=self.image_queue,
            thumbnail_queue=self.thumbnail_queue,
            settings=self.scanner_settings,
        )
        self.periodic = PeriodicScheduler(self.scanner, self.thumbnail_queue, self.scanner_settings)

        image_conn = self._connect()
        self.image_worker = ImageWorker(
            ImageQueue(image_conn, create=False),
            LibraryStore(image_conn, create=False),
            ImageDownloader(self.images_dir, timeout=self.queue_settings.image_timeout_s),
            idle_interval=self.queue_settings.image_idle_s,
            delay=self.queue_settings.image_delay_ms / 1000.0,
        )
        thumb_conn = self._connect()
        self.thumbnail_worker = ThumbnailWorker(
            ThumbnailQueue(thumb_conn, create=False),
            LibraryStore(thumb_conn, create=False),
            self.images_dir,
            config=ThumbnailConfig(width=self.queue_settings.thumbnail_width),
            idle_interval=self.queue_settings.thumbnail_idle_s,
            delay=self.queue_settings.thumbnail_delay_ms / 1000.0,
        )
        self.sync_libraries()

    def _connect(self) -> sqlite3.Connection:
        conn = connect(self.db_path)
        self._connections.append(conn)
        return conn

    def sync_libraries(self) -> List[LibraryRoot]:
        """Register the libraries listed in settings with the store."""

        libraries = load_libraries(self.settings)
        self.store.sync_libraries(libraries)
        if libraries:
            LOGGER.info("Registered %d libraries", len(libraries))
        return libraries

    @property
    def workers_running(self) -> bool:
        return self.image_worker.running and self.thumbnail_worker.running

    async def start(self) -> None:
        await self.image_worker.start()
        await self.thumbnail_worker.start()
        if self.scanner_settings.enabled:
            await self.periodic.start()
        else:
            LOGGER.info("Periodic scanner disabled (scanner.enabled=false)")

    async def stop(self) -> None:
        await self.periodic.stop()
        await self.image_worker.stop()
        await self.thumbnail_worker.stop()

    def close(self) -> None:
        for conn in self._connections:
            conn.close()
        self._connections.clear()


__all__ = ["MediaLibraryServices"]
