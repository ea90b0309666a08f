"""Background workers draining the image and thumbnail queues."""
from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional

from library.store import LibraryStore
from library.types import IMAGE_PRIMARY
from mediaprobe.ffprobe import probe_duration_s
from mediaprobe.thumbnail import ThumbnailConfig, ThumbnailError, calculate_thumbnail_timestamp, extract_thumbnail

from .images import ImageDownloader, ImageDownloadError
from .queues import ImageJob, ImageQueue, ThumbnailJob, ThumbnailQueue

LOGGER = logging.getLogger("medialib.background.workers")


@dataclass(slots=True)
class QueueSettings:
    image_idle_s: float = 5.0
    thumbnail_idle_s: float = 10.0
    image_delay_ms: int = 100
    thumbnail_delay_ms: int = 200
    image_timeout_s: float = 30.0
    thumbnail_width: int = 480


def load_queue_settings(data: Mapping[str, Any]) -> QueueSettings:
    section = data.get("queues") if isinstance(data, Mapping) else None
    if not isinstance(section, Mapping):
        section = {}
    settings = QueueSettings()
    for name in ("image_idle_s", "thumbnail_idle_s", "image_timeout_s"):
        try:
            setattr(settings, name, max(0.1, float(section.get(name, getattr(settings, name)))))
        except (TypeError, ValueError):
            pass
    for name in ("image_delay_ms", "thumbnail_delay_ms", "thumbnail_width"):
        try:
            setattr(settings, name, max(0, int(section.get(name, getattr(settings, name)))))
        except (TypeError, ValueError):
            pass
    if settings.thumbnail_width <= 0:
        settings.thumbnail_width = 480
    return settings


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def thumbnail_batch_size(cores: Optional[int] = None) -> int:
    cores = cores or os.cpu_count() or 4
    return _clamp(cores * 2, 10, 40)


def image_batch_size(cores: Optional[int] = None) -> int:
    cores = cores or os.cpu_count() or 4
    return _clamp(cores * 3, 15, 60)


class _QueueWorker:
    """Poll a queue, process each job in turn, sleep when the queue is empty."""

    name = "queue-worker"

    def __init__(self, *, idle_interval: float, delay: float, batch_size: int) -> None:
        self._idle_interval = max(0.01, float(idle_interval))
        self._delay = max(0.0, float(delay))
        self._batch_size = max(1, int(batch_size))
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self.queue: Any = None
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        self._stop_event.set()
        task = self._task
        if task:
            await task
        self._task = None

    async def _dequeue(self) -> List[Any]:
        raise NotImplementedError

    async def process(self, job: Any) -> bool:
        raise NotImplementedError

    async def run_once(self) -> int:
        """Process one batch; returns the number of jobs handled.

        The whole batch runs even when a stop is requested midway. Stop is
        checked between batches in ``_run``.
        """

        jobs = await self._dequeue()
        handled = 0
        for job in jobs:
            if await self._process_guarded(job):
                self.processed += 1
            else:
                self.failed += 1
            handled += 1
            if self._delay:
                await asyncio.sleep(self._delay)
        return handled

    async def _process_guarded(self, job: Any) -> bool:
        try:
            return await self.process(job)
        except Exception as exc:
            LOGGER.exception("%s: job %s failed unexpectedly: %s", self.name, job.id, exc)
        try:
            await asyncio.to_thread(self.queue.fail, job.id)
        except sqlite3.Error as exc:
            LOGGER.error("%s: could not record failure for job %s: %s", self.name, job.id, exc)
        return False

    async def _run(self) -> None:
        LOGGER.info("%s started (batch size %d)", self.name, self._batch_size)
        try:
            while not self._stop_event.is_set():
                try:
                    handled = await self.run_once()
                except sqlite3.Error as exc:
                    LOGGER.error("%s: queue read failed: %s", self.name, exc)
                    handled = 0
                if handled:
                    continue
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._idle_interval)
                except asyncio.TimeoutError:
                    continue
        except Exception as exc:
            LOGGER.exception("%s crashed: %s", self.name, exc)
        finally:
            LOGGER.info("%s stopped", self.name)


class ImageWorker(_QueueWorker):
    name = "image-worker"

    def __init__(
        self,
        queue: ImageQueue,
        store: LibraryStore,
        downloader: ImageDownloader,
        *,
        idle_interval: float = 5.0,
        delay: float = 0.1,
        batch_size: Optional[int] = None,
    ) -> None:
        super().__init__(
            idle_interval=idle_interval,
            delay=delay,
            batch_size=batch_size or image_batch_size(),
        )
        self.queue = queue
        self.store = store
        self.downloader = downloader

    async def _dequeue(self) -> List[ImageJob]:
        return await asyncio.to_thread(self.queue.dequeue_batch, self._batch_size)

    async def process(self, job: ImageJob) -> bool:
        try:
            path = await asyncio.to_thread(self.downloader.download, job.item_id, job.image_type, job.url)
        except (ImageDownloadError, OSError) as exc:
            parked = await asyncio.to_thread(self.queue.fail, job.id)
            LOGGER.log(
                logging.WARNING if parked else logging.DEBUG,
                "Image download failed for %s/%s (attempt %d): %s",
                job.item_id,
                job.image_type,
                job.attempts + 1,
                exc,
            )
            return False
        if not await asyncio.to_thread(self.store.set_image, job.item_id, job.image_type, path):
            LOGGER.debug("Item %s was removed before its %s image landed", job.item_id, job.image_type)
        await asyncio.to_thread(self.queue.complete, job.id)
        return True


class ThumbnailWorker(_QueueWorker):
    name = "thumbnail-worker"

    def __init__(
        self,
        queue: ThumbnailQueue,
        store: LibraryStore,
        images_dir: Path,
        *,
        config: Optional[ThumbnailConfig] = None,
        duration_probe: Optional[Callable[[Path], Optional[float]]] = None,
        extractor: Callable[..., Path] = extract_thumbnail,
        idle_interval: float = 10.0,
        delay: float = 0.2,
        batch_size: Optional[int] = None,
    ) -> None:
        super().__init__(
            idle_interval=idle_interval,
            delay=delay,
            batch_size=batch_size or thumbnail_batch_size(),
        )
        self.queue = queue
        self.store = store
        self.images_dir = Path(images_dir)
        self.config = config or ThumbnailConfig()
        self._duration_probe = duration_probe or probe_duration_s
        self._extractor = extractor

    async def _dequeue(self) -> List[ThumbnailJob]:
        return await asyncio.to_thread(self.queue.dequeue_batch, self._batch_size)

    async def process(self, job: ThumbnailJob) -> bool:
        video_path = Path(job.video_path)
        try:
            duration = await asyncio.to_thread(self._duration_probe, video_path)
        except Exception as exc:
            LOGGER.debug("Duration probe failed for %s: %s", video_path, exc)
            duration = None
        timestamp = calculate_thumbnail_timestamp(duration)
        output_path = self.images_dir / job.item_id / f"{IMAGE_PRIMARY}.jpg"
        try:
            await asyncio.to_thread(self._extractor, video_path, output_path, timestamp, self.config)
        except ThumbnailError as exc:
            parked = await asyncio.to_thread(self.queue.fail, job.id)
            LOGGER.log(
                logging.WARNING if parked else logging.DEBUG,
                "Thumbnail failed for %s (attempt %d): %s",
                video_path,
                job.attempts + 1,
                exc,
            )
            return False
        if not await asyncio.to_thread(self.store.set_image, job.item_id, IMAGE_PRIMARY, output_path):
            LOGGER.debug("Item %s was removed before its thumbnail landed", job.item_id)
        await asyncio.to_thread(self.queue.complete, job.id)
        return True


__all__ = [
    "ImageWorker",
    "QueueSettings",
    "ThumbnailWorker",
    "image_batch_size",
    "load_queue_settings",
    "thumbnail_batch_size",
]
