"""Durable work queues, their workers and the periodic scheduler."""

from .images import ImageDownloader, ImageDownloadError
from .periodic import PeriodicScheduler
from .queues import MAX_ATTEMPTS, ImageJob, ImageQueue, ThumbnailJob, ThumbnailQueue
from .workers import (
    ImageWorker,
    QueueSettings,
    ThumbnailWorker,
    image_batch_size,
    load_queue_settings,
    thumbnail_batch_size,
)

__all__ = [
    "ImageDownloadError",
    "ImageDownloader",
    "ImageJob",
    "ImageQueue",
    "ImageWorker",
    "MAX_ATTEMPTS",
    "PeriodicScheduler",
    "QueueSettings",
    "ThumbnailJob",
    "ThumbnailQueue",
    "ThumbnailWorker",
    "image_batch_size",
    "load_queue_settings",
    "thumbnail_batch_size",
]
