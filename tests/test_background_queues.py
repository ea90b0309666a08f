"""Tests for the durable image and thumbnail queues."""

from __future__ import annotations

from pathlib import Path

import pytest

from background.queues import MAX_ATTEMPTS, STATUS_FAILED, ImageQueue, ThumbnailQueue
from library.store import LibraryStore
from library.types import IMAGE_PRIMARY, ITEM_EPISODE, ITEM_SERIES, LibraryRoot, MediaItem


@pytest.fixture()
def episode_id(store: LibraryStore, tmp_path: Path) -> str:
    store.upsert_library(LibraryRoot(id="lib", name="Shows", path=tmp_path))
    return store.insert_item(
        MediaItem(library_id="lib", item_type=ITEM_EPISODE, name="Episode 1", path=str(tmp_path / "e01.mkv"))
    )


def test_failures_park_job_after_attempt_cap(image_queue: ImageQueue, episode_id: str) -> None:
    image_queue.enqueue(episode_id, IMAGE_PRIMARY, "https://img.example/a.jpg")
    job = image_queue.dequeue_batch(10)[0]

    parked = [image_queue.fail(job.id) for _ in range(MAX_ATTEMPTS)]

    assert parked == [False, False, True]
    assert image_queue.dequeue_batch(10) == []
    assert image_queue.counts() == {"pending": 0, "failed": 1}


def test_enqueue_resets_a_parked_job(image_queue: ImageQueue, episode_id: str) -> None:
    image_queue.enqueue(episode_id, IMAGE_PRIMARY, "https://img.example/old.jpg")
    job = image_queue.dequeue_batch(1)[0]
    for _ in range(MAX_ATTEMPTS):
        image_queue.fail(job.id)

    image_queue.enqueue(episode_id, IMAGE_PRIMARY, "https://img.example/new.jpg")

    jobs = image_queue.dequeue_batch(10)
    assert len(jobs) == 1
    assert jobs[0].url == "https://img.example/new.jpg"
    assert jobs[0].attempts == 0


def test_complete_removes_job(thumbnail_queue: ThumbnailQueue, episode_id: str) -> None:
    thumbnail_queue.enqueue(episode_id, "/media/e01.mkv")
    job = thumbnail_queue.dequeue_batch(5)[0]

    thumbnail_queue.complete(job.id)

    assert thumbnail_queue.pending_count() == 0


def test_reset_failed_requeues_parked_jobs(thumbnail_queue: ThumbnailQueue, episode_id: str) -> None:
    thumbnail_queue.enqueue(episode_id, "/media/e01.mkv")
    job = thumbnail_queue.dequeue_batch(5)[0]
    for _ in range(MAX_ATTEMPTS):
        thumbnail_queue.fail(job.id)
    assert thumbnail_queue.counts()[STATUS_FAILED] == 1

    assert thumbnail_queue.reset_failed() == 1
    assert thumbnail_queue.dequeue_batch(5)[0].attempts == 0


def test_queue_missing_thumbnails_skips_covered_items(
    store: LibraryStore, thumbnail_queue: ThumbnailQueue, episode_id: str, tmp_path: Path
) -> None:
    with_image = store.insert_item(
        MediaItem(library_id="lib", item_type=ITEM_EPISODE, name="Episode 2", path=str(tmp_path / "e02.mkv"))
    )
    store.set_image(with_image, IMAGE_PRIMARY, tmp_path / "poster.jpg")
    store.insert_item(MediaItem(library_id="lib", item_type=ITEM_SERIES, name="Show"))

    assert thumbnail_queue.queue_missing_thumbnails() == 1
    assert [job.item_id for job in thumbnail_queue.dequeue_batch(10)] == [episode_id]
    assert thumbnail_queue.queue_missing_thumbnails() == 0


def test_queue_missing_thumbnails_leaves_parked_jobs(thumbnail_queue: ThumbnailQueue, episode_id: str) -> None:
    thumbnail_queue.enqueue(episode_id, "/media/e01.mkv")
    job = thumbnail_queue.dequeue_batch(5)[0]
    for _ in range(MAX_ATTEMPTS):
        thumbnail_queue.fail(job.id)

    assert thumbnail_queue.queue_missing_thumbnails() == 0
    assert thumbnail_queue.counts() == {"pending": 0, "failed": 1}


def test_jobs_cascade_with_their_item(store: LibraryStore, image_queue: ImageQueue, episode_id: str) -> None:
    image_queue.enqueue(episode_id, IMAGE_PRIMARY, "https://img.example/a.jpg")

    store.delete_item(episode_id)

    assert image_queue.counts() == {"pending": 0, "failed": 0}
