"""Tests for the queue workers and the image downloader."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path
from types import SimpleNamespace

import pytest
from PIL import Image

from background.images import ImageDownloader, ImageDownloadError, image_extension
from background.queues import MAX_ATTEMPTS, ImageQueue, ThumbnailQueue
from background.workers import ImageWorker, ThumbnailWorker, image_batch_size, load_queue_settings, thumbnail_batch_size
from library.store import LibraryStore
from library.types import IMAGE_PRIMARY, ITEM_MOVIE, LibraryRoot, MediaItem
from mediaprobe.thumbnail import ThumbnailError


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 10, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeSession:
    def __init__(self, status_code: int = 200, content: bytes = b"") -> None:
        self.headers: dict = {}
        self.status_code = status_code
        self.content = content
        self.urls: list = []

    def get(self, url: str, timeout: float):
        self.urls.append(url)
        return SimpleNamespace(status_code=self.status_code, content=self.content)


class FakeDownloader:
    def __init__(self, root: Path, *, fail: bool = False) -> None:
        self.root = root
        self.fail = fail

    def download(self, item_id: str, image_type: str, url: str) -> Path:
        if self.fail:
            raise ImageDownloadError("HTTP 404")
        target = self.root / item_id / f"{image_type}.jpg"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"jpg")
        return target


@pytest.fixture()
def movie_id(store: LibraryStore, tmp_path: Path) -> str:
    store.upsert_library(LibraryRoot(id="movies", name="Movies", path=tmp_path, kind="movie"))
    return store.insert_item(
        MediaItem(library_id="movies", item_type=ITEM_MOVIE, name="Heat", path=str(tmp_path / "Heat.mkv"))
    )


def test_image_extension_reads_format() -> None:
    assert image_extension(_png_bytes()) == "png"
    with pytest.raises(ImageDownloadError):
        image_extension(b"not an image")


def test_downloader_stores_image(tmp_path: Path) -> None:
    session = FakeSession(content=_png_bytes())
    downloader = ImageDownloader(tmp_path / "images", session=session)

    path = downloader.download("item-1", IMAGE_PRIMARY, "https://img.example/p.png")

    assert path == tmp_path / "images" / "item-1" / "Primary.png"
    assert path.read_bytes() == session.content
    assert "User-Agent" in session.headers


@pytest.mark.parametrize(
    "status_code, content",
    [(404, b""), (200, b""), (200, b"garbage")],
)
def test_downloader_rejects_bad_responses(tmp_path: Path, status_code: int, content: bytes) -> None:
    downloader = ImageDownloader(tmp_path, session=FakeSession(status_code, content))

    with pytest.raises(ImageDownloadError):
        downloader.download("item-1", IMAGE_PRIMARY, "https://img.example/p.png")


def test_image_worker_records_downloaded_image(store, image_queue: ImageQueue, movie_id: str, tmp_path: Path) -> None:
    image_queue.enqueue(movie_id, IMAGE_PRIMARY, "https://img.example/heat.jpg")
    worker = ImageWorker(image_queue, store, FakeDownloader(tmp_path / "images"), delay=0, batch_size=5)

    handled = asyncio.run(worker.run_once())

    assert handled == 1
    assert worker.processed == 1
    assert store.has_image(movie_id, IMAGE_PRIMARY)
    assert image_queue.counts() == {"pending": 0, "failed": 0}


def test_image_worker_parks_job_after_repeated_failures(store, image_queue: ImageQueue, movie_id: str, tmp_path: Path) -> None:
    image_queue.enqueue(movie_id, IMAGE_PRIMARY, "https://img.example/missing.jpg")
    worker = ImageWorker(image_queue, store, FakeDownloader(tmp_path, fail=True), delay=0, batch_size=5)

    for _ in range(MAX_ATTEMPTS + 1):
        asyncio.run(worker.run_once())

    assert worker.failed == MAX_ATTEMPTS
    assert image_queue.counts() == {"pending": 0, "failed": 1}
    assert not store.has_image(movie_id, IMAGE_PRIMARY)


class DeletingDownloader(FakeDownloader):
    """Removes the item from the library while its image is downloading."""

    def __init__(self, root: Path, store: LibraryStore, doomed_id: str) -> None:
        super().__init__(root)
        self.store = store
        self.doomed_id = doomed_id

    def download(self, item_id: str, image_type: str, url: str) -> Path:
        if item_id == self.doomed_id:
            self.store.delete_item(item_id)
        return super().download(item_id, image_type, url)


class BrokenDownloader(FakeDownloader):
    def download(self, item_id: str, image_type: str, url: str) -> Path:
        raise RuntimeError("unexpected payload")


def test_image_worker_discards_image_of_deleted_item(store, image_queue: ImageQueue, movie_id: str, tmp_path: Path) -> None:
    kept_id = store.insert_item(
        MediaItem(library_id="movies", item_type=ITEM_MOVIE, name="Ronin", path=str(tmp_path / "Ronin.mkv"))
    )
    image_queue.enqueue(movie_id, IMAGE_PRIMARY, "https://img.example/heat.jpg")
    image_queue.enqueue(kept_id, IMAGE_PRIMARY, "https://img.example/ronin.jpg")
    worker = ImageWorker(
        image_queue, store, DeletingDownloader(tmp_path / "images", store, movie_id), idle_interval=0.05, delay=0
    )

    async def scenario() -> bool:
        await worker.start()
        await asyncio.sleep(0.2)
        running = worker.running
        await worker.stop()
        return running

    assert asyncio.run(scenario()) is True
    assert worker.processed == 2
    assert store.get_item(movie_id) is None
    assert store.has_image(kept_id, IMAGE_PRIMARY)
    assert image_queue.counts() == {"pending": 0, "failed": 0}


def test_set_image_on_missing_item_returns_false(store, movie_id: str, tmp_path: Path) -> None:
    assert store.set_image(movie_id, IMAGE_PRIMARY, tmp_path / "a.jpg") is True
    store.delete_item(movie_id)
    assert store.set_image(movie_id, IMAGE_PRIMARY, tmp_path / "b.jpg") is False
    assert not store.has_image(movie_id, IMAGE_PRIMARY)


def test_unexpected_error_counts_as_failed_attempt(store, image_queue: ImageQueue, movie_id: str, tmp_path: Path) -> None:
    image_queue.enqueue(movie_id, IMAGE_PRIMARY, "https://img.example/heat.jpg")
    worker = ImageWorker(image_queue, store, BrokenDownloader(tmp_path), delay=0, batch_size=5)

    assert asyncio.run(worker.run_once()) == 1
    assert worker.failed == 1
    assert image_queue.dequeue_batch(5)[0].attempts == 1


def test_stop_lets_the_current_batch_finish(store, image_queue: ImageQueue, movie_id: str, tmp_path: Path) -> None:
    item_ids = [movie_id] + [
        store.insert_item(
            MediaItem(library_id="movies", item_type=ITEM_MOVIE, name=name, path=str(tmp_path / f"{name}.mkv"))
        )
        for name in ("Ronin", "Collateral")
    ]
    for item_id in item_ids:
        image_queue.enqueue(item_id, IMAGE_PRIMARY, f"https://img.example/{item_id}.jpg")
    worker = ImageWorker(image_queue, store, FakeDownloader(tmp_path / "images"), delay=0.05, batch_size=5)

    async def scenario() -> None:
        await worker.start()
        await asyncio.sleep(0.02)
        await worker.stop()

    asyncio.run(scenario())

    assert worker.processed == 3
    assert all(store.has_image(item_id, IMAGE_PRIMARY) for item_id in item_ids)
    assert image_queue.counts() == {"pending": 0, "failed": 0}


def test_thumbnail_worker_uses_duration_for_timestamp(
    store, thumbnail_queue: ThumbnailQueue, movie_id: str, tmp_path: Path
) -> None:
    calls = []

    def extractor(video_path, output_path, timestamp, config):
        calls.append((video_path, timestamp, config.width))
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"jpg")
        return output_path

    thumbnail_queue.enqueue(movie_id, str(tmp_path / "Heat.mkv"))
    worker = ThumbnailWorker(
        thumbnail_queue,
        store,
        tmp_path / "images",
        duration_probe=lambda path: 600.0,
        extractor=extractor,
        delay=0,
        batch_size=5,
    )

    assert asyncio.run(worker.run_once()) == 1
    assert calls == [(tmp_path / "Heat.mkv", 60.0, 480)]
    assert store.has_image(movie_id, IMAGE_PRIMARY)
    assert thumbnail_queue.pending_count() == 0


def test_thumbnail_worker_counts_failures(store, thumbnail_queue: ThumbnailQueue, movie_id: str, tmp_path: Path) -> None:
    def extractor(*args):
        raise ThumbnailError("ffmpeg not found")

    def probe(path):
        raise OSError("no ffprobe")

    thumbnail_queue.enqueue(movie_id, str(tmp_path / "Heat.mkv"))
    worker = ThumbnailWorker(
        thumbnail_queue, store, tmp_path, duration_probe=probe, extractor=extractor, delay=0, batch_size=5
    )

    asyncio.run(worker.run_once())

    assert worker.failed == 1
    assert thumbnail_queue.dequeue_batch(5)[0].attempts == 1


def test_worker_start_and_stop(store, image_queue: ImageQueue, tmp_path: Path) -> None:
    worker = ImageWorker(image_queue, store, FakeDownloader(tmp_path), idle_interval=0.05, delay=0)

    async def scenario() -> tuple:
        await worker.start()
        running = worker.running
        await asyncio.sleep(0.1)
        await worker.stop()
        return running, worker.running

    assert asyncio.run(scenario()) == (True, False)


def test_batch_sizes_are_clamped() -> None:
    assert thumbnail_batch_size(1) == 10
    assert thumbnail_batch_size(8) == 16
    assert thumbnail_batch_size(64) == 40
    assert image_batch_size(2) == 15
    assert image_batch_size(64) == 60


def test_load_queue_settings_keeps_defaults_on_bad_values() -> None:
    settings = load_queue_settings({"queues": {"image_delay_ms": "fast", "thumbnail_width": 320, "image_idle_s": 2}})

    assert settings.image_delay_ms == 100
    assert settings.thumbnail_width == 320
    assert settings.image_idle_s == 2.0
