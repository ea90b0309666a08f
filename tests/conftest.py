"""Shared fixtures: a scratch library database and a table-driven resolver."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from background.queues import ImageQueue, ThumbnailQueue
from core.db import connect
from library.scanner import LibraryScanner
from library.settings import ScannerSettings
from library.store import LibraryStore
from metadata.types import UnifiedMetadata


class FakeResolver:
    """Answers ``resolve`` from a ``name -> metadata factory`` table."""

    def __init__(self) -> None:
        self.table: Dict[str, Callable[[], UnifiedMetadata]] = {}
        self.calls: List[tuple] = []
        self.preloads = 0
        self.unloads = 0
        self.catalog_enabled = False
        self.tmdb = None

    async def resolve(self, name: str, year: Optional[int], classification: str = "anime") -> Optional[UnifiedMetadata]:
        self.calls.append((name, year, classification))
        factory = self.table.get(name)
        return factory() if factory else None

    async def get_episode_metadata(self, series, season: int, episode: int):
        return None

    async def preload_catalog(self) -> bool:
        self.preloads += 1
        return False

    def unload_catalog(self) -> None:
        self.unloads += 1


@pytest.fixture()
def touch() -> Callable[[Path], Path]:
    def _touch(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\0")
        return path

    return _touch


@pytest.fixture()
def conn(tmp_path: Path):
    connection = connect(tmp_path / "data" / "library.db")
    yield connection
    connection.close()


@pytest.fixture()
def store(conn) -> LibraryStore:
    return LibraryStore(conn)


@pytest.fixture()
def image_queue(store: LibraryStore) -> ImageQueue:
    return ImageQueue(store.conn, create=False)


@pytest.fixture()
def thumbnail_queue(store: LibraryStore) -> ThumbnailQueue:
    return ThumbnailQueue(store.conn, create=False)


@pytest.fixture()
def fake_resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture()
def scanner(store, fake_resolver, image_queue, thumbnail_queue) -> LibraryScanner:
    return LibraryScanner(
        store,
        fake_resolver,
        image_queue=image_queue,
        thumbnail_queue=thumbnail_queue,
        settings=ScannerSettings(video_extensions=["mkv", "mp4"]),
        probe=lambda path: 42,
    )
