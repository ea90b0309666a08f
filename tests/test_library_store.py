"""Tests for LibraryStore persistence helpers."""

from __future__ import annotations

from pathlib import Path

from library.cache import SeriesCache
from library.store import MAX_UNMATCHED_ATTEMPTS, LibraryStore, item_from_metadata
from library.types import ITEM_EPISODE, ITEM_SERIES, LibraryRoot, MediaItem
from metadata.types import CastMember, UnifiedMetadata


def _library(store: LibraryStore, tmp_path: Path, library_id: str = "lib") -> LibraryRoot:
    library = LibraryRoot(id=library_id, name="Anime", path=tmp_path / "anime")
    store.upsert_library(library)
    return library


def _series(store: LibraryStore, library: LibraryRoot, name: str, **ids: str) -> str:
    item = MediaItem(library_id=library.id, item_type=ITEM_SERIES, name=name, **ids)
    return store.insert_item(item)


def test_library_upsert_and_listing(store: LibraryStore, tmp_path: Path) -> None:
    library = _library(store, tmp_path)
    store.upsert_library(LibraryRoot(id="lib", name="Renamed", path=library.path, kind="movie"))

    libraries = store.list_libraries()

    assert len(libraries) == 1
    assert libraries[0].name == "Renamed"
    assert libraries[0].is_movie_library
    assert store.get_library("missing") is None


def test_mark_unmatched_counts_attempts(store: LibraryStore, tmp_path: Path) -> None:
    library = _library(store, tmp_path)
    series_id = _series(store, library, "Mystery Show")

    for _ in range(MAX_UNMATCHED_ATTEMPTS - 1):
        store.mark_unmatched(library.id, series_id, "Mystery Show", "Mystery Show", None, "No metadata match found")

    assert store.unmatched_attempts(series_id) == 2
    assert [record.series_id for record in store.unmatched_for_retry()] == [series_id]

    store.mark_unmatched(library.id, series_id, "Mystery Show", "Mystery Show", None, "again")

    assert store.unmatched_attempts(series_id) == MAX_UNMATCHED_ATTEMPTS
    assert store.unmatched_for_retry() == []
    assert store.counts()["Unmatched"] == 1

    store.clear_unmatched(series_id)
    assert store.unmatched_attempts(series_id) is None


def test_find_series_by_provider_ids_follows_priority(store: LibraryStore, tmp_path: Path) -> None:
    library = _library(store, tmp_path)
    by_tmdb = _series(store, library, "Show A", tmdb_id="1")
    by_anilist = _series(store, library, "Show B", anilist_id="5")

    assert store.find_series_by_provider_ids(library.id, {"tmdb": "1", "anilist": "5"}) == by_anilist
    assert store.find_series_by_provider_ids(library.id, {"tmdb": "1"}) == by_tmdb
    assert store.find_series_by_provider_ids(library.id, {"mal": "9"}) is None
    assert store.find_series_by_provider_ids("other", {"tmdb": "1"}) is None


def test_find_series_by_name_is_normalized(store: LibraryStore, tmp_path: Path) -> None:
    library = _library(store, tmp_path)
    first = _series(store, library, "Show.Name")
    _series(store, library, "show name")

    row = store.find_series_by_name(library.id, "Show Name (2020)")

    assert row is not None
    assert row["id"] == first


def test_update_item_metadata_keeps_existing_values(store: LibraryStore, tmp_path: Path) -> None:
    library = _library(store, tmp_path)
    item = item_from_metadata(
        UnifiedMetadata(name="Frieren", overview="Original overview", year=2023),
        library_id=library.id,
        item_type=ITEM_SERIES,
        fallback_name="frieren folder",
    )
    store.insert_item(item)
    assert item.sort_name == "frieren"

    store.update_item_metadata(
        item.id,
        UnifiedMetadata(
            anilist_id="154587",
            genres=["Adventure", "Drama"],
            studio="Madhouse",
            cast=[CastMember("anilist-staff-95269", "Atsumi Tanezaki", character_name="Frieren", role="Voice Actor")],
        ),
    )

    row = store.get_item(item.id)
    assert row["overview"] == "Original overview"
    assert row["anilist_id"] == "154587"
    assert row["name"] == "Frieren"
    genres = store.conn.execute("SELECT COUNT(*) FROM item_genres WHERE item_id = ?", (item.id,)).fetchone()[0]
    assert genres == 2
    person = store.conn.execute("SELECT anilist_id, tmdb_id FROM persons WHERE id = 'anilist-staff-95269'").fetchone()
    assert person["anilist_id"] == "95269"
    assert person["tmdb_id"] is None
    role = store.conn.execute("SELECT role FROM item_persons WHERE item_id = ?", (item.id,)).fetchone()
    assert role["role"] == "Frieren"


def test_items_missing_metadata_and_images(store: LibraryStore, tmp_path: Path) -> None:
    library = _library(store, tmp_path)
    complete = store.insert_item(MediaItem(library_id=library.id, item_type=ITEM_SERIES, name="Complete", overview="x"))
    no_image = store.insert_item(MediaItem(library_id=library.id, item_type=ITEM_SERIES, name="No Image", overview="x"))
    store.set_image(complete, "Primary", tmp_path / "poster.jpg")

    missing = [row["id"] for row in store.items_missing_metadata(ITEM_SERIES)]

    assert missing == [no_image]
    assert store.has_image(complete)
    assert not store.has_image(no_image)


def test_delete_library_items_cascades(store: LibraryStore, tmp_path: Path) -> None:
    library = _library(store, tmp_path)
    series_id = _series(store, library, "Show")
    episode_id = store.insert_item(
        MediaItem(library_id=library.id, item_type=ITEM_EPISODE, name="Episode 1", parent_id=series_id, path="/x/ep1.mkv")
    )
    with store.conn:
        store.conn.execute(
            "INSERT INTO playback_progress(user_id, item_id, position_ticks) VALUES('user', ?, 10)",
            (episode_id,),
        )

    assert store.paths_for_library(library.id) == {"/x/ep1.mkv": episode_id}
    assert store.delete_library_items(library.id) >= 1
    assert store.conn.execute("SELECT COUNT(*) FROM playback_progress").fetchone()[0] == 0
    assert store.counts(library.id) == {"Series": 0, "Episode": 0, "Movie": 0, "Unmatched": 0}


def test_series_cache_keeps_oldest_and_follows_priority(store: LibraryStore, tmp_path: Path) -> None:
    library = _library(store, tmp_path)
    oldest = _series(store, library, "Show", anilist_id="1", tmdb_id="10")
    _series(store, library, "Show Again", anilist_id="1")

    cache = SeriesCache.build(store, library.id)

    assert len(cache) == 2
    assert cache.find(UnifiedMetadata(anilist_id="1")) == oldest
    assert cache.find(UnifiedMetadata(tmdb_id="10")) == oldest
    assert cache.find(UnifiedMetadata(mal_id="3")) is None
    cache.add("newer", {"mal": "3", "anilist": "1"})
    assert cache.find(UnifiedMetadata(anilist_id="1", mal_id="3")) == oldest
    assert cache.find(UnifiedMetadata(mal_id="3")) == "newer"
