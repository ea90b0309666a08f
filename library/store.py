"""Persistence helpers for libraries, media items and their reference data."""
from __future__ import annotations

import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from core.db import utc_now
from metadata.types import PROVIDER_ID_PRIORITY, CastMember, UnifiedMetadata
from naming.parser import normalize_series_name

from .schema import ensure_tables
from .types import (
    IMAGE_PRIMARY,
    ITEM_SERIES,
    LibraryRoot,
    MediaItem,
    UnmatchedSeries,
)

LOGGER = logging.getLogger("medialib.library.store")

MAX_UNMATCHED_ATTEMPTS = 3
UNMATCHED_RETRY_LIMIT = 50

_ITEM_COLUMNS = (
    "id",
    "library_id",
    "parent_id",
    "item_type",
    "name",
    "path",
    "overview",
    "year",
    "runtime_ticks",
    "premiere_date",
    "community_rating",
    "tmdb_id",
    "imdb_id",
    "anilist_id",
    "mal_id",
    "anidb_id",
    "kitsu_id",
    "sort_name",
    "index_number",
    "parent_index_number",
)


def item_from_metadata(
    metadata: Optional[UnifiedMetadata],
    *,
    library_id: str,
    item_type: str,
    fallback_name: str,
    **extra: object,
) -> MediaItem:
    """Build a :class:`MediaItem` carrying the descriptive fields of *metadata*."""

    name = (metadata.name if metadata and metadata.name else None) or fallback_name
    item = MediaItem(library_id=library_id, item_type=item_type, name=name, sort_name=name.lower())
    if metadata is not None:
        item.overview = metadata.overview
        item.year = metadata.year
        item.premiere_date = metadata.premiere_date
        item.community_rating = metadata.community_rating
        item.tmdb_id = metadata.tmdb_id
        item.imdb_id = metadata.imdb_id
        item.anilist_id = metadata.anilist_id
        item.mal_id = metadata.mal_id
        item.anidb_id = metadata.anidb_id
        item.kitsu_id = metadata.kitsu_id
    for key, value in extra.items():
        setattr(item, key, value)
    return item


class LibraryStore:
    """Thin wrapper over one SQLite connection; every write commits on return."""

    def __init__(self, conn: sqlite3.Connection, *, create: bool = True) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        if create:
            ensure_tables(conn)

    # libraries

    def upsert_library(self, library: LibraryRoot) -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO libraries(id, name, path, library_type)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    path=excluded.path,
                    library_type=excluded.library_type
                """,
                (library.id, library.name, str(library.path), library.kind),
            )

    def sync_libraries(self, libraries: Iterable[LibraryRoot]) -> None:
        for library in libraries:
            self.upsert_library(library)

    def list_libraries(self) -> List[LibraryRoot]:
        rows = self.conn.execute(
            "SELECT id, name, path, library_type FROM libraries ORDER BY name COLLATE NOCASE"
        ).fetchall()
        return [
            LibraryRoot(id=row["id"], name=row["name"], path=Path(row["path"]), kind=row["library_type"])
            for row in rows
        ]

    def get_library(self, library_id: str) -> Optional[LibraryRoot]:
        row = self.conn.execute(
            "SELECT id, name, path, library_type FROM libraries WHERE id = ?",
            (library_id,),
        ).fetchone()
        if row is None:
            return None
        return LibraryRoot(id=row["id"], name=row["name"], path=Path(row["path"]), kind=row["library_type"])

    # media items

    def insert_item(self, item: MediaItem) -> str:
        values = [getattr(item, column) for column in _ITEM_COLUMNS]
        now = utc_now()
        placeholders = ", ".join("?" for _ in _ITEM_COLUMNS)
        with self.conn:
            self.conn.execute(
                f"INSERT INTO media_items({', '.join(_ITEM_COLUMNS)}, created_at, updated_at) "
                f"VALUES({placeholders}, ?, ?)",
                (*values, now, now),
            )
        return item.id

    def get_item(self, item_id: str) -> Optional[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM media_items WHERE id = ?", (item_id,)).fetchone()

    def item_id_for_path(self, path: str) -> Optional[str]:
        row = self.conn.execute("SELECT id FROM media_items WHERE path = ?", (path,)).fetchone()
        return row["id"] if row else None

    def paths_for_library(self, library_id: str) -> Dict[str, str]:
        rows = self.conn.execute(
            "SELECT id, path FROM media_items WHERE library_id = ? AND path IS NOT NULL",
            (library_id,),
        ).fetchall()
        return {row["path"]: row["id"] for row in rows}

    def delete_item(self, item_id: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM media_items WHERE id = ?", (item_id,))

    def delete_library_items(self, library_id: str) -> int:
        """Remove every item of a library; progress and favorites cascade with them."""

        dependents = self.conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM playback_progress p JOIN media_items m ON m.id = p.item_id WHERE m.library_id = ?),
                (SELECT COUNT(*) FROM user_favorites f JOIN media_items m ON m.id = f.item_id WHERE m.library_id = ?)
            """,
            (library_id, library_id),
        ).fetchone()
        with self.conn:
            cur = self.conn.execute("DELETE FROM media_items WHERE library_id = ?", (library_id,))
        removed = cur.rowcount if cur.rowcount is not None else 0
        if dependents and (dependents[0] or dependents[1]):
            LOGGER.warning(
                "Refresh of library %s deleted %d playback progress and %d favorite rows",
                library_id,
                dependents[0],
                dependents[1],
            )
        return removed

    def series_rows(self, library_id: str, *, newest_first: bool = False) -> List[sqlite3.Row]:
        order = "DESC" if newest_first else "ASC"
        return self.conn.execute(
            f"""
            SELECT id, name, overview, anilist_id, tmdb_id, mal_id, anidb_id
            FROM media_items
            WHERE library_id = ? AND item_type = ?
            ORDER BY created_at {order}, rowid {order}
            """,
            (library_id, ITEM_SERIES),
        ).fetchall()

    def find_series_by_provider_ids(self, library_id: str, ids: Mapping[str, str]) -> Optional[str]:
        """Look up a series sharing any provider id, trying anilist, tmdb, mal, anidb in turn."""

        for provider in PROVIDER_ID_PRIORITY:
            value = ids.get(provider)
            if not value:
                continue
            row = self.conn.execute(
                f"SELECT id FROM media_items WHERE library_id = ? AND item_type = ? AND {provider}_id = ? "
                "ORDER BY created_at LIMIT 1",
                (library_id, ITEM_SERIES, value),
            ).fetchone()
            if row is not None:
                return row["id"]
        return None

    def find_series_by_name(self, library_id: str, name: str) -> Optional[sqlite3.Row]:
        """Oldest series whose normalized name equals the normalized *name*."""

        wanted = normalize_series_name(name)
        if not wanted:
            return None
        for row in self.series_rows(library_id):
            if normalize_series_name(row["name"]) == wanted:
                return row
        return None

    def update_item_metadata(self, item_id: str, metadata: UnifiedMetadata) -> None:
        """Fill item fields from *metadata*; absent values keep what is stored."""

        with self.conn:
            self.conn.execute(
                """
                UPDATE media_items SET
                    name = COALESCE(?, name),
                    overview = COALESCE(?, overview),
                    year = COALESCE(?, year),
                    premiere_date = COALESCE(?, premiere_date),
                    community_rating = COALESCE(?, community_rating),
                    anilist_id = COALESCE(?, anilist_id),
                    mal_id = COALESCE(?, mal_id),
                    anidb_id = COALESCE(?, anidb_id),
                    kitsu_id = COALESCE(?, kitsu_id),
                    tmdb_id = COALESCE(?, tmdb_id),
                    imdb_id = COALESCE(?, imdb_id),
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    metadata.name,
                    metadata.overview,
                    metadata.year,
                    metadata.premiere_date,
                    metadata.community_rating,
                    metadata.anilist_id,
                    metadata.mal_id,
                    metadata.anidb_id,
                    metadata.kitsu_id,
                    metadata.tmdb_id,
                    metadata.imdb_id,
                    utc_now(),
                    item_id,
                ),
            )
        self.link_metadata(item_id, metadata)

    def set_runtime(self, item_id: str, runtime_ticks: int) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE media_items SET runtime_ticks = ?, updated_at = ? WHERE id = ?",
                (runtime_ticks, utc_now(), item_id),
            )

    def items_missing_runtime(self) -> List[sqlite3.Row]:
        return self.conn.execute(
            "SELECT id, path FROM media_items WHERE path IS NOT NULL AND runtime_ticks IS NULL"
        ).fetchall()

    def items_missing_metadata(self, item_type: str, library_id: Optional[str] = None) -> List[sqlite3.Row]:
        """Items of *item_type* with no overview or no Primary image."""

        clause = "AND m.library_id = ?" if library_id else ""
        params = (library_id,) if library_id else ()
        return self.conn.execute(
            f"""
            SELECT m.id, m.library_id, m.name, m.year, m.path
            FROM media_items m
            WHERE m.item_type = ? {clause}
              AND (
                m.overview IS NULL OR m.overview = ''
                OR NOT EXISTS (
                    SELECT 1 FROM images i WHERE i.item_id = m.id AND i.image_type = ?
                )
              )
            ORDER BY m.name
            """,
            (item_type, *params, IMAGE_PRIMARY),
        ).fetchall()

    # reference tables

    def _get_or_create_named(self, table: str, name: str) -> str:
        with self.conn:
            self.conn.execute(
                f"INSERT OR IGNORE INTO {table}(id, name) VALUES(?, ?)",
                (str(uuid.uuid4()), name),
            )
        row = self.conn.execute(f"SELECT id FROM {table} WHERE name = ?", (name,)).fetchone()
        return row["id"]

    def get_or_create_genre(self, name: str) -> str:
        return self._get_or_create_named("genres", name)

    def get_or_create_studio(self, name: str) -> str:
        return self._get_or_create_named("studios", name)

    def get_or_create_person(self, member: CastMember) -> str:
        anilist_id = None
        tmdb_id = None
        if member.person_id.startswith("anilist-staff-"):
            anilist_id = member.person_id[len("anilist-staff-") :]
        elif member.person_id.startswith("tmdb-person-"):
            tmdb_id = member.person_id[len("tmdb-person-") :]
        with self.conn:
            self.conn.execute(
                """
                INSERT OR IGNORE INTO persons(id, name, role, image_url, anilist_id, tmdb_id, sort_name)
                VALUES(?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    member.person_id,
                    member.person_name,
                    member.role,
                    member.person_image_url,
                    anilist_id,
                    tmdb_id,
                    member.person_name.lower(),
                ),
            )
        return member.person_id

    def link_metadata(self, item_id: str, metadata: UnifiedMetadata) -> None:
        """Attach genres, the studio and cast of *metadata* to *item_id*."""

        genre_ids = [self.get_or_create_genre(name) for name in metadata.genres if name]
        studio_id = self.get_or_create_studio(metadata.studio) if metadata.studio else None
        person_ids = [(self.get_or_create_person(member), member) for member in metadata.cast]
        with self.conn:
            self.conn.executemany(
                "INSERT OR IGNORE INTO item_genres(item_id, genre_id) VALUES(?, ?)",
                [(item_id, genre_id) for genre_id in genre_ids],
            )
            if studio_id:
                self.conn.execute(
                    "INSERT OR IGNORE INTO item_studios(item_id, studio_id) VALUES(?, ?)",
                    (item_id, studio_id),
                )
            self.conn.executemany(
                "INSERT OR IGNORE INTO item_persons(item_id, person_id, role, sort_order) VALUES(?, ?, ?, ?)",
                [
                    (item_id, person_id, member.character_name or "", position)
                    for position, (person_id, member) in enumerate(person_ids)
                ],
            )

    # images

    def has_image(self, item_id: str, image_type: str = IMAGE_PRIMARY) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM images WHERE item_id = ? AND image_type = ?",
            (item_id, image_type),
        ).fetchone()
        return row is not None

    def set_image(self, item_id: str, image_type: str, path: str | Path) -> bool:
        """Record an image path; returns False when the item no longer exists."""

        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO images(id, item_id, image_type, path)
                SELECT ?, ?, ?, ?
                WHERE EXISTS (SELECT 1 FROM media_items WHERE id = ?)
                ON CONFLICT(item_id, image_type) DO UPDATE SET path=excluded.path
                """,
                (str(uuid.uuid4()), item_id, image_type, str(path), item_id),
            )
        return cur.rowcount > 0

    # unmatched series

    def mark_unmatched(
        self,
        library_id: str,
        series_id: str,
        folder_name: str,
        attempted_title: Optional[str],
        attempted_year: Optional[int],
        reason: str,
    ) -> None:
        now = utc_now()
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO unmatched_series(
                    id, library_id, series_id, folder_name, attempted_title, attempted_year,
                    failure_reason, attempt_count, last_attempt_at, created_at
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(library_id, series_id) DO UPDATE SET
                    attempt_count = attempt_count + 1,
                    last_attempt_at = excluded.last_attempt_at,
                    failure_reason = excluded.failure_reason
                """,
                (
                    str(uuid.uuid4()),
                    library_id,
                    series_id,
                    folder_name,
                    attempted_title,
                    attempted_year,
                    reason,
                    now,
                    now,
                ),
            )
        LOGGER.info("Marked series %s as unmatched: %s", series_id, reason)

    def unmatched_for_retry(self, *, limit: int = UNMATCHED_RETRY_LIMIT) -> List[UnmatchedSeries]:
        rows = self.conn.execute(
            """
            SELECT series_id, library_id, folder_name, attempted_title, attempted_year, attempt_count
            FROM unmatched_series
            WHERE attempt_count < ?
            ORDER BY last_attempt_at ASC, created_at ASC
            LIMIT ?
            """,
            (MAX_UNMATCHED_ATTEMPTS, int(limit)),
        ).fetchall()
        return [
            UnmatchedSeries(
                series_id=row["series_id"],
                library_id=row["library_id"],
                folder_name=row["folder_name"],
                attempted_title=row["attempted_title"],
                attempted_year=row["attempted_year"],
                attempt_count=int(row["attempt_count"]),
            )
            for row in rows
        ]

    def unmatched_attempts(self, series_id: str) -> Optional[int]:
        row = self.conn.execute(
            "SELECT attempt_count FROM unmatched_series WHERE series_id = ?",
            (series_id,),
        ).fetchone()
        return int(row["attempt_count"]) if row else None

    def clear_unmatched(self, series_id: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM unmatched_series WHERE series_id = ?", (series_id,))

    # stats

    def counts(self, library_id: Optional[str] = None) -> Dict[str, int]:
        clause = "WHERE library_id = ?" if library_id else ""
        params = (library_id,) if library_id else ()
        rows = self.conn.execute(
            f"SELECT item_type, COUNT(*) AS total FROM media_items {clause} GROUP BY item_type",
            params,
        ).fetchall()
        counts = {"Series": 0, "Episode": 0, "Movie": 0}
        for row in rows:
            counts[row["item_type"]] = int(row["total"])
        unmatched = self.conn.execute(
            f"SELECT COUNT(*) FROM unmatched_series {clause}",
            params,
        ).fetchone()
        counts["Unmatched"] = int(unmatched[0]) if unmatched else 0
        return counts


__all__ = [
    "LibraryStore",
    "MAX_UNMATCHED_ATTEMPTS",
    "UNMATCHED_RETRY_LIMIT",
    "item_from_metadata",
]
