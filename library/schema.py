"""SQLite schema for the media library database."""
from __future__ import annotations

import sqlite3

_LIBRARY_SCHEMA = """
CREATE TABLE IF NOT EXISTS libraries (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    path TEXT NOT NULL,
    library_type TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS media_items (
    id TEXT PRIMARY KEY,
    library_id TEXT NOT NULL REFERENCES libraries(id) ON DELETE CASCADE,
    parent_id TEXT REFERENCES media_items(id) ON DELETE CASCADE,
    item_type TEXT NOT NULL,
    name TEXT NOT NULL,
    path TEXT,
    overview TEXT,
    year INTEGER,
    runtime_ticks INTEGER,
    premiere_date TEXT,
    community_rating REAL,
    tmdb_id TEXT,
    imdb_id TEXT,
    anilist_id TEXT,
    mal_id TEXT,
    anidb_id TEXT,
    kitsu_id TEXT,
    sort_name TEXT,
    index_number INTEGER,
    parent_index_number INTEGER,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS images (
    id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL REFERENCES media_items(id) ON DELETE CASCADE,
    image_type TEXT NOT NULL,
    path TEXT NOT NULL,
    UNIQUE(item_id, image_type)
);

CREATE TABLE IF NOT EXISTS playback_progress (
    user_id TEXT NOT NULL,
    item_id TEXT NOT NULL REFERENCES media_items(id) ON DELETE CASCADE,
    position_ticks INTEGER NOT NULL DEFAULT 0,
    played INTEGER NOT NULL DEFAULT 0,
    play_count INTEGER NOT NULL DEFAULT 0,
    last_played TEXT,
    PRIMARY KEY (user_id, item_id)
);

CREATE TABLE IF NOT EXISTS user_favorites (
    user_id TEXT NOT NULL,
    item_id TEXT NOT NULL REFERENCES media_items(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (user_id, item_id)
);

CREATE TABLE IF NOT EXISTS genres (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS item_genres (
    item_id TEXT NOT NULL REFERENCES media_items(id) ON DELETE CASCADE,
    genre_id TEXT NOT NULL REFERENCES genres(id) ON DELETE CASCADE,
    PRIMARY KEY (item_id, genre_id)
);

CREATE TABLE IF NOT EXISTS studios (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS item_studios (
    item_id TEXT NOT NULL REFERENCES media_items(id) ON DELETE CASCADE,
    studio_id TEXT NOT NULL REFERENCES studios(id) ON DELETE CASCADE,
    PRIMARY KEY (item_id, studio_id)
);

CREATE TABLE IF NOT EXISTS persons (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    role TEXT,
    image_url TEXT,
    anilist_id TEXT,
    tmdb_id TEXT,
    sort_name TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS item_persons (
    item_id TEXT NOT NULL REFERENCES media_items(id) ON DELETE CASCADE,
    person_id TEXT NOT NULL REFERENCES persons(id) ON DELETE CASCADE,
    role TEXT NOT NULL DEFAULT '',
    sort_order INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (item_id, person_id, role)
);

CREATE TABLE IF NOT EXISTS unmatched_series (
    id TEXT PRIMARY KEY,
    library_id TEXT NOT NULL REFERENCES libraries(id) ON DELETE CASCADE,
    series_id TEXT NOT NULL REFERENCES media_items(id) ON DELETE CASCADE,
    folder_name TEXT NOT NULL,
    attempted_title TEXT,
    attempted_year INTEGER,
    failure_reason TEXT,
    attempt_count INTEGER NOT NULL DEFAULT 1,
    last_attempt_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(library_id, series_id)
);
"""

_QUEUE_SCHEMA = """
CREATE TABLE IF NOT EXISTS image_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL REFERENCES media_items(id) ON DELETE CASCADE,
    image_type TEXT NOT NULL,
    url TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    attempts INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE(item_id, image_type)
);

CREATE TABLE IF NOT EXISTS thumbnail_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL REFERENCES media_items(id) ON DELETE CASCADE,
    video_path TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    attempts INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE(item_id)
);
"""

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_media_items_library ON media_items(library_id)",
    "CREATE INDEX IF NOT EXISTS idx_media_items_parent ON media_items(parent_id)",
    "CREATE INDEX IF NOT EXISTS idx_media_items_library_type ON media_items(library_id, item_type)",
    "CREATE INDEX IF NOT EXISTS idx_media_items_path ON media_items(path) WHERE path IS NOT NULL",
    "CREATE INDEX IF NOT EXISTS idx_media_items_tmdb ON media_items(tmdb_id) WHERE tmdb_id IS NOT NULL",
    "CREATE INDEX IF NOT EXISTS idx_media_items_anilist ON media_items(anilist_id) WHERE anilist_id IS NOT NULL",
    "CREATE INDEX IF NOT EXISTS idx_media_items_mal ON media_items(mal_id) WHERE mal_id IS NOT NULL",
    "CREATE INDEX IF NOT EXISTS idx_media_items_anidb ON media_items(anidb_id) WHERE anidb_id IS NOT NULL",
    "CREATE INDEX IF NOT EXISTS idx_images_item ON images(item_id)",
    "CREATE INDEX IF NOT EXISTS idx_unmatched_series_retry ON unmatched_series(library_id, last_attempt_at) WHERE attempt_count < 3",
    "CREATE INDEX IF NOT EXISTS idx_image_queue_pending ON image_queue(status, attempts, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_thumbnail_queue_pending ON thumbnail_queue(status, attempts, created_at)",
)


def ensure_tables(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.executescript(_LIBRARY_SCHEMA)
    cur.executescript(_QUEUE_SCHEMA)
    for statement in _INDEXES:
        cur.execute(statement)
    conn.commit()


__all__ = ["ensure_tables"]
