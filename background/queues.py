"""Durable SQLite work queues for poster downloads and video thumbnails.

Both queues share the same lifecycle: ``enqueue`` upserts a row as
``pending`` with zero attempts, workers pull batches of pending rows that
still have attempts left, a success deletes the row and a failure bumps the
attempt counter until the row parks as ``failed``.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Dict, List, Sequence

from core.db import utc_now
from library.schema import ensure_tables

LOGGER = logging.getLogger("medialib.background.queues")

MAX_ATTEMPTS = 3
STATUS_PENDING = "pending"
STATUS_FAILED = "failed"


@dataclass(slots=True)
class ImageJob:
    id: int
    item_id: str
    image_type: str
    url: str
    attempts: int


@dataclass(slots=True)
class ThumbnailJob:
    id: int
    item_id: str
    video_path: str
    attempts: int


class _SqliteQueue:
    table: str = ""
    columns: Sequence[str] = ()

    def __init__(self, conn: sqlite3.Connection, *, create: bool = True) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        if create:
            ensure_tables(conn)

    def _pending_rows(self, limit: int) -> List[sqlite3.Row]:
        return self.conn.execute(
            f"""
            SELECT id, {', '.join(self.columns)}, attempts
            FROM {self.table}
            WHERE status = ? AND attempts < ?
            ORDER BY created_at ASC, id ASC
            LIMIT ?
            """,
            (STATUS_PENDING, MAX_ATTEMPTS, max(0, int(limit))),
        ).fetchall()

    def complete(self, job_id: int) -> None:
        with self.conn:
            self.conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (int(job_id),))

    def fail(self, job_id: int) -> bool:
        """Record a failed attempt; returns True when the job is now parked as failed."""

        with self.conn:
            self.conn.execute(
                f"""
                UPDATE {self.table}
                SET attempts = attempts + 1,
                    status = CASE WHEN attempts + 1 >= ? THEN ? ELSE ? END
                WHERE id = ?
                """,
                (MAX_ATTEMPTS, STATUS_FAILED, STATUS_PENDING, int(job_id)),
            )
        row = self.conn.execute(f"SELECT status FROM {self.table} WHERE id = ?", (int(job_id),)).fetchone()
        return bool(row and row["status"] == STATUS_FAILED)

    def counts(self) -> Dict[str, int]:
        rows = self.conn.execute(
            f"SELECT status, COUNT(*) AS total FROM {self.table} GROUP BY status"
        ).fetchall()
        counts = {STATUS_PENDING: 0, STATUS_FAILED: 0}
        for row in rows:
            counts[row["status"]] = int(row["total"])
        return counts

    def pending_count(self) -> int:
        return self.counts()[STATUS_PENDING]

    def reset_failed(self) -> int:
        with self.conn:
            cur = self.conn.execute(
                f"UPDATE {self.table} SET status = ?, attempts = 0 WHERE status = ?",
                (STATUS_PENDING, STATUS_FAILED),
            )
        return cur.rowcount or 0


class ImageQueue(_SqliteQueue):
    table = "image_queue"
    columns = ("item_id", "image_type", "url")

    def enqueue(self, item_id: str, image_type: str, url: str) -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO image_queue(item_id, image_type, url, status, attempts, created_at)
                VALUES(?, ?, ?, ?, 0, ?)
                ON CONFLICT(item_id, image_type) DO UPDATE SET
                    url = excluded.url,
                    status = excluded.status,
                    attempts = 0
                """,
                (item_id, image_type, url, STATUS_PENDING, utc_now()),
            )

    def dequeue_batch(self, limit: int) -> List[ImageJob]:
        return [
            ImageJob(
                id=int(row["id"]),
                item_id=row["item_id"],
                image_type=row["image_type"],
                url=row["url"],
                attempts=int(row["attempts"]),
            )
            for row in self._pending_rows(limit)
        ]


class ThumbnailQueue(_SqliteQueue):
    table = "thumbnail_queue"
    columns = ("item_id", "video_path")

    def enqueue(self, item_id: str, video_path: str) -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO thumbnail_queue(item_id, video_path, status, attempts, created_at)
                VALUES(?, ?, ?, 0, ?)
                ON CONFLICT(item_id) DO UPDATE SET
                    video_path = excluded.video_path,
                    status = excluded.status,
                    attempts = 0
                """,
                (item_id, video_path, STATUS_PENDING, utc_now()),
            )

    def dequeue_batch(self, limit: int) -> List[ThumbnailJob]:
        return [
            ThumbnailJob(
                id=int(row["id"]),
                item_id=row["item_id"],
                video_path=row["video_path"],
                attempts=int(row["attempts"]),
            )
            for row in self._pending_rows(limit)
        ]

    def queue_missing_thumbnails(self) -> int:
        """Enqueue playable items that have no Primary image and no queue row yet."""

        now = utc_now()
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO thumbnail_queue(item_id, video_path, status, attempts, created_at)
                SELECT m.id, m.path, ?, 0, ?
                FROM media_items m
                WHERE m.item_type IN ('Episode', 'Movie')
                  AND m.path IS NOT NULL
                  AND NOT EXISTS (
                      SELECT 1 FROM images i WHERE i.item_id = m.id AND i.image_type = 'Primary'
                  )
                  AND NOT EXISTS (
                      SELECT 1 FROM thumbnail_queue q WHERE q.item_id = m.id
                  )
                """,
                (STATUS_PENDING, now),
            )
        queued = cur.rowcount or 0
        if queued:
            LOGGER.info("Queued %d missing thumbnails", queued)
        return queued


__all__ = [
    "ImageJob",
    "ImageQueue",
    "MAX_ATTEMPTS",
    "STATUS_FAILED",
    "STATUS_PENDING",
    "ThumbnailJob",
    "ThumbnailQueue",
]
