"""Periodic maintenance: quick scans, full refreshes, unmatched retries and thumbnail sweeps."""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from typing import Callable, Dict, Optional

from library.scanner import LibraryScanner
from library.settings import ScannerSettings

from .queues import ThumbnailQueue

LOGGER = logging.getLogger("medialib.background.periodic")

CHECK_INTERVAL_S = 60.0
STARTUP_DELAY_S = 5.0

TASK_QUICK_SCAN = "quick_scan"
TASK_FULL_REFRESH = "full_refresh"
TASK_UNMATCHED_RETRY = "unmatched_retry"
TASK_MISSING_THUMBNAILS = "missing_thumbnails"


class PeriodicScheduler:
    """Wake every minute and run whichever maintenance task is due."""

    def __init__(
        self,
        scanner: LibraryScanner,
        thumbnail_queue: ThumbnailQueue,
        settings: Optional[ScannerSettings] = None,
        *,
        check_interval: float = CHECK_INTERVAL_S,
        startup_delay: float = STARTUP_DELAY_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.scanner = scanner
        self.thumbnail_queue = thumbnail_queue
        self.settings = settings or scanner.settings
        self._check_interval = max(0.01, float(check_interval))
        self._startup_delay = max(0.0, float(startup_delay))
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        started = clock()
        self._last_run: Dict[str, float] = {
            TASK_QUICK_SCAN: started,
            TASK_FULL_REFRESH: started,
            TASK_UNMATCHED_RETRY: started,
            TASK_MISSING_THUMBNAILS: started,
        }

    def intervals(self) -> Dict[str, float]:
        """Task intervals in seconds; zero disables a task."""

        return {
            TASK_QUICK_SCAN: self.settings.quick_scan_interval_minutes * 60.0,
            TASK_FULL_REFRESH: self.settings.full_scan_interval_hours * 3600.0,
            TASK_UNMATCHED_RETRY: self.settings.unmatched_retry_minutes * 60.0,
            TASK_MISSING_THUMBNAILS: self.settings.missing_thumbnail_check_minutes * 60.0,
        }

    def due_tasks(self, now: Optional[float] = None) -> list[str]:
        now = self._clock() if now is None else now
        due = []
        for task, interval in self.intervals().items():
            if interval > 0 and now - self._last_run[task] >= interval:
                due.append(task)
        return due

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name="periodic-scanner")

    async def stop(self) -> None:
        self._stop_event.set()
        task = self._task
        if task:
            await task
        self._task = None

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless stopped first; returns False once stop was requested."""

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False

    async def run_startup(self) -> None:
        if not self.settings.scan_on_startup:
            return
        LOGGER.info("Running startup quick scan")
        result = await self.scanner.quick_scan_all_libraries()
        if result.files_added or result.files_removed:
            LOGGER.info("Startup quick scan: %d added, %d removed", result.files_added, result.files_removed)

    async def run_due(self, now: Optional[float] = None) -> list[str]:
        """Run every task that is due at *now*; returns the names that ran."""

        now = self._clock() if now is None else now
        ran = []
        for task in self.due_tasks(now):
            try:
                await self._run_task(task)
            except (OSError, sqlite3.Error) as exc:
                LOGGER.error("Periodic %s failed: %s", task, exc)
            self._last_run[task] = now
            if task == TASK_FULL_REFRESH:
                self._last_run[TASK_QUICK_SCAN] = now
            ran.append(task)
        return ran

    async def _run_task(self, task: str) -> None:
        if task == TASK_QUICK_SCAN:
            result = await self.scanner.quick_scan_all_libraries()
            if result.files_added or result.files_removed:
                LOGGER.info("Quick scan: %d added, %d removed", result.files_added, result.files_removed)
        elif task == TASK_FULL_REFRESH:
            LOGGER.info("Running scheduled full refresh")
            await self.scanner.refresh_all_libraries()
        elif task == TASK_UNMATCHED_RETRY:
            matched = await self.scanner.retry_unmatched()
            if matched:
                LOGGER.info("Unmatched retry matched %d series", matched)
        elif task == TASK_MISSING_THUMBNAILS:
            queued = self.thumbnail_queue.queue_missing_thumbnails()
            if not queued:
                LOGGER.debug("No missing thumbnails found")
            if self.settings.retry_failed_thumbnails:
                reset = self.thumbnail_queue.reset_failed()
                if reset:
                    LOGGER.info("Reset %d failed thumbnails for retry", reset)

    async def _run(self) -> None:
        LOGGER.info("Periodic scheduler started")
        try:
            if not await self._sleep(self._startup_delay):
                return
            try:
                await self.run_startup()
            except (OSError, sqlite3.Error) as exc:
                LOGGER.error("Startup quick scan failed: %s", exc)
            while await self._sleep(self._check_interval):
                await self.run_due()
        except Exception as exc:
            LOGGER.exception("Periodic scheduler crashed: %s", exc)
        finally:
            LOGGER.info("Periodic scheduler stopped")


__all__ = [
    "CHECK_INTERVAL_S",
    "PeriodicScheduler",
    "TASK_FULL_REFRESH",
    "TASK_MISSING_THUMBNAILS",
    "TASK_QUICK_SCAN",
    "TASK_UNMATCHED_RETRY",
]
