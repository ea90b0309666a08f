"""Tests for the periodic maintenance scheduler."""

from __future__ import annotations

import asyncio

from background.periodic import (
    TASK_FULL_REFRESH,
    TASK_MISSING_THUMBNAILS,
    TASK_QUICK_SCAN,
    TASK_UNMATCHED_RETRY,
    PeriodicScheduler,
)
from library.settings import ScannerSettings
from library.types import QuickScanResult, ScanResult


class FakeScanner:
    def __init__(self, settings: ScannerSettings) -> None:
        self.settings = settings
        self.calls: list = []

    async def quick_scan_all_libraries(self) -> QuickScanResult:
        self.calls.append(TASK_QUICK_SCAN)
        return QuickScanResult(files_added=1, libraries_scanned=1)

    async def refresh_all_libraries(self) -> ScanResult:
        self.calls.append(TASK_FULL_REFRESH)
        return ScanResult()

    async def retry_unmatched(self) -> int:
        self.calls.append(TASK_UNMATCHED_RETRY)
        return 0


class FakeThumbnailQueue:
    def __init__(self) -> None:
        self.queued = 0
        self.resets = 0

    def queue_missing_thumbnails(self) -> int:
        self.queued += 1
        return 0

    def reset_failed(self) -> int:
        self.resets += 1
        return 2


def _scheduler(settings: ScannerSettings, start: float = 0.0):
    scanner = FakeScanner(settings)
    queue = FakeThumbnailQueue()
    scheduler = PeriodicScheduler(scanner, queue, settings, clock=lambda: start)
    return scheduler, scanner, queue


def test_nothing_is_due_right_after_start() -> None:
    scheduler, _, _ = _scheduler(ScannerSettings())

    assert scheduler.due_tasks(0.0) == []


def test_due_tasks_follow_intervals() -> None:
    settings = ScannerSettings(
        quick_scan_interval_minutes=15,
        full_scan_interval_hours=0,
        unmatched_retry_minutes=360,
        missing_thumbnail_check_minutes=60,
    )
    scheduler, _, _ = _scheduler(settings)

    assert scheduler.due_tasks(15 * 60) == [TASK_QUICK_SCAN]
    assert scheduler.due_tasks(60 * 60) == [TASK_QUICK_SCAN, TASK_MISSING_THUMBNAILS]
    assert TASK_FULL_REFRESH not in scheduler.due_tasks(10**6)


def test_full_refresh_also_resets_quick_scan_timer() -> None:
    settings = ScannerSettings(quick_scan_interval_minutes=15, full_scan_interval_hours=1)
    scheduler, scanner, _ = _scheduler(settings)

    ran = asyncio.run(scheduler.run_due(3600.0))

    assert TASK_FULL_REFRESH in ran
    assert scanner.calls.count(TASK_FULL_REFRESH) == 1
    assert scheduler.due_tasks(3600.0 + 60) == []
    assert scheduler.due_tasks(3600.0 + 15 * 60) == [TASK_QUICK_SCAN]


def test_missing_thumbnail_sweep_resets_failures_when_enabled() -> None:
    settings = ScannerSettings(
        quick_scan_interval_minutes=0,
        unmatched_retry_minutes=0,
        missing_thumbnail_check_minutes=1,
        retry_failed_thumbnails=True,
    )
    scheduler, scanner, queue = _scheduler(settings)

    ran = asyncio.run(scheduler.run_due(60.0))

    assert ran == [TASK_MISSING_THUMBNAILS]
    assert (queue.queued, queue.resets) == (1, 1)
    assert scanner.calls == []


def test_missing_thumbnail_sweep_leaves_failures_by_default() -> None:
    settings = ScannerSettings(quick_scan_interval_minutes=0, unmatched_retry_minutes=0, missing_thumbnail_check_minutes=1)
    scheduler, _, queue = _scheduler(settings)

    asyncio.run(scheduler.run_due(60.0))

    assert (queue.queued, queue.resets) == (1, 0)


def test_unmatched_retry_runs_on_schedule() -> None:
    settings = ScannerSettings(quick_scan_interval_minutes=0, unmatched_retry_minutes=30, missing_thumbnail_check_minutes=0)
    scheduler, scanner, _ = _scheduler(settings)

    asyncio.run(scheduler.run_due(30 * 60.0))

    assert scanner.calls == [TASK_UNMATCHED_RETRY]


def test_startup_quick_scan_respects_setting() -> None:
    scheduler, scanner, _ = _scheduler(ScannerSettings(scan_on_startup=False))
    asyncio.run(scheduler.run_startup())
    assert scanner.calls == []

    scheduler, scanner, _ = _scheduler(ScannerSettings(scan_on_startup=True))
    asyncio.run(scheduler.run_startup())
    assert scanner.calls == [TASK_QUICK_SCAN]


def test_start_and_stop_before_startup_delay() -> None:
    scheduler, scanner, _ = _scheduler(ScannerSettings())
    scheduler._startup_delay = 10.0

    async def scenario() -> None:
        await scheduler.start()
        await asyncio.sleep(0)
        await scheduler.stop()

    asyncio.run(scenario())

    assert scanner.calls == []
