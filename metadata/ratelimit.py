"""Per-provider request spacing."""
from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional


class RateLimiter:
    """Serialise calls so two turns never start less than ``min_interval`` apart.

    One instance is shared by every caller of a provider. The lock is held
    while waiting, so concurrent callers queue behind each other.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._lock: Optional[asyncio.Lock] = None
        self._next_allowed = 0.0

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def await_turn(self) -> None:
        async with self._get_lock():
            now = self._clock()
            wait_s = self._next_allowed - now
            if wait_s > 0:
                await self._sleep(wait_s)
                now = self._clock()
            self._next_allowed = max(now, self._next_allowed) + self.min_interval


def build_limiters(intervals_s: Dict[str, float]) -> Dict[str, RateLimiter]:
    return {provider: RateLimiter(interval) for provider, interval in intervals_s.items()}


__all__ = ["RateLimiter", "build_limiters"]
