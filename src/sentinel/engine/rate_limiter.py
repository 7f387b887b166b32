"""
Request pacing for one invocation.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional


class RateLimiter:
    """
    Paces request issue to at most ``qps`` requests per second.

    One limiter is shared by all lanes of an invocation, so the budget holds
    for the lanes together. Every caller reserves the next free issue slot
    under the lock and then sleeps until that slot outside of it; slots are
    ``1 / qps`` seconds apart. A qps of None or zero disables pacing.
    """

    def __init__(
        self,
        qps: Optional[float],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.qps = qps
        self.interval = 1.0 / qps if qps else 0.0
        self.clock = clock
        self.sleep = sleep
        self._next_slot: Optional[float] = None
        self.lock = asyncio.Lock()

    async def acquire(self) -> float:
        """Wait for permission to issue one request; returns the wait"""
        if not self.interval:
            return 0.0

        async with self.lock:
            now = self.clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self.interval

        wait_time = slot - now
        if wait_time > 0:
            await self.sleep(wait_time)
        return wait_time
