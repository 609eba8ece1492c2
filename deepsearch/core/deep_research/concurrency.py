"""
Global concurrency limiter for search + processing units.

One limiter is built per research call and passed down the whole tree, so
the cap holds regardless of recursion depth.
"""

import asyncio
from contextlib import asynccontextmanager
from loguru import logger


class ConcurrencyLimiter:
    """
    Semaphore-backed slot pool.

    Example:
        limiter = ConcurrencyLimiter(max_concurrent=2, name="research")
        async with limiter.acquire():
            await search_and_process()
    """

    def __init__(self, max_concurrent: int = 2, *, name: str = ""):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.name = name
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._active_count = 0
        self._peak_count = 0
        self._total_count = 0

    @property
    def active_count(self) -> int:
        """Units currently holding a slot"""
        return self._active_count

    @property
    def peak_count(self) -> int:
        """Highest number of units that held a slot at once"""
        return self._peak_count

    @property
    def total_count(self) -> int:
        return self._total_count

    @asynccontextmanager
    async def acquire(self):
        """Hold one slot for the duration of the context."""
        async with self._semaphore:
            self._active_count += 1
            self._total_count += 1
            self._peak_count = max(self._peak_count, self._active_count)
            logger.trace(f"[ConcurrencyLimiter] {self.name}: {self._active_count}/{self.max_concurrent} active")
            try:
                yield
            finally:
                self._active_count -= 1
