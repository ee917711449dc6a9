"""
Cache & Rate Window Sweeper
Background task that drops expired cache entries and stale rate windows.
Entries nobody reads again would otherwise stay in memory forever.
"""
import asyncio
import logging
from typing import Optional

from .api_cache import ResponseCache
from .rate_limiter import RateLimiter

logger = logging.getLogger("Sweeper")


def sweep_once(cache: ResponseCache, rate_limiter: RateLimiter) -> dict:
    """Run one cleanup pass. Returns how many items were removed."""
    removed = {
        "cache_entries": cache.cleanup(),
        "rate_windows": rate_limiter.cleanup(),
    }
    if removed["cache_entries"] or removed["rate_windows"]:
        logger.info(
            f"[Sweeper] Removed {removed['cache_entries']} cache entries, "
            f"{removed['rate_windows']} rate windows"
        )
    return removed


class Sweeper:
    """
    Periodic cleanup loop. Started by the FastAPI lifespan, cancelled on shutdown.
    """

    def __init__(self, cache: ResponseCache, rate_limiter: RateLimiter, interval: float = 300):
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self):
        logger.info(f"[Sweeper] Background loop started (interval: {self.interval}s)")
        while True:
            await asyncio.sleep(self.interval)
            try:
                sweep_once(self.cache, self.rate_limiter)
            except Exception as e:
                logger.error(f"[Sweeper] Loop error: {e}")

    def start(self):
        """Schedule the loop on the running event loop"""
        if not self.running:
            self._task = asyncio.create_task(self._loop())

    async def stop(self):
        """Cancel the loop and wait for it to exit"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[Sweeper] Background task stopped")
