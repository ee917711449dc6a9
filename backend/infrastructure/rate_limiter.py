"""
Rate Limiter - Outbound call budget per external provider

Batch scans fan out to GoPlus, Alchemy and Helius. Each provider has a
per-minute quota; exhausting it gets us 429s or a ban, so every outbound call
passes through here first.

DESIGN:
- Fixed window per service, opened by the first call, 60s long
- Window resets on the first call after reset_at (not a sliding window,
  bursts at window boundaries are accepted)
- Over budget -> RateLimitError with retry_after, never a silent retry
- Windows whose reset_at has passed are swept periodically (see sweeper.py)
"""

import logging
import math
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from dataclasses import dataclass

from .errors import RateLimitError

logger = logging.getLogger("RateLimiter")


# Calls per minute by provider
API_LIMITS = {
    "goplus": 60,          # free tier
    "dexscreener": 300,
    "helius": 100,
    "alchemy": 330,
    "geckoterminal": 30,
}

WINDOW_SECONDS = 60


@dataclass
class RateWindow:
    """Call count for one service inside the current window"""
    count: int
    reset_at: float


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: Optional[int] = None


class RateLimiter:
    """
    Fixed-window limiter keyed by service name.

    BEHAVIOR:
    - Under budget: call counted, allowed
    - Over budget: rejected with seconds until the window resets
    """

    def __init__(
        self,
        limits: Optional[Dict[str, int]] = None,
        window_seconds: int = WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.limits = dict(limits or API_LIMITS)
        self.window_seconds = window_seconds
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._clock = clock

        self._stats = {
            "allowed": 0,
            "rejected": 0,
        }

    def check_limit(self, service: str, max_per_minute: int) -> RateLimitResult:
        """Count one call against service's window."""
        with self._lock:
            now = self._clock()
            window = self._windows.get(service)

            if window is None or now > window.reset_at:
                self._windows[service] = RateWindow(count=1, reset_at=now + self.window_seconds)
                self._stats["allowed"] += 1
                return RateLimitResult(allowed=True, remaining=max_per_minute - 1)

            if window.count < max_per_minute:
                window.count += 1
                self._stats["allowed"] += 1
                return RateLimitResult(allowed=True, remaining=max_per_minute - window.count)

            self._stats["rejected"] += 1
            retry_after = max(1, math.ceil(window.reset_at - now))
            return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)

    def check(self, service: str):
        """Check the configured budget for service. Raises RateLimitError when exhausted."""
        limit = self.limits.get(service)
        if limit is None:
            raise KeyError(f"No rate limit configured for '{service}'")

        result = self.check_limit(service, limit)
        if not result.allowed:
            logger.warning(f"{service} rate limit exceeded, retry after {result.retry_after}s")
            raise RateLimitError(service, result.retry_after or self.window_seconds)

    async def execute(self, service: str, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        """
        Execute an outbound call under the service's budget.

        Args:
            service: Provider name (key of API_LIMITS)
            fetcher: Async function performing the call

        Returns:
            Result from fetcher
        """
        self.check(service)
        return await fetcher()

    def get_usage(self, service: str) -> Optional[RateWindow]:
        with self._lock:
            window = self._windows.get(service)
            return RateWindow(window.count, window.reset_at) if window else None

    def reset(self, service: str):
        with self._lock:
            self._windows.pop(service, None)

    def cleanup(self) -> int:
        """Drop windows that already expired. Returns count removed."""
        with self._lock:
            now = self._clock()
            expired = [s for s, w in self._windows.items() if now > w.reset_at]
            for service in expired:
                del self._windows[service]
        return len(expired)

    def get_stats(self) -> Dict:
        with self._lock:
            return {
                **self._stats,
                "windows": {
                    service: {
                        "count": w.count,
                        "limit": self.limits.get(service),
                        "reset_at": w.reset_at,
                    }
                    for service, w in self._windows.items()
                },
            }
