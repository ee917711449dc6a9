"""
API Cache Manager - In-memory TTL cache for external provider responses

Several agents scanning the same tokens would otherwise hit GoPlus, Alchemy and
Helius with identical requests. Entries carry the service that produced them so
one provider's data can be invalidated without touching the rest.

DESIGN:
- In-memory dict guarded by a re-entrant lock (no awaits while held)
- TTL per data class, checked lazily on read
- Background sweep removes expired entries nobody reads (see sweeper.py)
- get_or_fetch is not atomic: two concurrent misses may both fetch.
  single_flight=True routes misses through a RequestCoalescer instead.
"""

import logging
import threading
import time
from typing import Any, Callable, Awaitable, Dict, Optional
from dataclasses import dataclass

from .request_coalescer import RequestCoalescer

logger = logging.getLogger("ApiCache")

_MISSING = object()


# TTL by data class (seconds)
CACHE_TTL = {
    "tokenSecurity": 5 * 60,   # changes rarely
    "tokenMetrics": 30,        # prices move constantly
    "holderData": 5 * 60,
    "poolData": 60,
    "trending": 2 * 60,
    "search": 30,
}


@dataclass
class CacheEntry:
    """Single cache entry. Never handed out of the cache."""
    data: Any
    expires_at: float
    service: str

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ResponseCache:
    """
    TTL cache with hit/miss statistics.

    Usage:
        cache = ResponseCache()
        security = await cache.get_or_fetch(
            f"goplus:{chain}:{address}",
            lambda: client.fetch(...),
            CACHE_TTL["tokenSecurity"],
            "goplus",
        )
    """

    def __init__(
        self,
        ttl_config: Optional[Dict[str, int]] = None,
        single_flight: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._clock = clock
        self.ttl_config = dict(ttl_config or CACHE_TTL)
        self._coalescer = RequestCoalescer() if single_flight else None

        self._stats = {
            "hits": 0,
            "misses": 0,
        }

    @property
    def single_flight(self) -> bool:
        return self._coalescer is not None

    def ttl_for(self, data_class: str) -> int:
        return self.ttl_config[data_class]

    def _lookup(self, key: str) -> Any:
        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._stats["misses"] += 1
                return _MISSING

            if entry.is_expired(self._clock()):
                del self._cache[key]
                self._stats["misses"] += 1
                return _MISSING

            self._stats["hits"] += 1
            return entry.data

    def get(self, key: str) -> Optional[Any]:
        """Cached value if present and fresh, else None (counted as a miss)."""
        data = self._lookup(key)
        return None if data is _MISSING else data

    def set(self, key: str, data: Any, ttl: float, service: str = "unknown"):
        """Store value for ttl seconds."""
        with self._lock:
            self._cache[key] = CacheEntry(
                data=data,
                expires_at=self._clock() + ttl,
                service=service,
            )

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._cache[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def invalidate_service(self, service: str) -> int:
        """Drop every entry produced by one provider. Returns count removed."""
        with self._lock:
            keys = [k for k, entry in self._cache.items() if entry.service == service]
            for key in keys:
                del self._cache[key]
        if keys:
            logger.info(f"Invalidated {len(keys)} {service} entries")
        return len(keys)

    def cleanup(self) -> int:
        """Remove all expired entries. Returns count removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._cache.items() if entry.is_expired(now)]
            for key in expired:
                del self._cache[key]
        return len(expired)

    def clear(self):
        with self._lock:
            self._cache.clear()
        logger.info("Cache cleared")

    def get_stats(self) -> Dict:
        """Cache statistics for monitoring."""
        with self._lock:
            hits = self._stats["hits"]
            misses = self._stats["misses"]
            total = hits + misses
            return {
                "hits": hits,
                "misses": misses,
                "size": len(self._cache),
                "hit_rate": hits / total if total > 0 else 0,
            }

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl: float,
        service: str,
    ) -> Any:
        """
        Return the cached value or fetch, store and return a fresh one.

        A None result is stored like any other value. Fetcher exceptions
        propagate and nothing is cached.
        """
        cached = self._lookup(key)
        if cached is not _MISSING:
            return cached

        async def fetch_and_store():
            data = await fetcher()
            self.set(key, data, ttl, service)
            return data

        if self._coalescer is not None:
            return await self._coalescer.execute(key, fetch_and_store)
        return await fetch_and_store()
