"""
Request Coalescer - Deduplicate concurrent identical provider fetches

When a batch of agents asks for the same token at once, only the first cache
miss goes upstream; the others await the same Future.

Used by ResponseCache when single-flight mode is enabled.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Callable, Awaitable, Set
from dataclasses import dataclass

logger = logging.getLogger("RequestCoalescer")


@dataclass
class InFlightRequest:
    """A fetch currently being processed"""
    future: asyncio.Future
    started_at: float
    waiter_count: int = 1


class RequestCoalescer:
    """
    Coalesces identical concurrent requests into one.

    1. Request comes in, check if the same key is in-flight
    2. If yes: await the existing Future
    3. If no: start the fetch, track its Future
    4. When the fetch completes: every waiter gets the result (or the exception)
    """

    def __init__(self):
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

        self._stats = {
            "coalesced": 0,
            "initiated": 0,
        }

    async def execute(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Run fetcher once per key among concurrent callers."""
        async with self._lock:
            if key in self._in_flight:
                in_flight = self._in_flight[key]
                in_flight.waiter_count += 1
                self._stats["coalesced"] += 1
                logger.debug(f"Coalescing {key} ({in_flight.waiter_count} waiters)")
                future = in_flight.future
            else:
                future = asyncio.get_running_loop().create_future()
                self._in_flight[key] = InFlightRequest(future=future, started_at=time.time())
                self._stats["initiated"] += 1
                task = asyncio.create_task(self._do_fetch(key, fetcher, future))
                self._tasks.add(task)
                task.add_done_callback(lambda t: self._fetch_done(t, key, future))

        # shield: one cancelled waiter must not cancel the shared fetch
        return await asyncio.shield(future)

    async def _do_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        future: asyncio.Future
    ):
        try:
            result = await fetcher()
            if not future.done():
                future.set_result(result)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        finally:
            async with self._lock:
                in_flight = self._in_flight.pop(key, None)
            if in_flight and in_flight.waiter_count > 1:
                logger.info(f"Coalesced {in_flight.waiter_count} requests for {key}")
            # Mark exception retrieved when nobody else is waiting
            if future.done() and not future.cancelled():
                future.exception()

    def _fetch_done(self, task: asyncio.Task, key: str, future: asyncio.Future):
        self._tasks.discard(task)
        # Cancelled before its first step: _do_fetch never ran its cleanup
        if task.cancelled() and not future.done():
            future.cancel()
            in_flight = self._in_flight.get(key)
            if in_flight and in_flight.future is future:
                del self._in_flight[key]

    def get_stats(self) -> Dict:
        total = self._stats["initiated"] + self._stats["coalesced"]
        return {
            **self._stats,
            "in_flight": len(self._in_flight),
            "running_fetches": len(self._tasks),
            "savings_rate": f"{self._stats['coalesced'] / max(1, total):.1%}",
        }
