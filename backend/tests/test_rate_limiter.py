"""
Outbound rate limiter and sweeper tests
"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from infrastructure.api_cache import ResponseCache
from infrastructure.errors import RateLimitError
from infrastructure.rate_limiter import RateLimiter
from infrastructure.sweeper import Sweeper, sweep_once


class TestFixedWindow:

    def test_allows_up_to_limit_then_rejects(self, clock):
        limiter = RateLimiter(clock=clock)

        for i in range(5):
            result = limiter.check_limit("goplus", 5)
            assert result.allowed
            assert result.remaining == 4 - i

        rejected = limiter.check_limit("goplus", 5)
        assert not rejected.allowed
        assert rejected.remaining == 0
        assert rejected.retry_after == 60

    def test_retry_after_counts_down_to_one(self, clock):
        limiter = RateLimiter(clock=clock)
        limiter.check_limit("goplus", 1)

        clock.advance(30)
        assert limiter.check_limit("goplus", 1).retry_after == 30

        clock.advance(29.5)
        assert limiter.check_limit("goplus", 1).retry_after == 1

        # reset_at itself still belongs to the old window
        clock.now = limiter.get_usage("goplus").reset_at
        assert limiter.check_limit("goplus", 1).retry_after == 1

    def test_window_resets_after_reset_at(self, clock):
        limiter = RateLimiter(clock=clock)
        limiter.check_limit("goplus", 1)
        assert not limiter.check_limit("goplus", 1).allowed

        clock.advance(60.5)
        assert limiter.check_limit("goplus", 1).allowed
        assert limiter.get_usage("goplus").count == 1

    def test_services_have_independent_windows(self, clock):
        limiter = RateLimiter(clock=clock)
        limiter.check_limit("goplus", 1)

        assert not limiter.check_limit("goplus", 1).allowed
        assert limiter.check_limit("helius", 1).allowed


class TestCheckAndExecute:

    def test_check_raises_rate_limit_error(self, clock):
        limiter = RateLimiter(limits={"goplus": 1}, clock=clock)
        limiter.check("goplus")

        with pytest.raises(RateLimitError) as exc_info:
            limiter.check("goplus")

        assert exc_info.value.service == "goplus"
        assert exc_info.value.retry_after == 60
        assert exc_info.value.status_code == 429

    def test_unknown_service_is_a_programming_error(self):
        limiter = RateLimiter()
        with pytest.raises(KeyError):
            limiter.check("nobody")

    @pytest.mark.asyncio
    async def test_execute_skips_fetcher_when_over_budget(self, clock):
        limiter = RateLimiter(limits={"alchemy": 1}, clock=clock)
        fetcher = AsyncMock(return_value="0x")

        assert await limiter.execute("alchemy", fetcher) == "0x"
        with pytest.raises(RateLimitError):
            await limiter.execute("alchemy", fetcher)

        assert fetcher.await_count == 1, "❌ Rejected call must never reach the provider"

    def test_reset_and_stats(self, clock):
        limiter = RateLimiter(limits={"goplus": 1}, clock=clock)
        limiter.check("goplus")
        with pytest.raises(RateLimitError):
            limiter.check("goplus")

        stats = limiter.get_stats()
        assert stats["allowed"] == 1
        assert stats["rejected"] == 1
        assert stats["windows"]["goplus"]["limit"] == 1

        limiter.reset("goplus")
        limiter.check("goplus")


class TestSweeper:

    def test_sweep_once_cleans_cache_and_windows(self, clock):
        cache = ResponseCache(clock=clock)
        limiter = RateLimiter(clock=clock)
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=1000)
        limiter.check_limit("goplus", 10)

        clock.advance(120)
        removed = sweep_once(cache, limiter)

        assert removed == {"cache_entries": 1, "rate_windows": 1}
        assert limiter.get_usage("goplus") is None
        assert cache.has("b")

    @pytest.mark.asyncio
    async def test_background_loop_runs_and_stops(self, clock):
        cache = ResponseCache(clock=clock)
        limiter = RateLimiter(clock=clock)
        cache.set("a", 1, ttl=1)
        clock.advance(5)

        sweeper = Sweeper(cache, limiter, interval=0.01)
        sweeper.start()
        assert sweeper.running

        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert not sweeper.running
        assert cache.get_stats()["size"] == 0
