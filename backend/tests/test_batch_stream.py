"""
Batch risk stream tests

Covers ordering of stream messages, per-token failure isolation, quota
enforcement, store hits, background persistence and client disconnects.
"""
import asyncio
import logging

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from infrastructure.config import BatchConfig
from infrastructure.errors import QuotaExceededError, RateLimitError
from security.access import ANONYMOUS, CallerAccess
from security.validation import TokenRequestIn
from services.batch_stream import (
    BatchRiskStream,
    StreamSink,
    encode_sse,
    progress_of,
    run_batch,
    sse_events,
    summarize_batch,
)
from services.risk_analyzer import RiskAnalyzer, create_safe_risk_score


def evm_token(i: int, chain: str = "ethereum", **kwargs) -> TokenRequestIn:
    return TokenRequestIn(address=f"0x{i:040x}", chainId=chain, **kwargs)


def score_for(address, chain_id, liquidity=0.0):
    return create_safe_risk_score(address, chain_id, liquidity)


@pytest.fixture
def store():
    store = MagicMock()
    store.get_risk_score = AsyncMock(return_value=None)
    store.upsert_risk_score = AsyncMock(return_value=None)
    return store


@pytest.fixture
def analyzer():
    analyzer = MagicMock()
    analyzer.analyze = AsyncMock(side_effect=score_for)
    return analyzer


@pytest.fixture
def planner(analyzer, store):
    """Batch used only for prepare(), never streamed"""
    return BatchRiskStream(analyzer, store, BatchConfig())


@pytest_asyncio.fixture
async def batch(analyzer, store):
    batch = BatchRiskStream(analyzer, store, BatchConfig())
    yield batch
    await batch.wait_background()


def of_type(messages, kind):
    return [m for m in messages if m["type"] == kind]


class TestBatchScenario:

    @pytest.mark.asyncio
    async def test_zero_address_and_malformed_address(self, mock_clients, store, test_addresses):
        batch = BatchRiskStream(RiskAnalyzer(mock_clients), store, BatchConfig())
        tokens = [
            TokenRequestIn(address=test_addresses["ZERO"], chainId="ethereum"),
            TokenRequestIn(address="0xBADBAD", chainId="ethereum"),
        ]

        messages = await run_batch(batch, tokens, ANONYMOUS)
        await batch.wait_background()

        errors = of_type(messages, "error")
        results = of_type(messages, "result")
        assert len(errors) == 1
        assert errors[0]["token"] == "ethereum-0xBADBAD"
        assert errors[0]["error"] == "Invalid ethereum address format"
        assert len(results) == 1
        assert results[0]["result"]["totalScore"] == 0
        assert results[0]["cached"] is False

        assert messages[0]["type"] == "error", "❌ Validation errors should come first"
        assert messages[-1]["type"] == "done"
        assert messages[-1]["meta"]["succeeded"] == 1
        assert messages[-1]["meta"]["failed"] == 1
        store.upsert_risk_score.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, batch):
        messages = await run_batch(batch, [evm_token(i) for i in range(1, 4)], ANONYMOUS)

        assert messages[0] == {"type": "progress", "progress": {"processed": 0, "total": 3, "percent": 0}}
        percents = [m["progress"]["percent"] for m in of_type(messages, "result")]
        assert percents == [33, 67, 100]
        assert [m["token"] for m in of_type(messages, "result")] == [
            f"ethereum-0x{i:040x}" for i in range(1, 4)
        ]

    def test_progress_of_empty_batch(self):
        assert progress_of(0, 0) == {"processed": 0, "total": 0, "percent": 100}

    @pytest.mark.parametrize("processed,total,percent", [
        (1, 8, 13),
        (5, 8, 63),
        (1, 200, 1),
        (1, 3, 33),
        (2, 3, 67),
    ])
    def test_progress_rounds_halves_up(self, processed, total, percent):
        assert progress_of(processed, total)["percent"] == percent

    @pytest.mark.asyncio
    async def test_invalid_chain_reported(self, batch):
        messages = await run_batch(batch, [TokenRequestIn(address="0x" + "1" * 40, chainId="bsc")], ANONYMOUS)

        assert messages[0]["error"] == "Invalid chain 'bsc'"
        assert messages[-1]["meta"] == {
            "succeeded": 0,
            "failed": 1,
            "cacheHits": 0,
            "processingTimeMs": messages[-1]["meta"]["processingTimeMs"],
        }


class TestDedupAndQuota:

    @pytest.mark.asyncio
    async def test_first_occurrence_wins(self, batch, analyzer, test_addresses):
        usdc = test_addresses["USDC"]
        tokens = [
            TokenRequestIn(address=usdc, chainId="ethereum", liquidity=1_000),
            TokenRequestIn(address=usdc.lower(), chainId="ethereum", liquidity=9_999),
            TokenRequestIn(address=usdc, chainId="base"),
        ]

        messages = await run_batch(batch, tokens, ANONYMOUS)

        assert [m["token"] for m in of_type(messages, "result")] == [
            f"ethereum-{usdc.lower()}",
            f"base-{usdc.lower()}",
        ]
        analyzer.analyze.assert_any_await(usdc.lower(), "ethereum", 1_000)

    def test_quota_rejects_whole_batch(self, planner):
        with pytest.raises(QuotaExceededError) as exc_info:
            planner.prepare([evm_token(i) for i in range(1, 12)], ANONYMOUS)

        assert exc_info.value.limit == 10
        assert exc_info.value.requested == 11
        assert exc_info.value.status_code == 400

    def test_quota_counts_unique_valid_tokens(self, planner):
        tokens = [evm_token(i) for i in range(1, 11)]
        tokens += [evm_token(1), evm_token(2)]
        tokens += [TokenRequestIn(address="nope", chainId="ethereum")] * 3

        plan = planner.prepare(tokens, ANONYMOUS)
        assert len(plan.tokens) == 10
        assert len(plan.invalid) == 3

    def test_tier_limits(self, planner):
        pro = CallerAccess(kind="human", tier="pro")
        plan = planner.prepare([evm_token(i) for i in range(1, 51)], pro)
        assert plan.limit == 50

        business = CallerAccess(kind="agent", tier="business")
        assert planner.batch_limit(business) == 100
        assert planner.batch_limit(CallerAccess(kind="agent", tier="scale")) == 100
        assert planner.batch_limit(ANONYMOUS) == 10
        assert planner.batch_limit(CallerAccess(kind="agent", tier="mystery")) == 10

    @pytest.mark.asyncio
    async def test_rejected_batch_emits_nothing(self, batch, analyzer):
        with pytest.raises(QuotaExceededError):
            await run_batch(batch, [evm_token(i) for i in range(1, 12)], ANONYMOUS)
        analyzer.analyze.assert_not_awaited()


class TestPerTokenFailures:

    @pytest.mark.asyncio
    async def test_timeout_does_not_stop_the_batch(self, analyzer, store):
        slow = f"0x{1:040x}"

        async def analyze(address, chain_id, liquidity=0.0):
            if address == slow:
                await asyncio.sleep(5)
            return score_for(address, chain_id, liquidity)

        analyzer.analyze = AsyncMock(side_effect=analyze)
        batch = BatchRiskStream(analyzer, store, BatchConfig(analysis_timeout=0.05))

        messages = await run_batch(batch, [evm_token(1), evm_token(2)], ANONYMOUS)

        errors = of_type(messages, "error")
        assert len(errors) == 1
        assert errors[0]["error"] == "Analysis timed out"
        assert errors[0]["code"] == "TIMEOUT_ERROR"
        assert errors[0]["progress"]["processed"] == 1
        assert len(of_type(messages, "result")) == 1
        assert batch.get_stats()["timeouts"] == 1

    @pytest.mark.asyncio
    async def test_rate_limit_error_carries_retry_hint(self, batch, analyzer):
        analyzer.analyze = AsyncMock(side_effect=RateLimitError("goplus", 42))

        messages = await run_batch(batch, [evm_token(1)], ANONYMOUS)

        error = of_type(messages, "error")[0]
        assert error["code"] == "RATE_LIMITED"
        assert error["service"] == "goplus"
        assert error["retryAfter"] == 42
        assert messages[-1]["meta"]["failed"] == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_error_message(self, batch, analyzer):
        analyzer.analyze = AsyncMock(side_effect=[RuntimeError("boom"), score_for(f"0x{2:040x}", "ethereum")])

        messages = await run_batch(batch, [evm_token(1), evm_token(2)], ANONYMOUS)

        assert of_type(messages, "error")[0]["error"] == "boom"
        assert messages[-1]["meta"]["succeeded"] == 1
        assert messages[-1]["meta"]["failed"] == 1


class TestStoreInteraction:

    @pytest.mark.asyncio
    async def test_store_hit_skips_analysis(self, batch, analyzer, store):
        address = f"0x{1:040x}"
        store.get_risk_score = AsyncMock(return_value=score_for(address, "ethereum"))

        messages = await run_batch(batch, [evm_token(1)], ANONYMOUS)

        result = of_type(messages, "result")[0]
        assert result["cached"] is True
        assert messages[-1]["meta"]["cacheHits"] == 1
        analyzer.analyze.assert_not_awaited()
        store.upsert_risk_score.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_persist_failure_is_logged_not_reported(self, batch, store, caplog):
        store.upsert_risk_score = AsyncMock(side_effect=RuntimeError("db down"))

        with caplog.at_level(logging.ERROR, logger="BatchStream"):
            messages = await run_batch(batch, [evm_token(1)], ANONYMOUS)
            await batch.wait_background()

        assert of_type(messages, "error") == []
        assert messages[-1]["meta"]["succeeded"] == 1
        assert batch.get_stats()["store_write_failures"] == 1
        assert "db down" in caplog.text

    @pytest.mark.asyncio
    async def test_persist_does_not_delay_results(self, batch, store):
        release = asyncio.Event()

        async def slow_upsert(score):
            await release.wait()

        store.upsert_risk_score = AsyncMock(side_effect=slow_upsert)

        messages = await run_batch(batch, [evm_token(1)], ANONYMOUS)
        assert messages[-1]["type"] == "done"
        store.upsert_risk_score.assert_awaited_once()
        assert batch.get_stats()["pending_writes"] >= 1

        release.set()
        await batch.wait_background()
        assert batch.get_stats()["pending_writes"] == 0


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_closed_sink_stops_dispatch(self, batch, analyzer):
        sink = StreamSink()

        async def analyze_then_disconnect(address, chain_id, liquidity=0.0):
            sink.close()
            return score_for(address, chain_id, liquidity)

        analyzer.analyze = AsyncMock(side_effect=analyze_then_disconnect)
        plan = batch.prepare([evm_token(i) for i in range(1, 4)], ANONYMOUS)

        await batch.run(plan, sink)

        assert analyzer.analyze.await_count == 1, "❌ No new token should start after disconnect"
        assert await sink.send({"type": "done"}) is False

    @pytest.mark.asyncio
    async def test_consumer_leaving_early(self, batch, analyzer):
        async def slow(address, chain_id, liquidity=0.0):
            await asyncio.sleep(0.01)
            return score_for(address, chain_id, liquidity)

        analyzer.analyze = AsyncMock(side_effect=slow)
        plan = batch.prepare([evm_token(i) for i in range(1, 6)], ANONYMOUS)

        stream = batch.stream(plan)
        first = await stream.__anext__()
        await stream.aclose()
        await batch.wait_background()

        assert first["type"] == "progress"
        assert analyzer.analyze.await_count < 5


class TestServerSentEvents:

    def test_encode_sse(self):
        assert encode_sse({"type": "done"}) == 'data: {"type": "done"}\n\n'

    @pytest.mark.asyncio
    async def test_stops_when_client_disconnects(self):
        closed = False

        async def messages():
            nonlocal closed
            try:
                for i in range(3):
                    yield {"type": "progress", "n": i}
            finally:
                closed = True

        checks = iter([False, True, True])

        async def is_disconnected():
            return next(checks)

        events = [e async for e in sse_events(messages(), is_disconnected)]

        assert events == ['data: {"type": "progress", "n": 0}\n\n']
        assert closed, "❌ Upstream generator should be closed"


class TestSummarizeBatch:

    @pytest.mark.asyncio
    async def test_folds_stream_into_results_and_errors(self, batch, analyzer):
        analyzer.analyze = AsyncMock(side_effect=[RateLimitError("goplus", 42), score_for(f"0x{2:040x}", "ethereum")])
        tokens = [evm_token(1), evm_token(2), TokenRequestIn(address="nope", chainId="ethereum")]

        summary = summarize_batch(await run_batch(batch, tokens, ANONYMOUS))

        assert summary["success"] is True
        data = summary["data"]
        assert list(data["results"]) == [f"ethereum-0x{2:040x}"]
        assert data["errors"][f"ethereum-0x{1:040x}"] == {
            "error": "goplus rate limit exceeded. Retry after 42s",
            "code": "RATE_LIMITED",
            "service": "goplus",
            "retryAfter": 42,
        }
        assert data["errors"]["ethereum-nope"]["error"] == "Invalid ethereum address format"
        assert data["meta"]["succeeded"] == 1
        assert data["meta"]["failed"] == 2

    def test_all_failed(self):
        summary = summarize_batch([
            {"type": "error", "token": "base-x", "error": "Invalid base address format", "code": "INVALID_ADDRESS"},
            {"type": "done", "meta": {"succeeded": 0, "failed": 1, "cacheHits": 0, "processingTimeMs": 1}},
        ])

        assert summary["success"] is False
        assert summary["data"]["results"] == {}
        assert "errors" in summary["data"]
