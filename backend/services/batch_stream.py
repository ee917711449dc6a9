"""
Batch Risk Stream - Ordered, incremental batch scanning

Flow per batch:
    validate -> dedupe -> quota check -> for each token:
        store hit  -> result (cached)
        store miss -> analyze with timeout -> result | error
    -> done

DESIGN:
- Invalid tokens are reported as error messages first and counted as failed;
  they never block the valid ones
- Quota is enforced on the deduplicated valid tokens, before anything is
  emitted (QuotaExceededError, whole batch rejected)
- Tokens are processed one at a time in input order, so results arrive in a
  reproducible order and progress only grows
- One slow or failing token never aborts the batch; done is always last
- Fresh scores are written to the store in the background; write failures
  are logged and never reach the caller
- Messages go into a StreamSink; the transport drains it. A closed sink
  (client gone) swallows sends, lets the current token finish, and stops
  dispatching new ones
"""

import asyncio
import json
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from infrastructure.config import BatchConfig
from infrastructure.errors import AnalysisTimeoutError, QuotaExceededError, RateLimitError, ValidationError
from infrastructure.risk_store import RiskStore
from security.access import CallerAccess
from security.validation import TokenRequest, TokenRequestIn, token_key, validate_token_request
from .risk_analyzer import RiskAnalyzer
from .risk_types import RiskScore

logger = logging.getLogger("BatchStream")

_END = object()


# ============================================
# SINK
# ============================================

class StreamSink:
    """
    Queue between the orchestrator and the transport.

    send() after close() is a silent no-op.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Dict[str, Any]) -> bool:
        if self._closed:
            return False
        await self._queue.put(message)
        return True

    def finish(self):
        """Producer is done; the reader stops after draining"""
        self._queue.put_nowait(_END)

    def close(self):
        """Reader is gone; drop everything from now on"""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    async def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        while True:
            message = await self._queue.get()
            if message is _END:
                return
            yield message


# ============================================
# MESSAGES
# ============================================

def progress_of(processed: int, total: int) -> Dict[str, int]:
    return {
        "processed": processed,
        "total": total,
        "percent": math.floor(processed * 100 / total + 0.5) if total else 100,
    }


@dataclass
class BatchPlan:
    """A validated batch ready to stream"""
    tokens: List[TokenRequest]
    invalid: List[Tuple[str, ValidationError]] = field(default_factory=list)
    limit: int = 0


@dataclass
class BatchCounters:
    succeeded: int = 0
    failed: int = 0
    cache_hits: int = 0


class BatchRiskStream:
    """
    Batch orchestrator over a RiskAnalyzer and a RiskStore.

    Usage:
        plan = batch.prepare(body.tokens, access)      # may raise QuotaExceededError
        async for message in batch.stream(plan):
            ...
    """

    def __init__(self, analyzer: RiskAnalyzer, store: RiskStore, config: Optional[BatchConfig] = None):
        self.analyzer = analyzer
        self.store = store
        self.config = config or BatchConfig()
        self._background: Set[asyncio.Task] = set()

        self._stats = {
            "batches": 0,
            "rejected": 0,
            "tokens": 0,
            "cache_hits": 0,
            "timeouts": 0,
            "rate_limited": 0,
            "store_write_failures": 0,
        }

    def batch_limit(self, access: CallerAccess) -> int:
        return self.config.limits.get(access.tier, self.config.default_limit)

    def prepare(self, tokens: List[TokenRequestIn], access: CallerAccess) -> BatchPlan:
        """
        Validate, dedupe and quota-check a batch.

        Raises:
            QuotaExceededError: more unique valid tokens than the caller's tier allows
        """
        valid: Dict[str, TokenRequest] = {}
        invalid: List[Tuple[str, ValidationError]] = []

        for raw in tokens:
            try:
                token = validate_token_request(raw)
            except ValidationError as e:
                invalid.append((token_key(raw.chainId, raw.address), e))
                continue
            # First occurrence wins
            valid.setdefault(token.key, token)

        limit = self.batch_limit(access)
        if len(valid) > limit:
            self._stats["rejected"] += 1
            logger.warning(f"Batch of {len(valid)} rejected for tier {access.tier} (limit {limit})")
            raise QuotaExceededError(limit, len(valid))

        return BatchPlan(tokens=list(valid.values()), invalid=invalid, limit=limit)

    async def run(self, plan: BatchPlan, sink: StreamSink):
        """Process the plan, writing every message into sink. Always finishes the sink."""
        started = time.monotonic()
        counters = BatchCounters()
        total = len(plan.tokens)
        self._stats["batches"] += 1

        try:
            for key, error in plan.invalid:
                await sink.send({"type": "error", "token": key, "error": error.message})
                counters.failed += 1

            await sink.send({"type": "progress", "progress": progress_of(0, total)})

            for processed, token in enumerate(plan.tokens, start=1):
                if sink.closed:
                    logger.info(f"Client disconnected, {total - processed + 1} tokens not dispatched")
                    break
                message = await self._process(token, counters)
                message["progress"] = progress_of(processed, total)
                await sink.send(message)

            await sink.send({
                "type": "done",
                "meta": {
                    "succeeded": counters.succeeded,
                    "failed": counters.failed,
                    "cacheHits": counters.cache_hits,
                    "processingTimeMs": int((time.monotonic() - started) * 1000),
                },
            })
            logger.info(
                f"Batch done: {counters.succeeded} ok, {counters.failed} failed, "
                f"{counters.cache_hits} cached"
            )
        finally:
            sink.finish()

    async def _process(self, token: TokenRequest, counters: BatchCounters) -> Dict[str, Any]:
        """One token to one result or error message (without progress)"""
        key = token.key
        self._stats["tokens"] += 1

        try:
            cached = await self.store.get_risk_score(token.chain_id, token.address)
            if cached is not None:
                counters.succeeded += 1
                counters.cache_hits += 1
                self._stats["cache_hits"] += 1
                return {"type": "result", "token": key, "result": cached.to_dict(), "cached": True}

            score = await asyncio.wait_for(
                self.analyzer.analyze(token.address, token.chain_id, token.liquidity or 0.0),
                timeout=self.config.analysis_timeout,
            )
        except asyncio.TimeoutError:
            counters.failed += 1
            self._stats["timeouts"] += 1
            logger.warning(f"Analysis of {key} timed out after {self.config.analysis_timeout}s")
            timeout = AnalysisTimeoutError(key, self.config.analysis_timeout)
            return {"type": "error", "token": key, "error": timeout.message, "code": timeout.code.value}
        except RateLimitError as e:
            counters.failed += 1
            self._stats["rate_limited"] += 1
            return {
                "type": "error",
                "token": key,
                "error": e.message,
                "code": e.code.value,
                "service": e.service,
                "retryAfter": e.retry_after,
            }
        except Exception as e:
            counters.failed += 1
            logger.error(f"Analysis of {key} failed: {e}")
            return {"type": "error", "token": key, "error": str(e) or type(e).__name__}

        counters.succeeded += 1
        self.schedule_persist(score)
        return {"type": "result", "token": key, "result": score.to_dict(), "cached": False}

    # ============================================
    # BACKGROUND WRITES
    # ============================================

    def _track(self, task: asyncio.Task):
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def schedule_persist(self, score: RiskScore):
        """Write score to the store without waiting for it"""
        self._track(asyncio.create_task(self._persist(score)))

    async def _persist(self, score: RiskScore):
        try:
            await self.store.upsert_risk_score(score)
        except Exception as e:
            self._stats["store_write_failures"] += 1
            logger.error(f"Failed to store risk score {score.chain_id}:{score.token_address}: {e}")

    async def wait_background(self):
        """Wait for pending background work (shutdown and tests)"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ============================================
    # STREAMING
    # ============================================

    async def stream(self, plan: BatchPlan) -> AsyncIterator[Dict[str, Any]]:
        """Run the plan in a background task and yield its messages in order"""
        sink = StreamSink()
        self._track(asyncio.create_task(self.run(plan, sink)))
        try:
            async for message in sink:
                yield message
        finally:
            sink.close()

    def get_stats(self) -> Dict:
        return {
            **self._stats,
            "pending_writes": len(self._background),
        }


# ============================================
# TRANSPORT ADAPTERS
# ============================================

def encode_sse(message: Dict[str, Any]) -> str:
    return f"data: {json.dumps(message)}\n\n"


async def sse_events(
    messages: AsyncIterator[Dict[str, Any]],
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    """Serialize stream messages as server-sent events until done or disconnect"""
    try:
        async for message in messages:
            if is_disconnected is not None and await is_disconnected():
                logger.info("Client disconnected, closing stream")
                break
            yield encode_sse(message)
    finally:
        await messages.aclose()


async def run_batch(
    batch: BatchRiskStream,
    tokens: List[TokenRequestIn],
    access: CallerAccess,
) -> List[Dict[str, Any]]:
    """Run a whole batch and collect its messages"""
    plan = batch.prepare(tokens, access)
    return [message async for message in batch.stream(plan)]


def summarize_batch(messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Fold a finished stream into the single JSON document of the batch endpoint"""
    results: Dict[str, Any] = {}
    errors: Dict[str, Any] = {}
    meta: Dict[str, Any] = {}

    for message in messages:
        if message["type"] == "result":
            results[message["token"]] = message["result"]
        elif message["type"] == "error":
            errors[message["token"]] = {
                k: message[k] for k in ("error", "code", "service", "retryAfter") if k in message
            }
        elif message["type"] == "done":
            meta = dict(message["meta"])

    data: Dict[str, Any] = {"results": results, "meta": meta}
    if errors:
        data["errors"] = errors
    return {"success": bool(results), "data": data}
