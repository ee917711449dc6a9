"""
Risk Router
Batch streaming and single-token risk endpoints
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from infrastructure.errors import QuotaExceededError
from sentry_config import capture_batch_breadcrumb
from security.access import CallerAccess
from security.validation import BatchRiskRequest, TokenRequestIn, validate_token_request
from services.batch_stream import run_batch, sse_events, summarize_batch
from .dependencies import get_caller_access, get_services

logger = logging.getLogger("RiskRouter")

router = APIRouter(prefix="/api/risk", tags=["Risk"])


def _request_id(request: Request) -> str:
    return request.headers.get("X-Request-ID") or f"req_{uuid.uuid4().hex[:16]}"


def _empty_batch(headers: dict) -> JSONResponse:
    return JSONResponse(
        {"success": True, "data": {"results": {}, "meta": {"requested": 0}}},
        headers=headers,
    )


def _quota_rejected(e: QuotaExceededError, headers: dict) -> JSONResponse:
    return JSONResponse(
        status_code=e.status_code,
        content={"success": False, "error": {"code": e.code.value, "message": e.message, "details": e.details}},
        headers=headers,
    )


@router.post("/batch-stream")
async def batch_stream(
    body: BatchRiskRequest,
    request: Request,
    access: CallerAccess = Depends(get_caller_access),
    services=Depends(get_services),
):
    """
    Stream risk scores for up to N tokens (N depends on the caller's tier).

    Events (text/event-stream, one `data: <json>` per event):
    - error:    invalid token, timeout, provider rate limit
    - progress: {processed, total, percent}
    - result:   {token, result, cached, progress}
    - done:     {meta: {succeeded, failed, cacheHits, processingTimeMs}}
    """
    request_id = _request_id(request)
    headers = {"X-Request-ID": request_id}

    if not body.tokens:
        return _empty_batch(headers)

    try:
        plan = services.batch_stream.prepare(body.tokens, access)
    except QuotaExceededError as e:
        return _quota_rejected(e, headers)

    logger.info(f"[{request_id}] Streaming {len(plan.tokens)} tokens ({len(plan.invalid)} invalid) "
                f"for {access.kind}/{access.tier}")
    capture_batch_breadcrumb(request_id, len(plan.tokens), access.tier)

    return StreamingResponse(
        sse_events(services.batch_stream.stream(plan), request.is_disconnected),
        media_type="text/event-stream",
        headers={
            **headers,
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-API-Version": services.config.api_version,
        },
    )


@router.post("/batch")
async def batch_json(
    body: BatchRiskRequest,
    request: Request,
    access: CallerAccess = Depends(get_caller_access),
    services=Depends(get_services),
):
    """Same pipeline as /batch-stream, answered as one JSON document once every token is done."""
    headers = {"X-Request-ID": _request_id(request), "X-API-Version": services.config.api_version}

    if not body.tokens:
        return _empty_batch(headers)

    try:
        messages = await run_batch(services.batch_stream, body.tokens, access)
    except QuotaExceededError as e:
        return _quota_rejected(e, headers)

    response = summarize_batch(messages)
    response["data"]["meta"]["requested"] = len(body.tokens)
    return JSONResponse(response, headers=headers)


@router.get("/{chain}/{address}")
async def token_risk(
    chain: str,
    address: str,
    liquidity: Optional[float] = Query(default=None, ge=0),
    services=Depends(get_services),
):
    """
    Risk score for a single token.
    Served from the store when fresh, otherwise analyzed and stored.
    """
    token = validate_token_request(TokenRequestIn(address=address, chainId=chain, liquidity=liquidity))

    cached = await services.store.get_risk_score(token.chain_id, token.address)
    if cached is not None:
        return {"success": True, "data": cached.to_dict(), "cached": True}

    score = await services.analyzer.analyze(token.address, token.chain_id, token.liquidity or 0.0)
    services.batch_stream.schedule_persist(score)

    return {"success": True, "data": score.to_dict(), "cached": False}
