"""
Risk Store - Persistent risk scores in Supabase (PostgREST over httpx)

Scores live one hour in the risk_scores table. The batch stream reads here
before analyzing and writes fresh scores back without waiting for the write.

Pattern follows infrastructure/supabase_rest.py (no SDK dependency), but async
and sharing the application's httpx.AsyncClient.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

import httpx

from security.validation import normalize_address
from services.risk_types import (
    ContractRisk,
    HolderRisk,
    HoneypotRisk,
    LiquidityRisk,
    RiskLevel,
    RiskScore,
    RiskWarning,
)
from .config import StoreConfig

logger = logging.getLogger("RiskStore")


class RiskStore(Protocol):
    async def get_risk_score(self, chain_id: str, address: str) -> Optional[RiskScore]:
        ...

    async def upsert_risk_score(self, score: RiskScore) -> None:
        ...


class NullRiskStore:
    """Store used when Supabase is not configured: never hits, drops writes"""

    async def get_risk_score(self, chain_id: str, address: str) -> Optional[RiskScore]:
        return None

    async def upsert_risk_score(self, score: RiskScore) -> None:
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# ROW MAPPING
# ============================================

def risk_score_to_row(score: RiskScore, ttl_seconds: int = 3600, now: datetime = None) -> Dict[str, Any]:
    """Flatten a RiskScore into a risk_scores row"""
    now = now or _utcnow()
    return {
        "token_address": normalize_address(score.token_address, score.chain_id),
        "chain_id": score.chain_id,
        "total_score": score.total_score,
        "risk_level": score.level.value,
        "liquidity_score": score.liquidity.score,
        "liquidity_usd": score.liquidity.liquidity,
        "lp_locked": score.liquidity.lp_locked,
        "lp_locked_percent": score.liquidity.lp_locked_percent,
        "holder_score": score.holders.score,
        "total_holders": score.holders.total_holders,
        "top_10_percent": score.holders.top10_percent,
        "creator_percent": score.holders.creator_holding_percent,
        "contract_score": score.contract.score,
        "is_verified": score.contract.verified,
        "is_renounced": score.contract.renounced,
        "has_mint": score.contract.has_mint_function,
        "has_pause": score.contract.has_pause_function,
        "has_blacklist": score.contract.has_blacklist_function,
        "max_tax_percent": score.contract.max_tax_percent,
        "honeypot_score": score.honeypot.score,
        "is_honeypot": score.honeypot.is_honeypot,
        "buy_tax": score.honeypot.buy_tax,
        "sell_tax": score.honeypot.sell_tax,
        "cannot_sell": score.honeypot.cannot_sell,
        "warnings": [w.to_dict() for w in score.warnings],
        "analyzed_at": score.analyzed_at,
        "expires_at": (now + timedelta(seconds=ttl_seconds)).isoformat(),
    }


def _num(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def risk_score_from_row(row: Dict[str, Any]) -> RiskScore:
    """Rebuild a RiskScore from a risk_scores row. Sub-score warnings are not stored."""
    return RiskScore(
        token_address=row["token_address"],
        chain_id=row["chain_id"],
        total_score=int(row["total_score"]),
        level=RiskLevel(row["risk_level"]),
        liquidity=LiquidityRisk(
            score=int(row.get("liquidity_score") or 0),
            liquidity=_num(row.get("liquidity_usd")),
            lp_locked=bool(row.get("lp_locked")),
            lp_locked_percent=_num(row.get("lp_locked_percent")),
        ),
        holders=HolderRisk(
            score=int(row.get("holder_score") or 0),
            total_holders=int(row.get("total_holders") or 0),
            top10_percent=_num(row.get("top_10_percent")),
            creator_holding_percent=_num(row.get("creator_percent")),
        ),
        contract=ContractRisk(
            score=int(row.get("contract_score") or 0),
            verified=bool(row.get("is_verified")),
            renounced=bool(row.get("is_renounced")),
            has_mint_function=bool(row.get("has_mint")),
            has_pause_function=bool(row.get("has_pause")),
            has_blacklist_function=bool(row.get("has_blacklist")),
            max_tax_percent=_num(row.get("max_tax_percent")),
        ),
        honeypot=HoneypotRisk(
            score=int(row.get("honeypot_score") or 0),
            is_honeypot=bool(row.get("is_honeypot")),
            buy_tax=_num(row.get("buy_tax")),
            sell_tax=_num(row.get("sell_tax")),
            cannot_sell=bool(row.get("cannot_sell")),
        ),
        warnings=tuple(RiskWarning.from_dict(w) for w in row.get("warnings") or []),
        analyzed_at=row.get("analyzed_at") or "",
    )


# ============================================
# SUPABASE STORE
# ============================================

class SupabaseRiskStore:
    """
    risk_scores table over PostgREST.

    Reads filter on expires_at > now, so expiry is owned by the store.
    Read failures (timeout, non-2xx, bad row) are logged and count as a miss.
    Write failures raise; callers running writes in the background log them.
    """

    def __init__(self, config: StoreConfig, client: httpx.AsyncClient):
        self.config = config
        self._client = client
        self._url = f"{config.supabase_url.rstrip('/')}/rest/v1/{config.table}"

    def _headers(self, prefer: str = "return=representation") -> Dict[str, str]:
        return {
            "apikey": self.config.supabase_key,
            "Authorization": f"Bearer {self.config.supabase_key}",
            "Content-Type": "application/json",
            "Prefer": prefer,
        }

    async def get_risk_score(self, chain_id: str, address: str) -> Optional[RiskScore]:
        params = {
            "select": "*",
            "chain_id": f"eq.{chain_id}",
            "token_address": f"eq.{normalize_address(address, chain_id)}",
            "expires_at": f"gt.{_utcnow().isoformat()}",
            "limit": "1",
        }

        try:
            resp = await self._client.get(
                self._url,
                headers=self._headers(),
                params=params,
                timeout=self.config.query_timeout,
            )
        except httpx.TimeoutException:
            logger.warning(f"Database timeout getting risk score {chain_id}:{address}")
            return None
        except httpx.HTTPError as e:
            logger.warning(f"Risk score lookup failed for {chain_id}:{address}: {e}")
            return None

        if resp.status_code != 200:
            logger.warning(f"Risk score lookup returned {resp.status_code}: {resp.text[:200]}")
            return None

        try:
            rows = resp.json()
            return risk_score_from_row(rows[0]) if rows else None
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable risk score row for {chain_id}:{address}: {e}")
            return None

    async def upsert_risk_score(self, score: RiskScore) -> None:
        row = risk_score_to_row(score, self.config.risk_ttl)
        resp = await self._client.post(
            self._url,
            headers=self._headers("resolution=merge-duplicates,return=minimal"),
            params={"on_conflict": "token_address,chain_id"},
            json=row,
            timeout=self.config.query_timeout,
        )
        if resp.status_code not in (200, 201, 204):
            raise httpx.HTTPStatusError(
                f"Upsert failed with {resp.status_code}: {resp.text[:200]}",
                request=resp.request,
                response=resp,
            )
        logger.debug(f"Stored risk score {score.chain_id}:{score.token_address}")


def create_risk_store(config: StoreConfig, client: httpx.AsyncClient) -> RiskStore:
    if config.enabled:
        logger.info("🗄️ Risk store: Supabase")
        return SupabaseRiskStore(config, client)
    logger.info("Risk store disabled (SUPABASE_URL / key not set)")
    return NullRiskStore()
