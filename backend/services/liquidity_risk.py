"""
Liquidity Risk
Pool depth (supplied by the caller) and LP lock/burn status (GoPlus lp_holders).

Score cap: 25
"""
import logging
from typing import Any, Dict, Optional

from data_sources import ProviderClients
from data_sources.goplus import parse_percent
from infrastructure.errors import ProviderError
from security.validation import DEAD_ADDRESS, ZERO_ADDRESS
from .risk_types import LIQUIDITY_MAX, LiquidityRisk, RiskLevel, warning

logger = logging.getLogger("LiquidityRisk")

BURN_ADDRESSES = (ZERO_ADDRESS, DEAD_ADDRESS)


def score_liquidity(security: Optional[Dict[str, Any]], liquidity_usd: float) -> LiquidityRisk:
    """Score liquidity depth and the share of LP tokens that are locked or burned"""
    warnings = []
    score = 0

    lp_holders = (security or {}).get("lp_holders") or []
    locked_percent = sum(
        parse_percent(h.get("percent")) for h in lp_holders if str(h.get("is_locked")) == "1"
    )
    burned_percent = sum(
        parse_percent(h.get("percent")) for h in lp_holders
        if str(h.get("address", "")).lower() in BURN_ADDRESSES
    )

    if liquidity_usd < 10_000:
        score += 15
        warnings.append(warning("VERY_LOW_LIQUIDITY", RiskLevel.CRITICAL,
                                f"Liquidity under $10k (${liquidity_usd:,.0f})"))
    elif liquidity_usd < 50_000:
        score += 10
        warnings.append(warning("LOW_LIQUIDITY", RiskLevel.HIGH, f"Low liquidity: ${liquidity_usd:,.0f}"))
    elif liquidity_usd < 100_000:
        score += 5
        warnings.append(warning("MODERATE_LIQUIDITY", RiskLevel.MEDIUM, f"Moderate liquidity: ${liquidity_usd:,.0f}"))

    if locked_percent < 50 and liquidity_usd > 10_000:
        score += 10
        warnings.append(warning("LP_NOT_LOCKED", RiskLevel.HIGH, f"Only {locked_percent:.1f}% LP locked"))
    elif locked_percent < 80:
        score += 5
        warnings.append(warning("LP_PARTIALLY_LOCKED", RiskLevel.MEDIUM, f"{locked_percent:.1f}% LP locked"))

    return LiquidityRisk(
        score=min(score, LIQUIDITY_MAX),
        liquidity=liquidity_usd,
        lp_locked=locked_percent >= 80,
        lp_locked_percent=locked_percent,
        lp_burned_percent=burned_percent,
        warnings=tuple(warnings),
    )


async def analyze_liquidity(chain_id: str, token_address: str, clients: ProviderClients,
                            liquidity_usd: float = 0.0) -> LiquidityRisk:
    """Liquidity risk for one token. Without LP data only the depth is scored."""
    try:
        security = await clients.goplus.get_token_security(chain_id, token_address)
    except ProviderError as e:
        logger.warning(f"LP data unavailable for {chain_id}:{token_address[:10]}...: {e}")
        security = None
    return score_liquidity(security, liquidity_usd)
