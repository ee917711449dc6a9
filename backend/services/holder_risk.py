"""
Holder Risk
Supply concentration, creator holdings and holder count.

EVM data comes from GoPlus (holders, holder_count, creator_percent).
Solana data comes from Helius; the largest account stands in for the creator.

Score cap: 25
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from data_sources import ProviderClients
from data_sources.goplus import parse_int, parse_percent
from data_sources.helius import analyze_holder_distribution
from infrastructure.errors import ProviderError
from .risk_types import HOLDER_MAX, HolderRisk, RiskLevel, RiskWarning, warning

logger = logging.getLogger("HolderRisk")


def no_holder_data_risk() -> HolderRisk:
    return HolderRisk(
        score=5,
        warnings=(warning("NO_HOLDER_DATA", RiskLevel.LOW, "Holder data unavailable"),),
    )


def failed_holder_risk() -> HolderRisk:
    return HolderRisk(
        score=10,
        warnings=(warning("ANALYSIS_FAILED", RiskLevel.MEDIUM, "Holder analysis unavailable"),),
    )


def score_holder_metrics(
    total_holders: int,
    top10_percent: float,
    top20_percent: float,
    creator_percent: float,
    extra_warnings: Iterable[RiskWarning] = (),
) -> HolderRisk:
    """Band the holder metrics into a score"""
    warnings = []
    score = 0

    if total_holders < 50:
        score += 10
        warnings.append(warning("FEW_HOLDERS", RiskLevel.HIGH, f"Only {total_holders} holders"))
    elif total_holders < 200:
        score += 5
        warnings.append(warning("LOW_HOLDERS", RiskLevel.MEDIUM, f"{total_holders} holders"))

    concentration = f"Top 10 wallets hold {top10_percent:.1f}%"
    if top10_percent > 80:
        score += 15
        warnings.append(warning("EXTREME_CONCENTRATION", RiskLevel.CRITICAL, concentration))
    elif top10_percent > 60:
        score += 10
        warnings.append(warning("HIGH_CONCENTRATION", RiskLevel.HIGH, concentration))
    elif top10_percent > 40:
        score += 5
        warnings.append(warning("MODERATE_CONCENTRATION", RiskLevel.MEDIUM, concentration))
    elif top10_percent > 20:
        score += 2
        warnings.append(warning("MILD_CONCENTRATION", RiskLevel.LOW, concentration))

    if creator_percent > 20:
        score += 10
        warnings.append(warning("CREATOR_HOLDING", RiskLevel.HIGH, f"Creator holds {creator_percent:.1f}%"))
    elif creator_percent > 10:
        score += 5
        warnings.append(warning("CREATOR_HOLDING", RiskLevel.MEDIUM, f"Creator holds {creator_percent:.1f}%"))

    warnings.extend(extra_warnings)

    return HolderRisk(
        score=min(score, HOLDER_MAX),
        total_holders=total_holders,
        top10_percent=top10_percent,
        top20_percent=top20_percent,
        creator_holding_percent=creator_percent,
        warnings=tuple(warnings),
    )


def score_evm_holders(security: Optional[Dict[str, Any]]) -> HolderRisk:
    """Score GoPlus holder data"""
    if not security or not security.get("holders"):
        return no_holder_data_risk()

    holders = security["holders"]
    return score_holder_metrics(
        total_holders=parse_int(security.get("holder_count")),
        top10_percent=sum(parse_percent(h.get("percent")) for h in holders[:10]),
        top20_percent=sum(parse_percent(h.get("percent")) for h in holders[:20]),
        creator_percent=parse_percent(security.get("creator_percent")),
    )


async def analyze_solana_holders(token_address: str, clients: ProviderClients) -> HolderRisk:
    top_holders, holder_count = await asyncio.gather(
        clients.helius.get_top_holders(token_address, 20),
        clients.helius.get_token_holder_count(token_address),
    )
    if not top_holders:
        return no_holder_data_risk()

    distribution = analyze_holder_distribution(top_holders)
    whales = [w for w in distribution.warnings if w.code == "WHALE_DETECTED"]

    return score_holder_metrics(
        total_holders=holder_count,
        top10_percent=distribution.top10_percent,
        top20_percent=distribution.top20_percent,
        creator_percent=top_holders[0].percent,
        extra_warnings=whales,
    )


async def analyze_holders(chain_id: str, token_address: str, clients: ProviderClients) -> HolderRisk:
    """Holder risk for one token. Provider failures become a degraded result."""
    try:
        if chain_id == "solana":
            return await analyze_solana_holders(token_address, clients)
        security = await clients.goplus.get_token_security(chain_id, token_address)
        return score_evm_holders(security)
    except (ProviderError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Holder analysis error for {chain_id}:{token_address[:10]}...: {e}")
        return failed_holder_risk()


# =============================================================================
# CONCENTRATION SUMMARY
# =============================================================================

@dataclass
class ConcentrationRisk:
    score: int
    level: RiskLevel
    message: str


def calculate_concentration_risk(top10_percent: float, top20_percent: float,
                                 creator_percent: float) -> ConcentrationRisk:
    """One-line concentration verdict for display, scored out of 25"""
    score = 0
    level = RiskLevel.LOW
    message = "Healthy holder distribution"

    if top10_percent > 80:
        score, level, message = 25, RiskLevel.CRITICAL, "Extremely concentrated - rug risk"
    elif top10_percent > 60:
        score, level, message = 18, RiskLevel.HIGH, "Highly concentrated holdings"
    elif top10_percent > 40:
        score, level, message = 12, RiskLevel.MEDIUM, "Moderately concentrated"
    elif top10_percent > 20:
        score, level, message = 6, RiskLevel.LOW, "Good distribution"

    if creator_percent > 20:
        score = min(score + 5, HOLDER_MAX)
        if level != RiskLevel.CRITICAL:
            message += f" (creator holds {creator_percent:.1f}%)"

    return ConcentrationRisk(score=score, level=level, message=message)
