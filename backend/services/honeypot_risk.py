"""
Honeypot Risk
Can holders get out? Honeypot flag, sell restrictions and taxes from GoPlus.

Score cap: 50
"""
import logging
from typing import Any, Dict, Optional

from data_sources import ProviderClients
from data_sources.goplus import is_flag_set, parse_percent
from infrastructure.errors import ProviderError
from .risk_types import HONEYPOT_MAX, HoneypotRisk, RiskLevel, warning

logger = logging.getLogger("HoneypotRisk")


def unverified_honeypot_risk() -> HoneypotRisk:
    return HoneypotRisk(
        score=10,
        warnings=(warning("UNVERIFIED", RiskLevel.MEDIUM, "Unable to verify honeypot status"),),
    )


def failed_honeypot_risk() -> HoneypotRisk:
    return HoneypotRisk(
        score=15,
        warnings=(warning("API_ERROR", RiskLevel.MEDIUM, "Honeypot check failed - proceed with caution"),),
    )


def score_honeypot(security: Optional[Dict[str, Any]]) -> HoneypotRisk:
    """Score GoPlus security data. None means GoPlus has no record."""
    if not security:
        return unverified_honeypot_risk()

    warnings = []
    score = 0

    is_honeypot = is_flag_set(security, "is_honeypot")
    cannot_sell = is_flag_set(security, "cannot_sell_all")
    buy_tax = parse_percent(security.get("buy_tax"))
    sell_tax = parse_percent(security.get("sell_tax"))
    transfer_tax = parse_percent(security.get("transfer_tax"))

    if is_honeypot:
        score += 50
        warnings.append(warning("HONEYPOT", RiskLevel.CRITICAL, "Token is a honeypot - cannot sell"))

    if cannot_sell:
        score += 40
        warnings.append(warning("CANNOT_SELL", RiskLevel.CRITICAL, "Cannot sell all tokens"))

    if sell_tax >= 50:
        score += 30
        warnings.append(warning("HIGH_SELL_TAX", RiskLevel.CRITICAL, f"Extremely high sell tax: {sell_tax:.1f}%"))
    elif sell_tax > 20:
        score += 15
        warnings.append(warning("ELEVATED_SELL_TAX", RiskLevel.HIGH, f"High sell tax: {sell_tax:.1f}%"))
    elif sell_tax > 10:
        score += 5
        warnings.append(warning("SELL_TAX", RiskLevel.MEDIUM, f"Sell tax: {sell_tax:.1f}%"))

    if buy_tax > 20:
        score += 10
        warnings.append(warning("HIGH_BUY_TAX", RiskLevel.HIGH, f"High buy tax: {buy_tax:.1f}%"))

    if transfer_tax > 10:
        score += 5
        warnings.append(warning("TRANSFER_TAX", RiskLevel.MEDIUM, f"Transfer tax: {transfer_tax:.1f}%"))

    return HoneypotRisk(
        score=min(score, HONEYPOT_MAX),
        is_honeypot=is_honeypot,
        buy_tax=buy_tax,
        sell_tax=sell_tax,
        transfer_tax=transfer_tax,
        cannot_sell=cannot_sell,
        cannot_transfer=is_flag_set(security, "transfer_pausable"),
        warnings=tuple(warnings),
    )


async def detect_honeypot(chain_id: str, token_address: str, clients: ProviderClients) -> HoneypotRisk:
    """Fetch security data and score it. Provider failures become a degraded result."""
    try:
        security = await clients.goplus.get_token_security(chain_id, token_address)
        return score_honeypot(security)
    except (ProviderError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Honeypot detection error for {chain_id}:{token_address[:10]}...: {e}")
        return failed_honeypot_risk()
