"""
Risk Analyzer - Token risk aggregation

Runs the four sub-scorers for one token concurrently and folds them into a
single 0-100 RiskScore.

Features:
- Raw score 0-130 (honeypot 50 + contract 30 + holders 25 + liquidity 25),
  normalized to 0-100 with half-up rounding
- Fixed level bands: 0-14 low, 15-29 medium, 30-49 high, 50+ critical
- Warnings ordered honeypot, contract, holders, liquidity, then stably
  sorted by severity
- Zero address short-circuits to a canonical safe score
- Tokens GoPlus knows nothing about get a canonical unknown score
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from data_sources import ProviderClients
from data_sources.goplus import is_flag_set, parse_percent
from infrastructure.errors import ProviderError
from security.validation import ZERO_ADDRESS
from .contract_risk import analyze_contract
from .holder_risk import analyze_holders
from .honeypot_risk import detect_honeypot
from .liquidity_risk import analyze_liquidity
from .risk_types import (
    RAW_SCORE_MAX,
    ContractRisk,
    HolderRisk,
    HoneypotRisk,
    LiquidityRisk,
    RiskLevel,
    RiskScore,
    warning,
)

logger = logging.getLogger("RiskAnalyzer")

# Upper bound (inclusive) of each level
RISK_THRESHOLDS = {
    RiskLevel.LOW: 14,
    RiskLevel.MEDIUM: 29,
    RiskLevel.HIGH: 49,
}

LOW_LIQUIDITY_USD = 10_000


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_score(raw_score: int) -> int:
    """0-130 raw score to 0-100, rounding halves up"""
    return min(math.floor(raw_score * 100 / RAW_SCORE_MAX + 0.5), 100)


def get_risk_level(score: int) -> RiskLevel:
    if score <= RISK_THRESHOLDS[RiskLevel.LOW]:
        return RiskLevel.LOW
    if score <= RISK_THRESHOLDS[RiskLevel.MEDIUM]:
        return RiskLevel.MEDIUM
    if score <= RISK_THRESHOLDS[RiskLevel.HIGH]:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def aggregate(
    token_address: str,
    chain_id: str,
    honeypot: HoneypotRisk,
    contract: ContractRisk,
    holders: HolderRisk,
    liquidity: LiquidityRisk,
) -> RiskScore:
    """Combine four sub-risks into a RiskScore"""
    raw_score = honeypot.score + contract.score + holders.score + liquidity.score
    total = normalize_score(raw_score)

    warnings = honeypot.warnings + contract.warnings + holders.warnings + liquidity.warnings
    # sorted() is stable: equal severities keep their concatenation order
    warnings = tuple(sorted(warnings, key=lambda w: w.rank))

    return RiskScore(
        token_address=token_address,
        chain_id=chain_id,
        total_score=total,
        level=get_risk_level(total),
        honeypot=honeypot,
        contract=contract,
        holders=holders,
        liquidity=liquidity,
        warnings=warnings,
        analyzed_at=_now_iso(),
    )


def create_safe_risk_score(token_address: str, chain_id: str, liquidity: float = 0.0) -> RiskScore:
    """Canonical all-clear score for the zero address"""
    return RiskScore(
        token_address=token_address,
        chain_id=chain_id,
        total_score=0,
        level=RiskLevel.LOW,
        honeypot=HoneypotRisk(score=0),
        contract=ContractRisk(score=0, verified=True, renounced=True),
        holders=HolderRisk(score=0),
        liquidity=LiquidityRisk(score=0, liquidity=liquidity, lp_locked=True, lp_locked_percent=100.0),
        warnings=(),
        analyzed_at=_now_iso(),
    )


def create_unknown_risk_score(token_address: str, chain_id: str, liquidity: float = 0.0) -> RiskScore:
    """Canonical score when the security provider has nothing on the token"""
    unverified = warning("UNVERIFIED", RiskLevel.MEDIUM, "Unable to verify contract")
    low_liquidity = ()
    if liquidity < LOW_LIQUIDITY_USD:
        low_liquidity = (warning("LOW_LIQ", RiskLevel.HIGH, f"Low liquidity: ${liquidity:,.0f}"),)

    return RiskScore(
        token_address=token_address,
        chain_id=chain_id,
        total_score=25,
        level=RiskLevel.MEDIUM,
        honeypot=HoneypotRisk(
            score=5,
            warnings=(warning("UNKNOWN", RiskLevel.MEDIUM, "Honeypot status unknown"),),
        ),
        contract=ContractRisk(score=10, warnings=(unverified,)),
        holders=HolderRisk(score=5),
        liquidity=LiquidityRisk(score=15 if liquidity < 50_000 else 5, liquidity=liquidity, warnings=low_liquidity),
        warnings=tuple(sorted(low_liquidity + (unverified,), key=lambda w: w.rank)),
        analyzed_at=_now_iso(),
    )


# =============================================================================
# PRESENTATION HELPERS
# =============================================================================

def format_risk_score(score: int) -> str:
    labels = {
        RiskLevel.LOW: "Low Risk",
        RiskLevel.MEDIUM: "Medium Risk",
        RiskLevel.HIGH: "High Risk",
        RiskLevel.CRITICAL: "Critical Risk",
    }
    return f"{score} ({labels[get_risk_level(score)]})"


def summarize_risk(risk: RiskScore) -> str:
    """Most severe warning message, or an all-clear line"""
    for severity in (RiskLevel.CRITICAL, RiskLevel.HIGH):
        for w in risk.warnings:
            if w.severity == severity:
                return w.message
    if risk.warnings:
        return risk.warnings[0].message
    return "No significant risks detected"


def should_warn(risk: RiskScore) -> bool:
    return (
        risk.level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
        or risk.honeypot.is_honeypot
        or risk.honeypot.cannot_sell
    )


# =============================================================================
# ANALYZER
# =============================================================================

@dataclass
class QuickRiskResult:
    is_high_risk: bool
    reason: Optional[str] = None


class RiskAnalyzer:
    """
    Full token analysis against the provider clients.

    RateLimitError is not caught here: callers see it and back off.
    """

    def __init__(self, clients: ProviderClients):
        self.clients = clients
        self._stats = {
            "analyzed": 0,
            "safe": 0,
            "unknown": 0,
        }

    async def analyze(self, token_address: str, chain_id: str, liquidity: float = 0.0) -> RiskScore:
        """
        Analyze one token.

        Args:
            token_address: Normalized token address
            chain_id: Supported chain name
            liquidity: Pool liquidity in USD supplied by the caller

        Returns:
            RiskScore (safe, unknown or fully aggregated)
        """
        liquidity = liquidity or 0.0

        if token_address.lower() == ZERO_ADDRESS:
            self._stats["safe"] += 1
            return create_safe_risk_score(token_address, chain_id, liquidity)

        try:
            security = await self.clients.goplus.get_token_security(chain_id, token_address)
        except ProviderError as e:
            logger.warning(f"GoPlus unavailable for {chain_id}:{token_address[:10]}...: {e}")
            security = None

        if not security:
            self._stats["unknown"] += 1
            return create_unknown_risk_score(token_address, chain_id, liquidity)

        honeypot, contract, holders, liquidity_risk = await asyncio.gather(
            detect_honeypot(chain_id, token_address, self.clients),
            analyze_contract(chain_id, token_address, self.clients),
            analyze_holders(chain_id, token_address, self.clients),
            analyze_liquidity(chain_id, token_address, self.clients, liquidity),
        )

        score = aggregate(token_address, chain_id, honeypot, contract, holders, liquidity_risk)
        self._stats["analyzed"] += 1
        logger.info(f"📊 {chain_id}:{token_address[:10]}... scored {score.total_score} ({score.level.value})")
        return score

    async def quick_risk_check(self, chain_id: str, token_address: str) -> QuickRiskResult:
        """Immediate red flags from GoPlus alone, without the full analysis"""
        try:
            security = await self.clients.goplus.get_token_security(chain_id, token_address)
        except ProviderError as e:
            logger.debug(f"Quick check skipped for {token_address[:10]}...: {e}")
            return QuickRiskResult(is_high_risk=False)

        if not security:
            return QuickRiskResult(is_high_risk=False)

        if is_flag_set(security, "is_honeypot"):
            return QuickRiskResult(True, "Honeypot detected")
        if is_flag_set(security, "cannot_sell_all"):
            return QuickRiskResult(True, "Cannot sell tokens")

        sell_tax = parse_percent(security.get("sell_tax"))
        if sell_tax > 50:
            return QuickRiskResult(True, f"Sell tax: {sell_tax:.0f}%")

        if is_flag_set(security, "owner_change_balance"):
            return QuickRiskResult(True, "Owner can modify balances")

        return QuickRiskResult(is_high_risk=False)

    def get_stats(self) -> Dict:
        return dict(self._stats)
