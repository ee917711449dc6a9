"""
Risk value types

Frozen dataclasses shared by the sub-scorers, the aggregator, the batch stream
and the risk store. to_dict() produces the camelCase wire shape served to
clients; from_dict() rebuilds a value from that shape.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Sort rank for warnings, most severe first
SEVERITY_ORDER = {
    RiskLevel.CRITICAL: 0,
    RiskLevel.HIGH: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.LOW: 3,
}

# Sub-score caps
HONEYPOT_MAX = 50
CONTRACT_MAX = 30
HOLDER_MAX = 25
LIQUIDITY_MAX = 25
RAW_SCORE_MAX = HONEYPOT_MAX + CONTRACT_MAX + HOLDER_MAX + LIQUIDITY_MAX


@dataclass(frozen=True)
class RiskWarning:
    code: str
    severity: RiskLevel
    message: str
    details: Optional[Any] = None

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER[self.severity]

    def to_dict(self) -> Dict:
        data = {
            "code": self.code,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.details is not None:
            data["details"] = self.details
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "RiskWarning":
        return cls(
            code=data["code"],
            severity=RiskLevel(data["severity"]),
            message=data.get("message", ""),
            details=data.get("details"),
        )


def _warnings_from(data: Dict) -> Tuple[RiskWarning, ...]:
    return tuple(RiskWarning.from_dict(w) for w in data.get("warnings") or [])


@dataclass(frozen=True)
class HoneypotRisk:
    score: int
    is_honeypot: bool = False
    buy_tax: float = 0.0
    sell_tax: float = 0.0
    transfer_tax: float = 0.0
    cannot_sell: bool = False
    cannot_transfer: bool = False
    warnings: Tuple[RiskWarning, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "isHoneypot": self.is_honeypot,
            "buyTax": self.buy_tax,
            "sellTax": self.sell_tax,
            "transferTax": self.transfer_tax,
            "cannotSell": self.cannot_sell,
            "cannotTransfer": self.cannot_transfer,
            "warnings": [w.to_dict() for w in self.warnings],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "HoneypotRisk":
        return cls(
            score=int(data.get("score", 0)),
            is_honeypot=bool(data.get("isHoneypot", False)),
            buy_tax=float(data.get("buyTax", 0)),
            sell_tax=float(data.get("sellTax", 0)),
            transfer_tax=float(data.get("transferTax", 0)),
            cannot_sell=bool(data.get("cannotSell", False)),
            cannot_transfer=bool(data.get("cannotTransfer", False)),
            warnings=_warnings_from(data),
        )


@dataclass(frozen=True)
class ContractRisk:
    score: int
    verified: bool = False
    renounced: bool = False
    has_proxy: bool = False
    has_mint_function: bool = False
    has_pause_function: bool = False
    has_blacklist_function: bool = False
    max_tax_percent: float = 0.0
    warnings: Tuple[RiskWarning, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "verified": self.verified,
            "renounced": self.renounced,
            "hasProxy": self.has_proxy,
            "hasMintFunction": self.has_mint_function,
            "hasPauseFunction": self.has_pause_function,
            "hasBlacklistFunction": self.has_blacklist_function,
            "maxTaxPercent": self.max_tax_percent,
            "warnings": [w.to_dict() for w in self.warnings],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ContractRisk":
        return cls(
            score=int(data.get("score", 0)),
            verified=bool(data.get("verified", False)),
            renounced=bool(data.get("renounced", False)),
            has_proxy=bool(data.get("hasProxy", False)),
            has_mint_function=bool(data.get("hasMintFunction", False)),
            has_pause_function=bool(data.get("hasPauseFunction", False)),
            has_blacklist_function=bool(data.get("hasBlacklistFunction", False)),
            max_tax_percent=float(data.get("maxTaxPercent", 0)),
            warnings=_warnings_from(data),
        )


@dataclass(frozen=True)
class HolderRisk:
    score: int
    total_holders: int = 0
    top10_percent: float = 0.0
    top20_percent: float = 0.0
    creator_holding_percent: float = 0.0
    warnings: Tuple[RiskWarning, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "totalHolders": self.total_holders,
            "top10Percent": self.top10_percent,
            "top20Percent": self.top20_percent,
            "creatorHoldingPercent": self.creator_holding_percent,
            "warnings": [w.to_dict() for w in self.warnings],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "HolderRisk":
        return cls(
            score=int(data.get("score", 0)),
            total_holders=int(data.get("totalHolders", 0)),
            top10_percent=float(data.get("top10Percent", 0)),
            top20_percent=float(data.get("top20Percent", 0)),
            creator_holding_percent=float(data.get("creatorHoldingPercent", 0)),
            warnings=_warnings_from(data),
        )


@dataclass(frozen=True)
class LiquidityRisk:
    score: int
    liquidity: float = 0.0
    lp_locked: bool = False
    lp_locked_percent: float = 0.0
    lp_burned_percent: float = 0.0
    warnings: Tuple[RiskWarning, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "liquidity": self.liquidity,
            "lpLocked": self.lp_locked,
            "lpLockedPercent": self.lp_locked_percent,
            "lpBurnedPercent": self.lp_burned_percent,
            "warnings": [w.to_dict() for w in self.warnings],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "LiquidityRisk":
        return cls(
            score=int(data.get("score", 0)),
            liquidity=float(data.get("liquidity", 0)),
            lp_locked=bool(data.get("lpLocked", False)),
            lp_locked_percent=float(data.get("lpLockedPercent", 0)),
            lp_burned_percent=float(data.get("lpBurnedPercent", 0)),
            warnings=_warnings_from(data),
        )


@dataclass(frozen=True)
class RiskScore:
    """Aggregated 0-100 risk for one token. Built only by the aggregator."""
    token_address: str
    chain_id: str
    total_score: int
    level: RiskLevel
    honeypot: HoneypotRisk
    contract: ContractRisk
    holders: HolderRisk
    liquidity: LiquidityRisk
    warnings: Tuple[RiskWarning, ...] = ()
    analyzed_at: str = field(default="")

    def to_dict(self) -> Dict:
        return {
            "tokenAddress": self.token_address,
            "chainId": self.chain_id,
            "totalScore": self.total_score,
            "level": self.level.value,
            "liquidity": self.liquidity.to_dict(),
            "holders": self.holders.to_dict(),
            "contract": self.contract.to_dict(),
            "honeypot": self.honeypot.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
            "analyzedAt": self.analyzed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "RiskScore":
        return cls(
            token_address=data["tokenAddress"],
            chain_id=data["chainId"],
            total_score=int(data["totalScore"]),
            level=RiskLevel(data["level"]),
            honeypot=HoneypotRisk.from_dict(data.get("honeypot") or {}),
            contract=ContractRisk.from_dict(data.get("contract") or {}),
            holders=HolderRisk.from_dict(data.get("holders") or {}),
            liquidity=LiquidityRisk.from_dict(data.get("liquidity") or {}),
            warnings=_warnings_from(data),
            analyzed_at=data.get("analyzedAt", ""),
        )


def warning(code: str, severity: RiskLevel, message: str, details: Any = None) -> RiskWarning:
    return RiskWarning(code=code, severity=severity, message=message, details=details)
