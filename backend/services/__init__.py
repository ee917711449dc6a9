"""
Token Risk Services
Sub-scorers, aggregation and batch streaming

Submodules import provider clients, so import them directly
(services.risk_analyzer, services.batch_stream) rather than from here.
"""

from .risk_types import (
    RiskLevel,
    RiskWarning,
    HoneypotRisk,
    ContractRisk,
    HolderRisk,
    LiquidityRisk,
    RiskScore,
)

__all__ = [
    "RiskLevel",
    "RiskWarning",
    "HoneypotRisk",
    "ContractRisk",
    "HolderRisk",
    "LiquidityRisk",
    "RiskScore",
]
