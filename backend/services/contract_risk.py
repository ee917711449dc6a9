"""
Contract Risk
Owner privileges and code red flags.

EVM: GoPlus flags, enhanced with Alchemy bytecode and owner() lookups.
Solana: SPL mint/freeze authorities, metadata mutability and transfer fees.

Score cap: 30
"""
import asyncio
import dataclasses
import logging
from typing import Any, Dict, Optional

from data_sources import ProviderClients
from data_sources.goplus import is_flag_set, parse_percent
from infrastructure.errors import ProviderError
from security.validation import DEAD_ADDRESS, ZERO_ADDRESS
from .risk_types import CONTRACT_MAX, ContractRisk, RiskLevel, warning

logger = logging.getLogger("ContractRisk")

# (GoPlus field, points, warning code, severity, message)
EVM_RED_FLAGS = (
    ("is_proxy", 5, "PROXY_CONTRACT", RiskLevel.MEDIUM, "Contract uses proxy pattern - can be upgraded"),
    ("is_mintable", 10, "MINTABLE", RiskLevel.HIGH, "Owner can mint new tokens"),
    ("can_take_back_ownership", 15, "RECLAIM_OWNERSHIP", RiskLevel.CRITICAL,
     "Owner can reclaim ownership after renouncing"),
    ("owner_change_balance", 20, "OWNER_MODIFY_BALANCE", RiskLevel.CRITICAL, "Owner can modify token balances"),
    ("hidden_owner", 10, "HIDDEN_OWNER", RiskLevel.HIGH, "Contract has hidden owner"),
    ("transfer_pausable", 5, "PAUSABLE", RiskLevel.MEDIUM, "Trading can be paused"),
    ("is_blacklisted", 5, "BLACKLIST", RiskLevel.MEDIUM, "Contract has blacklist function"),
    ("slippage_modifiable", 10, "MODIFIABLE_TAX", RiskLevel.HIGH, "Tax/slippage can be modified"),
)


def failed_contract_risk() -> ContractRisk:
    return ContractRisk(
        score=15,
        warnings=(warning("ANALYSIS_FAILED", RiskLevel.HIGH, "Contract analysis failed"),),
    )


def is_renounced_owner(owner: Optional[str]) -> bool:
    return not owner or owner.lower() in (ZERO_ADDRESS, DEAD_ADDRESS)


def score_evm_contract(security: Optional[Dict[str, Any]]) -> ContractRisk:
    """Score GoPlus EVM contract flags"""
    if not security:
        return ContractRisk(
            score=10,
            warnings=(warning("UNVERIFIED", RiskLevel.MEDIUM, "Contract verification status unknown"),),
        )

    warnings = []
    score = 0

    is_open_source = is_flag_set(security, "is_open_source")
    if not is_open_source:
        score += 15
        warnings.append(warning("NOT_OPEN_SOURCE", RiskLevel.HIGH, "Contract source code not verified"))

    for field, points, code, severity, message in EVM_RED_FLAGS:
        if is_flag_set(security, field):
            score += points
            warnings.append(warning(code, severity, message))

    return ContractRisk(
        score=min(score, CONTRACT_MAX),
        verified=is_open_source,
        renounced=not is_flag_set(security, "hidden_owner") and not is_flag_set(security, "can_take_back_ownership"),
        has_proxy=is_flag_set(security, "is_proxy"),
        has_mint_function=is_flag_set(security, "is_mintable"),
        has_pause_function=is_flag_set(security, "transfer_pausable"),
        has_blacklist_function=is_flag_set(security, "is_blacklisted"),
        max_tax_percent=max(parse_percent(security.get("buy_tax")), parse_percent(security.get("sell_tax"))),
        warnings=tuple(warnings),
    )


def score_solana_contract(security: Optional[Dict[str, Any]]) -> ContractRisk:
    """Score SPL token authorities. Without data the token gets a neutral low score."""
    if not security:
        return ContractRisk(
            score=5,
            verified=True,
            has_mint_function=True,
            warnings=(warning("SOLANA_TOKEN", RiskLevel.LOW, "SPL token - check mint/freeze authorities"),),
        )

    warnings = []
    score = 0

    mintable = is_flag_set(security, "mintable")
    freezable = is_flag_set(security, "freezable")

    if mintable:
        score += 10
        warnings.append(warning("MINT_AUTHORITY", RiskLevel.HIGH, "Mint authority is active - supply can grow"))

    if freezable:
        score += 10
        warnings.append(warning("FREEZE_AUTHORITY", RiskLevel.HIGH, "Freeze authority is active - accounts can be frozen"))

    if is_flag_set(security, "metadata_mutable"):
        score += 5
        warnings.append(warning("MUTABLE_METADATA", RiskLevel.MEDIUM, "Token metadata can be changed"))

    if security.get("transfer_fee"):
        score += 5
        warnings.append(warning("TRANSFER_FEE", RiskLevel.MEDIUM, "Token charges a transfer fee"))

    return ContractRisk(
        score=min(score, CONTRACT_MAX),
        verified=True,
        renounced=not mintable and not freezable,
        has_mint_function=mintable,
        has_pause_function=freezable,
        warnings=tuple(warnings),
    )


async def _verified_or_false(clients: ProviderClients, chain_id: str, token_address: str) -> bool:
    if not clients.alchemy.enabled:
        return False
    try:
        return await clients.alchemy.is_contract_verified(chain_id, token_address)
    except ProviderError as e:
        logger.debug(f"Bytecode lookup failed for {token_address[:10]}...: {e}")
        return False


async def _owner_or_none(clients: ProviderClients, chain_id: str, token_address: str) -> Optional[str]:
    try:
        return await clients.alchemy.get_owner(chain_id, token_address)
    except ProviderError as e:
        logger.debug(f"owner() lookup failed for {token_address[:10]}...: {e}")
        return None


async def analyze_evm_contract(chain_id: str, token_address: str, clients: ProviderClients) -> ContractRisk:
    security, code_present = await asyncio.gather(
        clients.goplus.get_token_security(chain_id, token_address),
        _verified_or_false(clients, chain_id, token_address),
    )
    base = score_evm_contract(security)

    if not clients.alchemy.enabled:
        return base

    owner = await _owner_or_none(clients, chain_id, token_address)
    return dataclasses.replace(
        base,
        verified=code_present or base.verified,
        renounced=is_renounced_owner(owner),
    )


async def analyze_contract(chain_id: str, token_address: str, clients: ProviderClients) -> ContractRisk:
    """Contract risk for one token. Provider failures become a degraded result."""
    try:
        if chain_id == "solana":
            security = await clients.goplus.get_token_security(chain_id, token_address)
            return score_solana_contract(security)
        return await analyze_evm_contract(chain_id, token_address, clients)
    except (ProviderError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Contract analysis error for {chain_id}:{token_address[:10]}...: {e}")
        return failed_contract_risk()
