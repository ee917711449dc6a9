"""
Input validation for token risk requests

Chain membership and per-chain address formats. Invalid tokens inside a batch
are reported one by one rather than rejecting the whole request, so the
inbound pydantic models stay lenient and validate_token_request() does the
strict checking.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from infrastructure.errors import ErrorCode, ValidationError


# ============================================
# CHAINS & ADDRESS FORMATS
# ============================================

EVM_CHAINS = ("ethereum", "base", "arbitrum", "polygon")
SUPPORTED_CHAINS = EVM_CHAINS + ("solana",)

_EVM_ADDRESS = re.compile(r"^0x[a-fA-F0-9]{40}$")
_SOLANA_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

ADDRESS_PATTERNS = {
    "ethereum": _EVM_ADDRESS,
    "base": _EVM_ADDRESS,
    "arbitrum": _EVM_ADDRESS,
    "polygon": _EVM_ADDRESS,
    "solana": _SOLANA_ADDRESS,
}

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEAD_ADDRESS = "0x000000000000000000000000000000000000dead"


def is_evm_chain(chain_id: str) -> bool:
    return chain_id in EVM_CHAINS


def validate_address(chain_id: str, address: str) -> bool:
    """True if address matches the chain's address format"""
    pattern = ADDRESS_PATTERNS.get(chain_id)
    return bool(pattern and isinstance(address, str) and pattern.match(address))


def normalize_address(address: str, chain_id: str) -> str:
    """EVM addresses are case-insensitive; Solana base58 is not"""
    return address if chain_id == "solana" else address.lower()


def token_key(chain_id: Any, address: Any) -> str:
    return f"{str(chain_id)}-{str(address)}"


def _parse_liquidity(value: Any) -> Optional[float]:
    if value is None:
        return None
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError("Liquidity must be a number", details={"liquidity": value})
    try:
        liquidity = float(value)
    except ValueError:
        raise ValidationError("Liquidity must be a number", details={"liquidity": value})
    if not math.isfinite(liquidity) or liquidity < 0:
        raise ValidationError("Liquidity must be a non-negative number", details={"liquidity": value})
    return liquidity


# ============================================
# REQUEST MODELS
# ============================================

class TokenRequestIn(BaseModel):
    """One token as sent by the client (unchecked)"""
    address: Any = ""
    chainId: Any = ""
    liquidity: Any = None


class BatchRiskRequest(BaseModel):
    """Body of the batch endpoints"""
    tokens: List[TokenRequestIn] = Field(default_factory=list)


@dataclass(frozen=True)
class TokenRequest:
    """A validated, normalized token to analyze"""
    address: str
    chain_id: str
    liquidity: Optional[float] = None

    @property
    def key(self) -> str:
        return token_key(self.chain_id, self.address)


def validate_token_request(token: TokenRequestIn) -> TokenRequest:
    """
    Check chain and address format, then normalize.

    Raises:
        ValidationError: with INVALID_CHAIN, INVALID_ADDRESS or VALIDATION_ERROR (liquidity)
    """
    if not isinstance(token.chainId, str) or token.chainId not in SUPPORTED_CHAINS:
        raise ValidationError(
            f"Invalid chain '{token.chainId}'",
            ErrorCode.INVALID_CHAIN,
            {"chain": token.chainId},
        )

    if not validate_address(token.chainId, token.address):
        raise ValidationError(
            f"Invalid {token.chainId} address format",
            ErrorCode.INVALID_ADDRESS,
            {"address": token.address},
        )

    return TokenRequest(
        address=normalize_address(token.address, token.chainId),
        chain_id=token.chainId,
        liquidity=_parse_liquidity(token.liquidity),
    )
