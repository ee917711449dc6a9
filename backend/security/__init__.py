"""
Risk Scanner Security Module
Request validation and caller access levels
"""

from .access import (
    ANONYMOUS,
    CallerAccess,
    get_caller_access,
)

from .validation import (
    SUPPORTED_CHAINS,
    ADDRESS_PATTERNS,
    ZERO_ADDRESS,
    DEAD_ADDRESS,
    BatchRiskRequest,
    TokenRequest,
    TokenRequestIn,
    is_evm_chain,
    normalize_address,
    token_key,
    validate_address,
    validate_token_request,
)

__all__ = [
    # Access
    "ANONYMOUS",
    "CallerAccess",
    "get_caller_access",

    # Validation
    "SUPPORTED_CHAINS",
    "ADDRESS_PATTERNS",
    "ZERO_ADDRESS",
    "DEAD_ADDRESS",
    "BatchRiskRequest",
    "TokenRequest",
    "TokenRequestIn",
    "is_evm_chain",
    "normalize_address",
    "token_key",
    "validate_address",
    "validate_token_request",
]
