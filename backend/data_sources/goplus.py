"""
GoPlus Security API Client
Token security data (honeypot flags, taxes, owner privileges, holders, LP holders)
for EVM chains and Solana.

GoPlus encodes booleans as "1"/"0" strings and percentages as fractions
("0.05" = 5%). The helpers below read those fields defensively.
"""
import logging
from typing import Any, Dict, Optional

from infrastructure.errors import ProviderError, ProviderErrorCode
from .base import ProviderClient

logger = logging.getLogger("GoPlus")

GOPLUS_API_BASE = "https://api.gopluslabs.io/api/v1"

CHAIN_IDS = {
    "ethereum": "1",
    "base": "8453",
    "arbitrum": "42161",
    "polygon": "137",
}


# =============================================================================
# FIELD HELPERS
# =============================================================================

def is_flag_set(security: Optional[Dict[str, Any]], field: str) -> bool:
    """GoPlus "1" flag. Solana fields nest it as {"status": "1"}."""
    if not security:
        return False
    value = security.get(field)
    if isinstance(value, dict):
        value = value.get("status")
    return str(value) == "1"


def parse_percent(value: Any) -> float:
    """GoPlus fraction ("0.12") to percent (12.0). Empty or junk reads as 0."""
    if value in (None, ""):
        return 0.0
    try:
        return round(float(value) * 100, 6)
    except (TypeError, ValueError):
        return 0.0


def parse_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class GoPlusClient(ProviderClient):
    """Client for GoPlus token security API"""

    service = "goplus"

    def __init__(self, http, rate_limiter, cache=None, base_url: str = GOPLUS_API_BASE, timeout: float = 10.0):
        super().__init__(http, rate_limiter, cache, timeout)
        self.base_url = base_url.rstrip("/")
        logger.info("🔍 GoPlus client initialized")

    async def get_token_security(self, chain_id: str, token_address: str) -> Optional[Dict[str, Any]]:
        """
        Security record for one token.

        Args:
            chain_id: ethereum, base, arbitrum, polygon or solana
            token_address: Normalized token address

        Returns:
            GoPlus security dict, or None when GoPlus has no record

        Raises:
            ProviderError: GoPlus unreachable or returned garbage
            RateLimitError: goplus budget exhausted
        """
        return await self._cached(
            f"{chain_id}:{token_address}",
            "tokenSecurity",
            lambda: self._fetch_security(chain_id, token_address),
        )

    async def _fetch_security(self, chain_id: str, token_address: str) -> Optional[Dict[str, Any]]:
        if chain_id == "solana":
            url = f"{self.base_url}/solana/token_security"
            result_key = token_address
        else:
            chain = CHAIN_IDS.get(chain_id)
            if chain is None:
                raise ProviderError(self.service, f"GoPlus does not support chain '{chain_id}'",
                                    ProviderErrorCode.REQUEST_FAILED)
            url = f"{self.base_url}/token_security/{chain}"
            result_key = token_address.lower()

        data = await self._request(
            "GET",
            url,
            params={"contract_addresses": token_address},
            headers={"Accept": "application/json"},
        )

        if not isinstance(data, dict):
            raise ProviderError(self.service, "GoPlus returned malformed payload",
                                ProviderErrorCode.INVALID_RESPONSE)

        if data.get("code") != 1 or not data.get("result"):
            logger.debug(f"No GoPlus record for {chain_id}:{token_address[:10]}... (code {data.get('code')})")
            return None

        result = data["result"]
        if not isinstance(result, dict):
            raise ProviderError(self.service, "GoPlus result is not an object",
                                ProviderErrorCode.INVALID_RESPONSE)

        return result.get(result_key)
