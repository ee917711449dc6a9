"""
Alchemy JSON-RPC Client (EVM chains)
Bytecode presence and owner() lookups used to enhance contract risk.
"""
import logging
from typing import Any, Dict, List, Optional

from infrastructure.errors import ProviderError, ProviderErrorCode
from .base import ProviderClient

logger = logging.getLogger("Alchemy")

# owner() function selector
OWNER_SELECTOR = "0x8da5cb5b"


class AlchemyClient(ProviderClient):
    """JSON-RPC over Alchemy's per-network endpoints"""

    service = "alchemy"

    def __init__(self, http, rate_limiter, cache=None, api_key: str = "",
                 network_urls: Optional[Dict[str, str]] = None, timeout: float = 10.0):
        super().__init__(http, rate_limiter, cache, timeout)
        self.api_key = api_key
        self.network_urls = dict(network_urls or {})

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _url(self, chain_id: str) -> str:
        if not self.api_key:
            raise ProviderError(self.service, "ALCHEMY_API_KEY not configured",
                                ProviderErrorCode.AUTHENTICATION_FAILED)
        base = self.network_urls.get(chain_id)
        if base is None:
            raise ProviderError(self.service, f"Alchemy has no endpoint for '{chain_id}'")
        return f"{base.rstrip('/')}/{self.api_key}"

    async def rpc_call(self, chain_id: str, method: str, params: List[Any]) -> Any:
        return await self._rpc(self._url(chain_id), method, params)

    async def is_contract_verified(self, chain_id: str, contract_address: str) -> bool:
        """
        True when contract bytecode exists at the address.
        Explorer source verification is not checked here.
        """
        async def fetch():
            code = await self.rpc_call(chain_id, "eth_getCode", [contract_address, "latest"])
            return isinstance(code, str) and code != "0x" and len(code) > 100

        return await self._cached(f"{chain_id}:code:{contract_address}", "tokenSecurity", fetch)

    async def get_owner(self, chain_id: str, contract_address: str) -> Optional[str]:
        """owner() of an Ownable contract, lowercased. None when there is no owner() or it returns nothing."""
        async def fetch():
            result = await self.rpc_call(
                chain_id,
                "eth_call",
                [{"to": contract_address, "data": OWNER_SELECTOR}, "latest"],
            )
            if not isinstance(result, str) or result == "0x" or len(result) < 66:
                return None
            # Last 20 bytes of the 32-byte word
            return ("0x" + result[26:66]).lower()

        return await self._cached(f"{chain_id}:owner:{contract_address}", "tokenSecurity", fetch)
