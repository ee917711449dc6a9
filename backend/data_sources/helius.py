"""
Helius RPC Client (Solana)
Largest token accounts, supply and holder counts for SPL mints.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from infrastructure.errors import ProviderError, ProviderErrorCode
from services.risk_types import RiskLevel, RiskWarning, warning
from .base import ProviderClient

logger = logging.getLogger("Helius")

HELIUS_RPC_URL = "https://mainnet.helius-rpc.com"

# DAS getTokenAccounts pagination
HOLDER_PAGE_LIMIT = 1000
HOLDER_MAX_PAGES = 10

WHALE_PERCENT = 30


@dataclass
class TokenHolder:
    address: str
    balance: float
    percent: float


@dataclass
class HolderDistribution:
    top10_percent: float
    top20_percent: float
    warnings: List[RiskWarning] = field(default_factory=list)


def analyze_holder_distribution(holders: List[TokenHolder]) -> HolderDistribution:
    """Concentration of the largest holders, plus a whale warning for any wallet above 30%"""
    top10 = sum(h.percent for h in holders[:10])
    top20 = sum(h.percent for h in holders[:20])
    warnings = []

    if top10 > 80:
        warnings.append(warning("EXTREME_CONCENTRATION", RiskLevel.CRITICAL, f"Top 10 wallets hold {top10:.1f}%"))
    elif top10 > 60:
        warnings.append(warning("HIGH_CONCENTRATION", RiskLevel.HIGH, f"Top 10 wallets hold {top10:.1f}%"))

    if holders and holders[0].percent > WHALE_PERCENT:
        warnings.append(warning("WHALE_DETECTED", RiskLevel.HIGH, f"Single wallet holds {holders[0].percent:.1f}%"))

    return HolderDistribution(top10_percent=top10, top20_percent=top20, warnings=warnings)


class HeliusClient(ProviderClient):
    """Solana JSON-RPC + DAS via Helius"""

    service = "helius"

    def __init__(self, http, rate_limiter, cache=None, api_key: str = "",
                 base_url: str = HELIUS_RPC_URL, timeout: float = 10.0):
        super().__init__(http, rate_limiter, cache, timeout)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _url(self) -> str:
        if not self.api_key:
            raise ProviderError(self.service, "HELIUS_API_KEY not configured",
                                ProviderErrorCode.AUTHENTICATION_FAILED)
        return f"{self.base_url}/?api-key={self.api_key}"

    async def rpc_call(self, method: str, params: Any) -> Any:
        return await self._rpc(self._url(), method, params)

    async def get_top_holders(self, mint_address: str, limit: int = 20) -> List[TokenHolder]:
        """Largest token accounts with their share of total supply"""
        async def fetch():
            largest = await self.rpc_call("getTokenLargestAccounts", [mint_address])
            supply = await self.rpc_call("getTokenSupply", [mint_address])
            try:
                accounts = largest["value"]
                total = float(supply["value"]["amount"])
                holders = []
                for account in accounts[:limit]:
                    balance = float(account["amount"])
                    holders.append(TokenHolder(
                        address=account["address"],
                        balance=balance,
                        percent=balance / total * 100 if total > 0 else 0.0,
                    ))
                return holders
            except (KeyError, TypeError, ValueError) as e:
                raise ProviderError(self.service, f"Unexpected largest-accounts payload: {e}",
                                    ProviderErrorCode.INVALID_RESPONSE)

        return await self._cached(f"holders:{mint_address}:{limit}", "holderData", fetch)

    async def get_token_holder_count(self, mint_address: str, max_pages: int = HOLDER_MAX_PAGES) -> int:
        """
        Count token accounts with a non-zero balance.
        Pagination stops after max_pages, so very large mints are undercounted.
        """
        async def fetch():
            count = 0
            for page in range(1, max_pages + 1):
                result = await self.rpc_call(
                    "getTokenAccounts",
                    {"mint": mint_address, "page": page, "limit": HOLDER_PAGE_LIMIT},
                )
                if not isinstance(result, dict):
                    raise ProviderError(self.service, "Unexpected getTokenAccounts payload",
                                        ProviderErrorCode.INVALID_RESPONSE)
                accounts = result.get("token_accounts") or []
                count += sum(1 for a in accounts if _amount(a) > 0)
                if len(accounts) < HOLDER_PAGE_LIMIT:
                    break
            else:
                logger.debug(f"Holder count for {mint_address[:8]}... capped at {max_pages} pages")
            return count

        return await self._cached(f"holder_count:{mint_address}", "holderData", fetch)


def _amount(account: Dict[str, Any]) -> float:
    try:
        return float(account.get("amount") or 0)
    except (TypeError, ValueError):
        return 0.0
