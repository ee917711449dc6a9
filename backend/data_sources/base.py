"""
Shared plumbing for provider clients

Every outbound call is counted by the RateLimiter before it is sent, and
cacheable lookups go through the ResponseCache first. Transport failures,
non-2xx responses and unreadable payloads surface as ProviderError.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from infrastructure.api_cache import ResponseCache
from infrastructure.errors import ProviderError, ProviderErrorCode
from infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger("ProviderClient")


class ProviderClient:
    """Base class for GoPlus / Alchemy / Helius clients"""

    service: str = "unknown"

    def __init__(
        self,
        http: httpx.AsyncClient,
        rate_limiter: RateLimiter,
        cache: Optional[ResponseCache] = None,
        timeout: float = 10.0,
    ):
        self.http = http
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.timeout = timeout

    async def _cached(self, key: str, data_class: str, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        """Serve from the cache when one is attached, else fetch directly"""
        if self.cache is None:
            return await fetcher()
        return await self.cache.get_or_fetch(
            f"{self.service}:{key}",
            fetcher,
            self.cache.ttl_for(data_class),
            self.service,
        )

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        """Rate-limited HTTP call returning the decoded JSON body"""

        async def send():
            try:
                response = await self.http.request(method, url, timeout=self.timeout, **kwargs)
            except httpx.TimeoutException:
                raise ProviderError.timeout(self.service, self.timeout)
            except httpx.HTTPError as e:
                raise ProviderError(self.service, f"{self.service} request failed: {e}")

            if response.status_code < 200 or response.status_code >= 300:
                logger.warning(f"{self.service} API returned {response.status_code}")
                raise ProviderError.from_status(
                    self.service,
                    response.status_code,
                    response.headers.get("Retry-After"),
                )

            try:
                return response.json()
            except ValueError:
                raise ProviderError(
                    self.service,
                    f"{self.service} returned a non-JSON response",
                    ProviderErrorCode.INVALID_RESPONSE,
                    response.status_code,
                )

        return await self.rate_limiter.execute(self.service, send)

    async def _rpc(self, url: str, method: str, params: Any) -> Any:
        """JSON-RPC 2.0 call; an error member in the reply is a ProviderError"""
        data = await self._request(
            "POST",
            url,
            json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
        )

        if not isinstance(data, dict):
            raise ProviderError(
                self.service,
                f"{self.service} RPC returned malformed payload",
                ProviderErrorCode.INVALID_RESPONSE,
            )
        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(self.service, f"{self.service} RPC error: {message}")

        return data.get("result")
