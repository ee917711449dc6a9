"""
Risk Scanner Infrastructure Module
Shared cache, outbound rate limiting, configuration and error handling
"""

from .errors import (
    RiskScanError,
    ValidationError,
    RateLimitError,
    ProviderError,
    ProviderErrorCode,
    AnalysisTimeoutError,
    QuotaExceededError,
    ErrorCode,
    ErrorTracker,
    register_exception_handlers,
)

from .config import (
    AppConfig,
    Environment,
    get_config,
    reload_config,
)

from .api_cache import CACHE_TTL, ResponseCache
from .rate_limiter import API_LIMITS, RateLimiter, RateLimitResult
from .request_coalescer import RequestCoalescer
from .sweeper import Sweeper, sweep_once

__all__ = [
    # Errors
    "RiskScanError",
    "ValidationError",
    "RateLimitError",
    "ProviderError",
    "ProviderErrorCode",
    "AnalysisTimeoutError",
    "QuotaExceededError",
    "ErrorCode",
    "ErrorTracker",
    "register_exception_handlers",

    # Config
    "AppConfig",
    "Environment",
    "get_config",
    "reload_config",

    # Cache & rate limiting
    "CACHE_TTL",
    "ResponseCache",
    "API_LIMITS",
    "RateLimiter",
    "RateLimitResult",
    "RequestCoalescer",
    "Sweeper",
    "sweep_once",
]
