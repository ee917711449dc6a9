"""
Configuration Management for the Token Risk Scanner
Environment-based configuration with secrets hidden from dumps

Features:
- Environment-based config (dev/staging/prod)
- Per-provider outbound budgets
- Cache TTL table and sweep interval
- Batch quotas and per-token timeout
- Dynamic reload
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional
from enum import Enum

from dotenv import load_dotenv

logger = logging.getLogger("Config")


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() == "true"


@dataclass
class ProviderConfig:
    """External provider endpoints and credentials"""
    goplus_url: str = "https://api.gopluslabs.io/api/v1"
    alchemy_api_key: str = ""
    alchemy_urls: Dict[str, str] = field(default_factory=lambda: {
        "ethereum": "https://eth-mainnet.g.alchemy.com/v2",
        "base": "https://base-mainnet.g.alchemy.com/v2",
        "arbitrum": "https://arb-mainnet.g.alchemy.com/v2",
        "polygon": "https://polygon-mainnet.g.alchemy.com/v2",
    })
    helius_api_key: str = ""
    helius_url: str = "https://mainnet.helius-rpc.com"

    # Timeouts (seconds)
    request_timeout: float = 10.0


@dataclass
class RateLimitConfig:
    """Outbound calls per minute, per provider"""
    limits: Dict[str, int] = field(default_factory=lambda: {
        "goplus": 60,
        "dexscreener": 300,
        "helius": 100,
        "alchemy": 330,
        "geckoterminal": 30,
    })
    window_seconds: int = 60


@dataclass
class CacheConfig:
    """Response cache configuration"""
    enabled: bool = True
    # Seconds, by data class
    ttl: Dict[str, int] = field(default_factory=lambda: {
        "tokenSecurity": 5 * 60,
        "tokenMetrics": 30,
        "holderData": 5 * 60,
        "poolData": 60,
        "trending": 2 * 60,
        "search": 30,
    })
    sweep_interval: int = 5 * 60
    single_flight: bool = False


@dataclass
class BatchConfig:
    """Batch scanning limits"""
    analysis_timeout: float = 20.0
    # Caller tier -> max tokens per batch
    limits: Dict[str, int] = field(default_factory=lambda: {
        "anonymous": 10,
        "free": 10,
        "pro": 50,
        "starter": 10,
        "developer": 10,
        "builder": 50,
        "professional": 50,
        "scale": 100,
        "business": 100,
    })
    default_limit: int = 10


@dataclass
class StoreConfig:
    """Persistent risk score store (Supabase PostgREST)"""
    supabase_url: str = ""
    supabase_key: str = ""
    table: str = "risk_scores"
    risk_ttl: int = 60 * 60
    query_timeout: float = 5.0

    @property
    def enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@dataclass
class MonitoringConfig:
    """Monitoring configuration"""
    log_level: str = "INFO"
    sentry_dsn: Optional[str] = None
    release: str = "local"


@dataclass
class AppConfig:
    """Main application configuration"""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    api_version: str = "1.0"

    providers: ProviderConfig = field(default_factory=ProviderConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables"""
        load_dotenv()
        env = os.environ.get("RISKSCAN_ENV", "development").lower()

        config = cls(
            environment=Environment(env) if env in [e.value for e in Environment] else Environment.DEVELOPMENT,
            debug=_env_bool("DEBUG", "true"),
        )

        config.providers = ProviderConfig(
            goplus_url=os.environ.get("GOPLUS_URL", ProviderConfig.goplus_url),
            alchemy_api_key=os.environ.get("ALCHEMY_API_KEY", ""),
            helius_api_key=os.environ.get("HELIUS_API_KEY", ""),
            request_timeout=float(os.environ.get("PROVIDER_TIMEOUT", "10")),
        )

        # RATE_LIMIT_GOPLUS=120 overrides a single budget
        for service in list(config.rate_limits.limits):
            override = os.environ.get(f"RATE_LIMIT_{service.upper()}")
            if override:
                config.rate_limits.limits[service] = int(override)

        config.cache.enabled = _env_bool("CACHE_ENABLED", "true")
        config.cache.single_flight = _env_bool("CACHE_SINGLE_FLIGHT")
        config.cache.sweep_interval = int(os.environ.get("CACHE_SWEEP_INTERVAL", "300"))

        config.batch.analysis_timeout = float(os.environ.get("ANALYSIS_TIMEOUT", "20"))

        config.store = StoreConfig(
            supabase_url=os.environ.get("SUPABASE_URL", ""),
            supabase_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            risk_ttl=int(os.environ.get("RISK_SCORE_TTL", "3600")),
        )

        config.monitoring = MonitoringConfig(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            sentry_dsn=os.environ.get("SENTRY_DSN"),
            release=os.environ.get("COMMIT_SHA", "local"),
        )

        if config.environment == Environment.PRODUCTION:
            config.debug = False
            config.monitoring.log_level = os.environ.get("LOG_LEVEL", "WARNING")

        return config

    def to_dict(self) -> Dict:
        """Convert to dictionary (hiding secrets)"""
        def sanitize(obj):
            if isinstance(obj, dict):
                return {
                    k: sanitize(v) for k, v in obj.items()
                    if "key" not in k.lower() and "dsn" not in k.lower()
                }
            elif hasattr(obj, '__dataclass_fields__'):
                return sanitize({k: getattr(obj, k) for k in obj.__dataclass_fields__})
            elif isinstance(obj, Enum):
                return obj.value
            else:
                return obj

        return sanitize(self)


# ============================================
# PROCESS-WIDE INSTANCE
# ============================================

_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the process-wide configuration, loading it on first use"""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
        logger.info(f"Configuration loaded for environment: {_config.environment.value}")
    return _config


def reload_config() -> AppConfig:
    """Reload configuration from environment"""
    global _config
    _config = AppConfig.from_env()
    logger.info("Configuration reloaded")
    return _config
