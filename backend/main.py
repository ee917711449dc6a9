"""
Token Risk Scanner - FastAPI application

Run:
    uvicorn main:app --host 0.0.0.0 --port 8000

Shared state (cache, rate limiter, HTTP client, provider clients, store) is
built once in the lifespan and hung on app.state.services.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import infrastructure_router, risk_router
from data_sources import AlchemyClient, GoPlusClient, HeliusClient, ProviderClients
from infrastructure.api_cache import ResponseCache
from infrastructure.config import AppConfig, get_config
from infrastructure.errors import ErrorTracker, register_exception_handlers
from infrastructure.rate_limiter import RateLimiter
from infrastructure.risk_store import RiskStore, create_risk_store
from infrastructure.sweeper import Sweeper
from sentry_config import init_sentry
from services.batch_stream import BatchRiskStream
from services.risk_analyzer import RiskAnalyzer

logger = logging.getLogger("RiskScan")


@dataclass
class AppServices:
    """Process-wide services, one instance per app"""
    config: AppConfig
    http: httpx.AsyncClient
    cache: ResponseCache
    rate_limiter: RateLimiter
    clients: ProviderClients
    analyzer: RiskAnalyzer
    store: RiskStore
    batch_stream: BatchRiskStream
    sweeper: Sweeper
    error_tracker: ErrorTracker

    async def close(self):
        await self.sweeper.stop()
        await self.batch_stream.wait_background()
        await self.http.aclose()


def build_services(config: AppConfig, http: Optional[httpx.AsyncClient] = None) -> AppServices:
    """Wire the service graph from configuration"""
    http = http or httpx.AsyncClient(timeout=config.providers.request_timeout)

    cache = ResponseCache(ttl_config=config.cache.ttl, single_flight=config.cache.single_flight)
    rate_limiter = RateLimiter(
        limits=config.rate_limits.limits,
        window_seconds=config.rate_limits.window_seconds,
    )
    client_cache = cache if config.cache.enabled else None
    timeout = config.providers.request_timeout

    clients = ProviderClients(
        goplus=GoPlusClient(http, rate_limiter, client_cache,
                            base_url=config.providers.goplus_url, timeout=timeout),
        alchemy=AlchemyClient(http, rate_limiter, client_cache,
                              api_key=config.providers.alchemy_api_key,
                              network_urls=config.providers.alchemy_urls, timeout=timeout),
        helius=HeliusClient(http, rate_limiter, client_cache,
                            api_key=config.providers.helius_api_key,
                            base_url=config.providers.helius_url, timeout=timeout),
    )

    analyzer = RiskAnalyzer(clients)
    store = create_risk_store(config.store, http)

    return AppServices(
        config=config,
        http=http,
        cache=cache,
        rate_limiter=rate_limiter,
        clients=clients,
        analyzer=analyzer,
        store=store,
        batch_stream=BatchRiskStream(analyzer, store, config.batch),
        sweeper=Sweeper(cache, rate_limiter, config.cache.sweep_interval),
        error_tracker=ErrorTracker(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build services on startup, tear them down on shutdown."""
    config = app.state.config
    services = build_services(config)
    app.state.services = services
    services.sweeper.start()
    logger.info(f"✅ Risk scanner started ({config.environment.value})")

    try:
        yield
    finally:
        await services.close()
        logger.info("Risk scanner stopped")


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    config = config or get_config()

    logging.basicConfig(
        level=getattr(logging, config.monitoring.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    init_sentry(config)

    app = FastAPI(
        title="Token Risk Scanner API",
        description="Normalized 0-100 risk scores for on-chain tokens",
        version=config.api_version,
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-API-Version"],
    )

    register_exception_handlers(app)
    app.include_router(risk_router)
    app.include_router(infrastructure_router)

    return app


app = create_app()
