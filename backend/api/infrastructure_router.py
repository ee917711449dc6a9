"""
Infrastructure Monitoring Router
Health checks, cache/limiter statistics and error tracking
"""

from fastapi import APIRouter, Depends
from datetime import datetime

from .dependencies import get_services

router = APIRouter(prefix="/api/infrastructure", tags=["Infrastructure"])


# ============================================
# HEALTH CHECKS
# ============================================

@router.get("/health")
async def health_check(services=Depends(get_services)):
    """
    Basic health check - returns 200 if API is running.
    Use for load balancer health checks.
    """
    return {
        "status": "healthy",
        "environment": services.config.environment.value,
        "version": services.config.api_version,
        "uptime_seconds": _get_uptime(),
        "timestamp": datetime.now().isoformat()
    }


# ============================================
# METRICS
# ============================================

@router.get("/stats")
async def get_stats(services=Depends(get_services)):
    """
    Cache hit rate, outbound rate-limit windows, analyzer and batch counters.
    """
    return {
        "cache": services.cache.get_stats(),
        "rate_limiter": services.rate_limiter.get_stats(),
        "analyzer": services.analyzer.get_stats(),
        "batch": services.batch_stream.get_stats(),
        "sweeper_running": services.sweeper.running,
        "timestamp": datetime.now().isoformat()
    }


@router.get("/errors/stats")
async def get_error_stats(services=Depends(get_services)):
    """Get error statistics"""
    return services.error_tracker.get_stats()


@router.get("/config")
async def get_configuration(services=Depends(get_services)):
    """Current configuration (secrets hidden)"""
    return {
        "config": services.config.to_dict(),
        "timestamp": datetime.now().isoformat()
    }


# ============================================
# HELPERS
# ============================================

_start_time = datetime.now()


def _get_uptime() -> float:
    """Get application uptime in seconds"""
    return (datetime.now() - _start_time).total_seconds()
