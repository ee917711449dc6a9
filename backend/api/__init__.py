"""
HTTP routers
"""

from .infrastructure_router import router as infrastructure_router
from .risk_router import router as risk_router

__all__ = ["infrastructure_router", "risk_router"]
