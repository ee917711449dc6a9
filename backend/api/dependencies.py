"""
Shared FastAPI dependencies
"""
from fastapi import Request

from security.access import get_caller_access  # noqa: F401  re-exported for routers


def get_services(request: Request):
    """AppServices container built by the lifespan (see main.py)"""
    return request.app.state.services
