"""
Global Error Handling for the Token Risk Scanner
Structured exceptions and JSON error responses

Features:
- Custom exception classes for every pipeline failure mode
- Provider error classification (retryable or not)
- Structured JSON error responses
- Error tracking and aggregation
"""

import logging
import math
import traceback
from datetime import datetime
from typing import Any, Dict, Optional
from enum import Enum

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger("ErrorHandler")


# ============================================
# ERROR CODES
# ============================================

class ErrorCode(str, Enum):
    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CHAIN = "INVALID_CHAIN"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    BATCH_SIZE_EXCEEDED = "BATCH_SIZE_EXCEEDED"
    NOT_FOUND = "NOT_FOUND"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"


class ProviderErrorCode(str, Enum):
    """Classification of a failed third-party call"""
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    REQUEST_FAILED = "REQUEST_FAILED"
    TIMEOUT = "TIMEOUT"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    NOT_FOUND = "NOT_FOUND"


RETRYABLE_PROVIDER_CODES = {
    ProviderErrorCode.RATE_LIMIT_EXCEEDED,
    ProviderErrorCode.SERVICE_UNAVAILABLE,
    ProviderErrorCode.TIMEOUT,
}


# ============================================
# CUSTOM EXCEPTIONS
# ============================================

class RiskScanError(Exception):
    """Base exception for the risk scanner"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Dict = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict:
        return {
            "success": False,
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp.isoformat()
            }
        }


class ValidationError(RiskScanError):
    """Malformed chain or address"""
    def __init__(self, message: str, code: ErrorCode = ErrorCode.VALIDATION_ERROR, details: Dict = None):
        super().__init__(message, code, 400, details)


class RateLimitError(RiskScanError):
    """Outbound budget for a provider exhausted - caller must back off"""
    def __init__(self, service: str, retry_after: int = 60):
        self.service = service
        self.retry_after = retry_after
        super().__init__(
            f"{service} rate limit exceeded. Retry after {retry_after}s",
            ErrorCode.RATE_LIMITED,
            429,
            {"service": service, "retry_after": retry_after}
        )


class ProviderError(RiskScanError):
    """Third-party call failed (network, non-2xx, malformed payload)"""
    def __init__(
        self,
        service: str,
        message: str = None,
        provider_code: ProviderErrorCode = ProviderErrorCode.REQUEST_FAILED,
        api_status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
    ):
        self.service = service
        self.provider_code = provider_code
        self.api_status_code = api_status_code
        self.retry_after = retry_after

        details: Dict[str, Any] = {"api": service, "provider_code": provider_code.value}
        if api_status_code:
            details["api_status_code"] = api_status_code
        if retry_after:
            details["retry_after"] = retry_after
        super().__init__(
            message or f"External API '{service}' failed",
            ErrorCode.EXTERNAL_API_ERROR,
            502,
            details
        )

    @property
    def is_retryable(self) -> bool:
        return self.provider_code in RETRYABLE_PROVIDER_CODES

    @property
    def suggested_retry_delay(self) -> int:
        if self.retry_after:
            return self.retry_after
        if self.provider_code == ProviderErrorCode.RATE_LIMIT_EXCEEDED:
            return 60
        if self.provider_code == ProviderErrorCode.SERVICE_UNAVAILABLE:
            return 30
        if self.provider_code == ProviderErrorCode.TIMEOUT:
            return 5
        return 0

    @classmethod
    def from_status(cls, service: str, status_code: int, retry_after_header: str = None) -> "ProviderError":
        """Classify a non-2xx provider response"""
        if status_code == 429:
            try:
                retry_after = int(retry_after_header or 60)
            except ValueError:
                retry_after = 60
            return cls(service, "Rate limit exceeded", ProviderErrorCode.RATE_LIMIT_EXCEEDED, 429, retry_after)
        if status_code in (401, 403):
            return cls(service, "API authentication failed or quota exceeded",
                       ProviderErrorCode.AUTHENTICATION_FAILED, status_code)
        if status_code == 404:
            return cls(service, "Resource not found", ProviderErrorCode.NOT_FOUND, 404)
        if status_code >= 500:
            return cls(service, "Service temporarily unavailable",
                       ProviderErrorCode.SERVICE_UNAVAILABLE, status_code)
        return cls(service, f"{service} API request failed", ProviderErrorCode.REQUEST_FAILED, status_code)

    @classmethod
    def timeout(cls, service: str, timeout_seconds: float) -> "ProviderError":
        return cls(
            service,
            f"Request timed out after {math.ceil(timeout_seconds * 1000)}ms",
            ProviderErrorCode.TIMEOUT,
            retry_after=5,
        )


class AnalysisTimeoutError(RiskScanError):
    """Per-token wall-clock budget exceeded"""
    def __init__(self, token: str, timeout: float):
        super().__init__(
            "Analysis timed out",
            ErrorCode.TIMEOUT_ERROR,
            504,
            {"token": token, "timeout_seconds": timeout}
        )


class QuotaExceededError(RiskScanError):
    """Batch too large for the caller's tier"""
    def __init__(self, limit: int, requested: int):
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"Batch size {requested} exceeds tier limit of {limit}",
            ErrorCode.BATCH_SIZE_EXCEEDED,
            400,
            {"limit": limit, "requested": requested}
        )


# ============================================
# ERROR TRACKING
# ============================================

class ErrorTracker:
    """Tracks and aggregates errors for monitoring"""

    def __init__(self, max_errors: int = 1000):
        self.errors: list = []
        self.max_errors = max_errors
        self.error_counts: Dict[str, int] = {}

    def track(self, error: Exception, request_path: str = None):
        """Track an error"""
        error_type = type(error).__name__

        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1

        error_info = {
            "type": error_type,
            "message": str(error),
            "path": request_path,
            "timestamp": datetime.now().isoformat(),
            "traceback": traceback.format_exc() if not isinstance(error, RiskScanError) else None
        }

        if isinstance(error, RiskScanError):
            error_info["code"] = error.code.value
            error_info["details"] = error.details

        self.errors.append(error_info)

        if len(self.errors) > self.max_errors:
            self.errors = self.errors[-self.max_errors:]

        if not isinstance(error, RiskScanError) or error.status_code >= 500:
            logger.error(f"Error tracked: {error_type} - {str(error)[:200]}")

    def get_stats(self) -> Dict:
        """Get error statistics"""
        return {
            "total_errors": len(self.errors),
            "error_counts": self.error_counts,
            "recent_errors": self.errors[-10:],
            "timestamp": datetime.now().isoformat()
        }

    def clear(self):
        """Clear error history"""
        self.errors.clear()
        self.error_counts.clear()


# ============================================
# FASTAPI EXCEPTION HANDLERS
# ============================================

def _tracker_for(request: Request) -> Optional[ErrorTracker]:
    services = getattr(request.app.state, "services", None)
    return services.error_tracker if services else None


def _track(request: Request, exc: Exception):
    tracker = _tracker_for(request)
    if tracker:
        tracker.track(exc, str(request.url.path))


async def risk_scan_exception_handler(request: Request, exc: RiskScanError) -> JSONResponse:
    """Handle RiskScanError exceptions"""
    _track(request, exc)

    headers = {}
    if isinstance(exc, RateLimitError):
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPExceptions"""
    _track(request, exc)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.BAD_REQUEST.value if exc.status_code < 500 else ErrorCode.INTERNAL_ERROR.value,
                "message": exc.detail,
                "timestamp": datetime.now().isoformat()
            }
        }
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    _track(request, exc)

    logger.error(f"Unhandled exception: {traceback.format_exc()}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred",
                "timestamp": datetime.now().isoformat()
            }
        }
    )


def register_exception_handlers(app):
    """Register all exception handlers with FastAPI app"""
    app.add_exception_handler(RiskScanError, risk_scan_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")
