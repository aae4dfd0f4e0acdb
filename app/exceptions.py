# =============================================================================
# app/exceptions.py - Custom Exception Handlers
# =============================================================================
# Centralized exception handling for the API.
#
# Every error leaves the API as a JSON envelope:
#   {"error": "<user-safe message>", "code": "<MACHINE_CODE>", ...}
# Sponsor admin routes add "ok": false and a "requestId" (see SponsorError).
# =============================================================================

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class MarketplaceException(Exception):
    """
    Base exception for the marketplace API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "MARKETPLACE_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}
        self.headers = headers or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "error": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Request Exceptions (4xx)
# =============================================================================

class ValidationFailedError(MarketplaceException):
    """Raised when a request body or query fails validation."""

    def __init__(self, message: str = "Invalid payload", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=details,
        )


class NotAuthenticatedError(MarketplaceException):
    """Raised when a route needs a signed-in (or privileged) caller."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            message=message,
            code="NOT_AUTHENTICATED",
            status_code=401,
            suggestion="Sign in and retry with a valid Bearer token",
        )


class ForbiddenError(MarketplaceException):
    """Raised when the caller is known but may not perform the action."""

    def __init__(self, message: str = "Forbidden", code: str = "FORBIDDEN"):
        super().__init__(message=message, code=code, status_code=403)


class ForbiddenOriginError(ForbiddenError):
    """Raised when the Origin header is neither allow-listed nor same-origin."""

    def __init__(self, message: str = "Forbidden origin"):
        super().__init__(message=message, code="FORBIDDEN_ORIGIN")


class NotFoundError(MarketplaceException):
    """Raised when a requested record doesn't exist."""

    def __init__(self, message: str = "Not found", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404,
            details=details,
        )


class ConflictError(MarketplaceException):
    """Raised when a write collides with an existing record."""

    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(message=message, code=code, status_code=409)


class PayloadTooLargeError(MarketplaceException):
    """Raised when an upload or body exceeds its size limit."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code="PAYLOAD_TOO_LARGE",
            status_code=413,
            details=details,
        )


class UnsupportedMediaTypeError(MarketplaceException):
    """Raised when an uploaded file type is not allowed."""

    def __init__(self, message: str, allowed: list[str]):
        super().__init__(
            message=message,
            code="UNSUPPORTED_MEDIA_TYPE",
            status_code=415,
            suggestion=f"Only these file types are supported: {', '.join(allowed)}",
            details={"allowed_types": allowed},
        )


class RateLimitedError(MarketplaceException):
    """
    Raised when a caller exceeds a fixed-window rate limit.

    The Retry-After header is always at least one second.
    """

    def __init__(self, retry_after: int, message: str = "Too many requests"):
        retry_after = max(1, int(retry_after))
        super().__init__(
            message=message,
            code="RATE_LIMITED",
            status_code=429,
            suggestion=f"Wait {retry_after}s before retrying",
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after


# =============================================================================
# Upstream Exceptions (5xx)
# =============================================================================

class ServiceUnavailableError(MarketplaceException):
    """Raised when a feature is switched off or a dependency can't be reached."""

    def __init__(self, message: str, code: str = "SERVICE_UNAVAILABLE"):
        super().__init__(message=message, code=code, status_code=503)


class UpstreamError(MarketplaceException):
    """Raised when the database (or another upstream) rejects an operation."""

    def __init__(self, message: str, code: str = "UPSTREAM_ERROR", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code=code,
            status_code=500,
            suggestion="Try again later or contact support if the issue persists",
            details=details,
        )


class StorageError(UpstreamError):
    """Raised when an object storage operation fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, code="STORAGE_ERROR", details=details)


# =============================================================================
# Sponsor Admin Exceptions
# =============================================================================

class SponsorError(MarketplaceException):
    """
    Error envelope used by the sponsor store admin routes.

    Renders as {"ok": false, "error", "errorCode", "requestId"} so the admin
    UI can show the request id for support.
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int,
        request_id: str,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message=message, code=error_code, status_code=status_code, headers=headers)
        self.request_id = request_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": False,
            "error": self.message,
            "errorCode": self.code,
            "requestId": self.request_id,
        }


# =============================================================================
# Exception Handlers
# =============================================================================

async def marketplace_exception_handler(
    request: Request,
    exc: MarketplaceException
) -> JSONResponse:
    """
    Convert MarketplaceException to JSON response.

    Returns structured error with:
    - error: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers or None,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Request validation failures are reported as 400, not FastAPI's 422.
    """
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid payload",
            "code": "VALIDATION_ERROR",
            "details": {"errors": errors},
        }
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    """Render HTTPException (raised by auth dependencies) with the error envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )
