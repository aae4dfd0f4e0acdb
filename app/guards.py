# =============================================================================
# app/guards.py - Request Guards
# =============================================================================
# Shared checks that mutating routes run before touching the database:
#
#   origin_guard            403 when Origin is neither allow-listed nor same-origin
#   ip_limit(scope, n, ms)  429 per client IP (skipped when the IP is unknown)
#   limit_user(...)         429 per authenticated user
#   require_user/...        401/403 for missing or under-privileged callers
#   parse_body(...)         400 with a route-specific message
#
# Origin and IP guards are FastAPI dependencies so they run before payload
# validation. User checks are plain calls made inside the handler, after
# the payload is known to be valid.
# =============================================================================

import json
import logging
from typing import Any, Callable, TypeVar
from uuid import UUID

from fastapi import Request
from pydantic import BaseModel, ValidationError

from app.auth.models import AuthUser
from app.config import settings
from app.exceptions import (
    ForbiddenError,
    ForbiddenOriginError,
    NotAuthenticatedError,
    RateLimitedError,
    ValidationFailedError,
)
from lib.rate_limit import rate_limiter
from lib.security import (
    UNKNOWN_CLIENT,
    build_origin_allow_list,
    get_client_identifier,
    is_origin_allowed,
    is_same_origin_request,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ONE_MINUTE_MS = 60_000


# =============================================================================
# Origin
# =============================================================================

def origin_allow_list() -> set[str]:
    return build_origin_allow_list(settings.origin_candidates)


def enforce_origin(request: Request, message: str = "Forbidden origin") -> None:
    """
    Reject cross-site requests.

    Requests without an Origin header (server-to-server, curl) pass.

    Raises:
        ForbiddenOriginError: Origin present, not allowed, not same-origin
    """
    origin = request.headers.get("origin")
    if not origin:
        return
    if is_origin_allowed(origin, origin_allow_list()) or is_same_origin_request(request.headers):
        return
    logger.warning(f"Rejected request from origin {origin} to {request.url.path}")
    raise ForbiddenOriginError(message)


async def origin_guard(request: Request) -> None:
    """Dependency form of enforce_origin."""
    enforce_origin(request)


# =============================================================================
# Rate Limits
# =============================================================================

DEFAULT_LIMIT_MESSAGE = "Too many requests. Please wait a moment."


def _enforce(key: str, max_requests: int, window_ms: int, message: str) -> None:
    result = rate_limiter.check(key, window_ms=window_ms, max_requests=max_requests)
    if not result.success:
        logger.info(f"Rate limit hit for {key}")
        raise RateLimitedError(result.retry_after, message)


def limit_ip(
    request: Request,
    scope: str,
    max_requests: int,
    window_ms: int = ONE_MINUTE_MS,
    message: str = DEFAULT_LIMIT_MESSAGE,
) -> str:
    """
    Count a request against the caller's IP.

    Returns:
        The client identifier (may be "unknown", in which case nothing is counted)
    """
    client_ip = get_client_identifier(request.headers)
    if client_ip != UNKNOWN_CLIENT:
        _enforce(f"{scope}:ip:{client_ip}", max_requests, window_ms, message)
    return client_ip


def ip_limit(
    scope: str,
    max_requests: int,
    window_ms: int = ONE_MINUTE_MS,
    message: str = DEFAULT_LIMIT_MESSAGE,
) -> Callable:
    """Build a dependency that applies limit_ip with fixed parameters."""

    async def dependency(request: Request) -> None:
        limit_ip(request, scope, max_requests, window_ms, message)

    return dependency


def limit_user(
    scope: str,
    user_id: UUID | str,
    max_requests: int,
    window_ms: int = ONE_MINUTE_MS,
    message: str = DEFAULT_LIMIT_MESSAGE,
) -> None:
    _enforce(f"{scope}:user:{user_id}", max_requests, window_ms, message)


def limit_key(
    key: str,
    max_requests: int,
    window_ms: int = ONE_MINUTE_MS,
    message: str = DEFAULT_LIMIT_MESSAGE,
) -> None:
    """Count against an arbitrary key (e.g. a specific record)."""
    _enforce(key, max_requests, window_ms, message)


# =============================================================================
# Callers
# =============================================================================

def require_user(user: AuthUser | None, message: str = "Not authenticated") -> AuthUser:
    if user is None:
        raise NotAuthenticatedError(message)
    return user


def require_moderator(
    user: AuthUser | None,
    message: str = "Not authorized",
    status_code: int = 401,
) -> AuthUser:
    """Moderators and admins pass. Some routes report 403 instead of 401."""
    if user is None or not user.is_moderator:
        if status_code == 403:
            raise ForbiddenError(message, code="UNAUTHORIZED")
        raise NotAuthenticatedError(message)
    return user


def require_admin(user: AuthUser | None, message: str = "Not authorized") -> AuthUser:
    if user is None or not user.is_admin:
        raise NotAuthenticatedError(message)
    return user


# =============================================================================
# Payloads
# =============================================================================

async def read_json(request: Request, message: str = "Invalid payload") -> Any:
    """Read the raw JSON body, raising a 400 when it isn't JSON."""
    try:
        raw = await request.body()
        return json.loads(raw) if raw else {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationFailedError(message)


def validate(model: type[ModelT], payload: Any, message: str = "Invalid payload") -> ModelT:
    """Validate a payload against a model with a route-specific error message."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailedError(
            message,
            details={"errors": [{"loc": [str(p) for p in err["loc"]], "msg": err["msg"]} for err in e.errors()]},
        )


async def parse_body(request: Request, model: type[ModelT], message: str = "Invalid payload") -> ModelT:
    return validate(model, await read_json(request, message), message)
