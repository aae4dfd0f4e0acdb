# =============================================================================
# app/auth/dependencies.py - Supabase Session Dependencies
# =============================================================================
# Turns the browser's Supabase access token into an AuthUser.
#
# Token signatures:
# - HS256 tokens are checked against SUPABASE_JWT_SECRET
# - ES256/RS256 tokens are checked against the project's JWKS, cached for
#   an hour (a stale copy is kept if a refresh fails)
#
# Marketplace routes mostly take get_current_user_optional and call
# app.guards.require_user() themselves, so that origin, IP limit and payload
# checks can run before the 401. Read-only account routes use
# get_current_user directly.
# =============================================================================

import logging
import time
from typing import Any, Optional
from uuid import UUID

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError

from app.auth.models import AuthUser, TokenPayload
from app.config import settings
from lib.roles import resolve_role

logger = logging.getLogger(__name__)

TOKEN_AUDIENCE = "authenticated"
JWKS_TIMEOUT_SECONDS = 10

bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# Signing keys
# =============================================================================

class JwksCache:
    """Signing keys published by Supabase Auth for the project."""

    ttl_seconds = 3600

    def __init__(self) -> None:
        self._keys: list[dict[str, Any]] = []
        self._fetched_at = 0.0

    @property
    def url(self) -> str:
        return f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"

    def _refresh(self) -> None:
        try:
            response = httpx.get(self.url, timeout=JWKS_TIMEOUT_SECONDS)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"JWKS refresh failed, keeping {len(self._keys)} cached key(s): {e}")
            return
        self._keys = response.json().get("keys", [])
        self._fetched_at = time.time()
        logger.debug(f"Loaded {len(self._keys)} signing key(s) from {self.url}")

    def find(self, kid: str) -> dict[str, Any] | None:
        if not self._keys or time.time() - self._fetched_at >= self.ttl_seconds:
            self._refresh()
        return next((key for key in self._keys if key.get("kid") == kid), None)


jwks_cache = JwksCache()


def _verification_key(token: str) -> tuple[Any, str]:
    """
    Pick the key and algorithm a token must be verified with.

    Anything that can't be matched to a published key is verified as HS256
    with the project secret, which rejects forged asymmetric tokens.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        return settings.SUPABASE_JWT_SECRET, "HS256"

    algorithm = header.get("alg") or "HS256"
    kid = header.get("kid")
    if algorithm != "HS256" and kid:
        key = jwks_cache.find(kid)
        if key is not None:
            return key, algorithm
        logger.warning(f"No published key for kid={kid} ({algorithm})")
    return settings.SUPABASE_JWT_SECRET, "HS256"


# =============================================================================
# Token decoding
# =============================================================================

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> AuthUser:
    """
    Verify a Supabase access token and build the AuthUser.

    The marketplace role comes from the token metadata (see lib.roles).

    Raises:
        HTTPException: 401 for expired, forged or malformed tokens
    """
    key, algorithm = _verification_key(token)
    try:
        raw_claims = jwt.decode(token, key, algorithms=[algorithm], audience=TOKEN_AUDIENCE)
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except JWTError as e:
        logger.warning(f"Rejected access token: {e}")
        raise _unauthorized("Invalid token")

    try:
        claims = TokenPayload.model_validate(raw_claims)
        user_id = UUID(claims.sub)
    except (ValidationError, ValueError):
        logger.warning("Access token has no usable sub claim")
        raise _unauthorized("Invalid token: malformed user ID")

    return AuthUser(id=user_id, email=claims.email, role=resolve_role(raw_claims))


# =============================================================================
# Dependencies
# =============================================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthUser:
    """
    Signed-in user, or 401.

    Raises:
        HTTPException: 401 when the Authorization header is missing or the
            token does not verify
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    return decode_access_token(credentials.credentials)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[AuthUser]:
    """Signed-in user, or None. A bad token counts as no token."""
    if credentials is None:
        return None
    try:
        return decode_access_token(credentials.credentials)
    except HTTPException:
        return None
