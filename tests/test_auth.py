# =============================================================================
# tests/test_auth.py - Access Token Tests
# =============================================================================
# Token decoding, JWKS caching and the /api/auth endpoints. Tokens are
# signed locally with the HS256 test secret from conftest.
#
# Run with: pytest tests/test_auth.py -v
# =============================================================================

import asyncio
import time
import uuid
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from app.auth.dependencies import JwksCache, decode_access_token, get_current_user_optional
from app.config import settings


def make_token(**overrides) -> str:
    claims = {
        "sub": str(uuid.uuid4()),
        "email": "buyer@example.com",
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(time.time()) + 3600,
    }
    claims.update(overrides)
    return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm="HS256")


# =============================================================================
# Token Decoding
# =============================================================================

class TestDecodeAccessToken:

    def test_valid_token(self):
        user_id = str(uuid.uuid4())

        user = decode_access_token(make_token(sub=user_id, app_metadata={"role": "Admin"}))

        assert str(user.id) == user_id
        assert user.email == "buyer@example.com"
        assert user.role == "admin"
        assert user.is_admin and user.is_moderator

    def test_generic_role_claim_is_not_a_marketplace_role(self):
        user = decode_access_token(make_token())

        assert user.role is None
        assert not user.is_moderator

    def test_expired_token(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(make_token(exp=int(time.time()) - 60))

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Token has expired"

    def test_wrong_audience(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(make_token(aud="anon"))

        assert exc_info.value.detail == "Invalid token"

    def test_wrong_secret(self):
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "aud": "authenticated", "exp": int(time.time()) + 60},
            "not-the-secret",
            algorithm="HS256",
        )

        with pytest.raises(HTTPException):
            decode_access_token(token)

    def test_malformed_sub(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(make_token(sub="not-a-uuid"))

        assert exc_info.value.detail == "Invalid token: malformed user ID"

    def test_optional_dependency_treats_bad_token_as_anonymous(self):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="garbage")

        assert asyncio.run(get_current_user_optional(credentials)) is None
        assert asyncio.run(get_current_user_optional(None)) is None


# =============================================================================
# JWKS Cache
# =============================================================================

class TestJwksCache:

    def _response(self, keys):
        response = MagicMock()
        response.json.return_value = {"keys": keys}
        return response

    def test_keys_are_fetched_once_per_ttl(self):
        cache = JwksCache()

        with patch("app.auth.dependencies.httpx.get", return_value=self._response([{"kid": "k1"}])) as get:
            assert cache.find("k1") == {"kid": "k1"}
            assert cache.find("k2") is None

        get.assert_called_once()
        assert get.call_args.args[0] == "https://test-project.supabase.co/auth/v1/.well-known/jwks.json"

    def test_failed_refresh_keeps_stale_keys(self):
        cache = JwksCache()
        with patch("app.auth.dependencies.httpx.get", return_value=self._response([{"kid": "k1"}])):
            cache.find("k1")
        cache._fetched_at = 0

        with patch("app.auth.dependencies.httpx.get", side_effect=httpx.ConnectError("down")):
            assert cache.find("k1") == {"kid": "k1"}


# =============================================================================
# Endpoints
# =============================================================================

class TestAuthRoutes:

    def test_verify_with_real_token(self, client):
        user_id = str(uuid.uuid4())
        token = make_token(sub=user_id, user_metadata={"role": "moderator"})

        response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json() == {"valid": True, "userId": user_id, "role": "moderator"}

    def test_verify_without_token(self, client):
        response = client.get("/api/auth/verify")

        assert response.status_code == 401
        assert response.json()["error"] == "Not authenticated"

    def test_me_merges_profile_row(self, client, login, admin_user):
        login(admin_user)
        row = {"email": "admin@kubazar.test", "full_name": "Ku Admin", "avatar_url": None, "created_at": None}

        with patch("app.auth.routes._profile_row", return_value=row):
            response = client.get("/api/auth/me")

        assert response.status_code == 200
        data = response.json()
        assert data["full_name"] == "Ku Admin"
        assert data["is_admin"] is True

    def test_me_without_profile_row_uses_token(self, client, login, buyer):
        login(buyer)

        with patch("app.auth.routes._profile_row", return_value=None):
            data = client.get("/api/auth/me").json()

        assert data["id"] == str(buyer.id)
        assert data["email"] == buyer.email
        assert data["is_moderator"] is False
