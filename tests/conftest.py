# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - Resets process-local state (rate limits, telemetry, PWA storage)
# - Builds a TestClient with the auth dependency overridden
# =============================================================================

import os
import uuid

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("PWA_STATE_BACKEND", "memory")
os.environ.setdefault("PWA_ENABLED", "true")
os.environ.setdefault("PWA_TELEMETRY_DURABLE_ENABLED", "false")
os.environ.setdefault("PWA_SLO_ALERT_SECRET", "test-alert-secret")
os.environ.setdefault("ADMIN_REVALIDATE_TOKEN", "test-admin-token")

import pytest
from fastapi.testclient import TestClient

from app.auth import get_current_user, get_current_user_optional
from app.auth.models import AuthUser
from lib.pwa.storage import get_state_backend
from lib.pwa.telemetry_store import telemetry_store
from lib.rate_limit import rate_limiter


# =============================================================================
# Shared state
# =============================================================================

@pytest.fixture(autouse=True)
def reset_process_state():
    """Rate limits, telemetry and visitor state are module globals."""
    rate_limiter.reset()
    telemetry_store.clear()
    backend = get_state_backend()
    if hasattr(backend, "clear"):
        backend.clear()
    yield
    rate_limiter.reset()
    telemetry_store.clear()


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def buyer():
    return AuthUser(id=uuid.UUID("11111111-1111-1111-1111-111111111111"), email="buyer@example.com")


@pytest.fixture
def moderator():
    return AuthUser(
        id=uuid.UUID("22222222-2222-2222-2222-222222222222"),
        email="mod@example.com",
        role="moderator",
    )


@pytest.fixture
def admin_user():
    return AuthUser(
        id=uuid.UUID("33333333-3333-3333-3333-333333333333"),
        email="admin@example.com",
        role="admin",
    )


# =============================================================================
# App client
# =============================================================================

@pytest.fixture
def client():
    """TestClient with no signed-in user."""
    from app.main import app

    app.dependency_overrides[get_current_user_optional] = lambda: None
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def login():
    """
    Sign a user in for the rest of the test.

    Usage:
        login(buyer)
    """
    from app.main import app

    def _login(user: AuthUser | None):
        app.dependency_overrides[get_current_user_optional] = lambda: user
        if user is not None:
            app.dependency_overrides[get_current_user] = lambda: user

    yield _login
    app.dependency_overrides.clear()
