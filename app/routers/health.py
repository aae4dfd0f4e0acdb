# =============================================================================
# app/routers/health.py - Health Endpoints
# =============================================================================
#   GET /api/health         process is up, plus environment and version
#   GET /api/health/ready   database, listing image bucket and PWA state store
#   GET /api/health/live    liveness probe for container restarts
# =============================================================================

import logging
from datetime import datetime, timezone
from typing import Callable

from fastapi import APIRouter
from pydantic import BaseModel

from app.config import settings
from lib.pwa.storage import get_state_backend
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"
PROBE_KEY = "health:probe"


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str
    version: str


class ReadinessResponse(BaseModel):
    """`checks` maps each dependency to "healthy" or "unhealthy: <reason>"."""
    status: str
    checks: dict[str, str]
    timestamp: str


class LivenessResponse(BaseModel):
    status: str
    timestamp: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _probe_state_store() -> None:
    backend = get_state_backend()
    backend.set(PROBE_KEY, "1", ttl_seconds=30)
    backend.get(PROBE_KEY)


def _run_check(name: str, probe: Callable[[], None]) -> str:
    try:
        probe()
    except Exception as e:
        logger.warning(f"Readiness check '{name}' failed: {e}")
        return f"unhealthy: {str(e)[:50]}"
    return "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=_now(),
        environment=settings.ENVIRONMENT,
        version=API_VERSION,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check() -> ReadinessResponse:
    """
    Ready when Supabase answers, the listing image bucket exists and the
    PWA install state store accepts writes. Any failure reports "degraded";
    the endpoint itself still returns 200 so dashboards can read the checks.
    """
    checks = {
        "database": _run_check("database", SupabaseClient.ping),
        "storage": _run_check("storage", lambda: SupabaseClient.check_bucket(settings.STORAGE_BUCKET)),
        "pwaState": _run_check("pwaState", _probe_state_store),
    }
    ready = all(value == "healthy" for value in checks.values())
    return ReadinessResponse(status="ready" if ready else "degraded", checks=checks, timestamp=_now())


@router.get("/health/live", response_model=LivenessResponse)
async def liveness_check() -> LivenessResponse:
    return LivenessResponse(status="alive", timestamp=_now())
