# =============================================================================
# app/routers/internal.py - Internal PWA Operations Endpoints
# =============================================================================
# Called by schedulers and ops tooling rather than browsers. Every route
# needs the shared alert secret, sent as a Bearer token or in the
# x-pwa-alert-secret header.
#
# Endpoints:
#   GET|POST /slo-alerts       run the SLO alert check
#   GET      /rollout-status   telemetry summary, dispatch history, flags
# =============================================================================

import logging
import secrets
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.exceptions import NotAuthenticatedError, ServiceUnavailableError
from app.guards import ip_limit
from core.services.slo_alert_service import (
    SloAlertService,
    normalize_dispatch_limit,
    normalize_display_mode,
    normalize_path_prefix,
    normalize_window_minutes,
)
from core.services.telemetry_service import TelemetryService
from lib.pwa.telemetry_store import SummaryOptions
from lib.utils import error_meta

logger = logging.getLogger(__name__)


# =============================================================================
# Secret check
# =============================================================================

def read_alert_secret(request: Request) -> str:
    """Bearer token first, then the x-pwa-alert-secret header."""
    authorization = request.headers.get("authorization") or ""
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return (request.headers.get("x-pwa-alert-secret") or "").strip()


async def require_alert_secret(request: Request) -> None:
    """
    Reject calls without the configured alert secret.

    Raises:
        ServiceUnavailableError: No secret is configured (503)
        NotAuthenticatedError: Missing or wrong secret (401)
    """
    expected = (settings.PWA_SLO_ALERT_SECRET or "").strip()
    if not expected:
        raise ServiceUnavailableError("Alert secret is not configured.", code="ALERT_SECRET_MISSING")

    provided = read_alert_secret(request)
    if not provided or not secrets.compare_digest(provided.encode(), expected.encode()):
        raise NotAuthenticatedError("Unauthorized.")


router = APIRouter(dependencies=[Depends(require_alert_secret)])


# =============================================================================
# SLO alerts
# =============================================================================

@router.api_route(
    "/slo-alerts",
    methods=["GET", "POST"],
    dependencies=[Depends(ip_limit("pwa-slo-alert-run", 30))],
)
async def run_slo_alerts(
    window_minutes: Annotated[Optional[str], Query(alias="windowMinutes")] = None,
    display_mode: Annotated[Optional[str], Query(alias="displayMode")] = None,
    path_prefix: Annotated[Optional[str], Query(alias="pathPrefix")] = None,
    force: Annotated[Optional[str], Query()] = None,
):
    """
    Run the SLO alert check. Pass force=true to skip the cooldown.

    Returns 500 with the check result when delivery failed.
    """
    result = SloAlertService.run_check(
        window_minutes=normalize_window_minutes(window_minutes),
        display_mode=normalize_display_mode(display_mode),
        path_prefix=normalize_path_prefix(path_prefix),
        force=force == "true",
        triggered_by="internal-api",
    )

    if not result["ok"] and result["status"] == "error":
        return JSONResponse(status_code=500, content={"ok": False, "result": result})
    return {"ok": True, "result": result}


# =============================================================================
# Rollout status
# =============================================================================

@router.get("/rollout-status", dependencies=[Depends(ip_limit("pwa-rollout-status", 60))])
async def rollout_status(
    window_minutes: Annotated[Optional[str], Query(alias="windowMinutes")] = None,
    display_mode: Annotated[Optional[str], Query(alias="displayMode")] = None,
    path_prefix: Annotated[Optional[str], Query(alias="pathPrefix")] = None,
    dispatch_limit: Annotated[Optional[str], Query(alias="dispatchLimit")] = None,
):
    """
    Snapshot of rollout health for dashboards.

    A failing dispatch history query doesn't fail the request; it is
    reported through dispatchesUnavailable / dispatchesError.
    """
    options = SummaryOptions(
        window_minutes=normalize_window_minutes(window_minutes),
        display_mode=normalize_display_mode(display_mode),
        path_prefix=normalize_path_prefix(path_prefix),
    )
    summary, source = TelemetryService.summary_with_source(options)

    recent_dispatches: list[dict] = []
    dispatches_error: str | None = None
    try:
        recent_dispatches = SloAlertService.recent_dispatches(normalize_dispatch_limit(dispatch_limit))
    except Exception as e:
        dispatches_error = error_meta(e)["message"]
        logger.warning(f"Failed to load SLO alert dispatches for rollout status: {dispatches_error}")

    return {
        "ok": True,
        "observedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "source": source,
        "durableEnabled": TelemetryService.is_durable_enabled(),
        "summary": summary,
        "recentDispatches": recent_dispatches,
        "dispatchesUnavailable": dispatches_error is not None,
        "dispatchesError": dispatches_error,
        "config": {
            "pwaEnabled": settings.PWA_ENABLED,
            "rolloutPercent": settings.PWA_ROLLOUT_PERCENT,
            "installUiEnabled": settings.PWA_INSTALL_UI_ENABLED,
            "pushEnabled": settings.PWA_PUSH_ENABLED,
            "telemetryEnabled": settings.PWA_TELEMETRY_ENABLED,
        },
    }
