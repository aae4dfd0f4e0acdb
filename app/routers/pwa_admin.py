# =============================================================================
# app/routers/pwa_admin.py - PWA Admin Endpoints
# =============================================================================
# Endpoints:
#   GET  /telemetry/summary     telemetry summary for moderators
#   POST /slo-alerts/trigger    run the SLO alert check on demand (admins)
# =============================================================================

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.auth import AuthUser, get_current_user_optional
from app.guards import ip_limit, limit_user, origin_guard, parse_body, require_admin, require_moderator
from core.models.pwa import SloAlertTriggerRequest
from core.services.slo_alert_service import (
    SloAlertService,
    normalize_display_mode,
    normalize_path_prefix,
    normalize_window_minutes,
)
from core.services.telemetry_service import TelemetryService
from lib.pwa.telemetry_store import SummaryOptions

logger = logging.getLogger(__name__)

router = APIRouter()

USER_LIMIT_MESSAGE = "Too many requests. Please try again later."


@router.get(
    "/telemetry/summary",
    dependencies=[Depends(origin_guard), Depends(ip_limit("admin-pwa-telemetry-summary", 120))],
)
async def telemetry_summary(
    window_minutes: Annotated[Optional[str], Query(alias="windowMinutes")] = None,
    display_mode: Annotated[Optional[str], Query(alias="displayMode")] = None,
    path_prefix: Annotated[Optional[str], Query(alias="pathPrefix")] = None,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Summarize recent telemetry: vitals, lifecycle funnels and SLO alerts.

    Reads the durable store when it is enabled and reachable, otherwise the
    in-memory window of this instance. `source` says which one answered.
    """
    user = require_moderator(user)
    limit_user("admin-pwa-telemetry-summary", user.id, 120, message=USER_LIMIT_MESSAGE)

    options = SummaryOptions(
        window_minutes=normalize_window_minutes(window_minutes),
        display_mode=normalize_display_mode(display_mode),
        path_prefix=normalize_path_prefix(path_prefix),
    )
    summary, source = TelemetryService.summary_with_source(options)
    return {
        "ok": True,
        "source": source,
        "durableEnabled": TelemetryService.is_durable_enabled(),
        "summary": summary,
    }


@router.post(
    "/slo-alerts/trigger",
    dependencies=[Depends(origin_guard), Depends(ip_limit("admin-pwa-slo-alert-trigger", 30))],
)
async def trigger_slo_alerts(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Run the SLO alert check right away.

    Returns 502 with the check result when the webhook could not be reached
    or is not configured.
    """
    user = require_admin(user)
    limit_user("admin-pwa-slo-alert-trigger", user.id, 20, message=USER_LIMIT_MESSAGE)

    payload = await parse_body(request, SloAlertTriggerRequest)
    result = SloAlertService.run_check(
        window_minutes=payload.window_minutes,
        display_mode=payload.display_mode,
        path_prefix=payload.path_prefix,
        force=payload.force,
        triggered_by=f"admin:{user.id}",
    )

    if not result["ok"] and result["status"] == "error":
        logger.warning(f"Admin SLO alert check by {user.id} failed: {result.get('reason')}")
        return JSONResponse(
            status_code=502,
            content={
                "ok": False,
                "error": result.get("reason") or "Failed to run alert check.",
                "result": result,
            },
        )
    return {"ok": True, "result": result}
