# =============================================================================
# app/routers/pwa.py - Public PWA Endpoints
# =============================================================================
# Endpoints:
#   POST /telemetry          web-vital and lifecycle telemetry from browsers
#   POST /install/decision   should the install banner be shown on this view
#   POST /install/events     banner interactions (clicked, dismissed, ...)
#   GET  /rollout            rollout bucket for a visitor
#
# Install state lives in the PWA state backend (memory or Redis), keyed by
# the visitor id (long lived) and the browsing session id.
# =============================================================================

import json
import logging
import re
import uuid
from typing import Annotated, Any, Iterable, Optional

from fastapi import APIRouter, Depends, Query, Request

from app.config import settings
from app.exceptions import ServiceUnavailableError, ValidationFailedError
from app.guards import enforce_origin, ip_limit, limit_ip, origin_guard, parse_body
from core.models.pwa import InstallDecisionRequest, InstallEventRequest, TelemetryPayload
from core.services.telemetry_service import TelemetryService
from lib.pwa import events as pwa_events
from lib.pwa.install_prompt import InstallPrompt, InstallSignals, PromptEvent, is_ios_device, normalize_pathname
from lib.pwa.rollout import ROLLOUT_ID_STORAGE_KEY, evaluate_rollout
from lib.pwa.storage import get_state_backend, local_storage, session_storage
from lib.pwa.telemetry_store import telemetry_store
from lib.utils import now_ms

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_EVENT_AGE_MS = 7 * 24 * 60 * 60 * 1000
MAX_FUTURE_SKEW_MS = 120_000

SYNTHETIC_TRAFFIC_PATTERN = re.compile(
    r"lighthouse|chrome-lighthouse|headlesschrome|pagespeed|gtmetrix",
    re.IGNORECASE,
)


# =============================================================================
# Helpers
# =============================================================================

def is_synthetic_traffic(header_ua: str | None, context_ua: str | None) -> bool:
    """Lighthouse, PageSpeed and similar audit bots skew the vitals."""
    combined = f"{header_ua or ''} {context_ua or ''}".strip()
    return bool(combined) and bool(SYNTHETIC_TRAFFIC_PATTERN.search(combined))


def is_event_timestamp_valid(ts: int, now: int) -> bool:
    return now - MAX_EVENT_AGE_MS <= ts <= now + MAX_FUTURE_SKEW_MS


def _log_batch(accepted: list[dict[str, Any]], display_mode: str | None) -> None:
    web_vitals = [event for event in accepted if event["type"] == "web_vital"]
    lifecycle = [event for event in accepted if event["type"] == "pwa_lifecycle"]
    has_poor_vitals = any(event.get("rating") == "poor" for event in web_vitals)
    has_failure_signal = any("failed" in event["name"] or "denied" in event["name"] for event in lifecycle)

    if settings.is_production and not has_poor_vitals and not has_failure_signal:
        return

    logger.info("[pwa-telemetry] " + json.dumps({
        "count": len(accepted),
        "displayMode": display_mode or "unknown",
        "pathSample": accepted[0]["path"] if accepted else "/",
        "webVitals": [
            {"name": e["name"], "value": e.get("value"), "rating": e.get("rating"), "unit": e.get("unit")}
            for e in web_vitals
        ],
        "lifecycleSignals": [event["name"] for event in lifecycle],
    }))


def _record_prompt_events(emitted: Iterable[PromptEvent], pathname: str | None) -> None:
    """Feed banner events that the funnels count into the in-memory store."""
    now = now_ms()
    batch = []
    for event in emitted:
        name = pwa_events.lifecycle_name(event.name)
        if name:
            batch.append({
                "type": "pwa_lifecycle",
                "name": name,
                "ts": now,
                "path": normalize_pathname(pathname),
            })
    if batch:
        telemetry_store.record_batch(batch, now=now)


def _install_prompt(visitor_id: str, session_id: str) -> InstallPrompt:
    backend = get_state_backend()
    return InstallPrompt(
        local=local_storage(backend, visitor_id),
        session=session_storage(backend, session_id),
        base_enabled=settings.PWA_ENABLED and settings.PWA_INSTALL_UI_ENABLED,
        rollout_percent=settings.PWA_ROLLOUT_PERCENT,
    )


# =============================================================================
# Telemetry
# =============================================================================

@router.post("/telemetry")
async def ingest_telemetry(request: Request):
    """
    Accept a batch of up to 20 telemetry events.

    Synthetic audit traffic is acknowledged but not stored. Events older
    than 7 days or more than 2 minutes in the future are dropped.
    """
    if not settings.pwa_telemetry_active:
        raise ServiceUnavailableError("PWA telemetry is disabled", code="PWA_TELEMETRY_DISABLED")
    enforce_origin(request)
    limit_ip(request, "pwa-telemetry", 120, message="Too many telemetry requests. Try again later.")

    payload = await parse_body(request, TelemetryPayload, "Invalid telemetry payload")
    display_mode = payload.context.display_mode if payload.context else None

    if is_synthetic_traffic(request.headers.get("user-agent"), payload.context.ua if payload.context else None):
        return {
            "ok": True,
            "accepted": 0,
            "durablePersisted": 0,
            "durableEnabled": TelemetryService.is_durable_enabled(),
            "skipped": "synthetic_traffic",
        }

    now = now_ms()
    accepted = [
        event.model_dump(exclude_none=True)
        for event in payload.events
        if is_event_timestamp_valid(event.ts, now)
    ]
    if not accepted:
        raise ValidationFailedError("No valid telemetry events")

    telemetry_store.record_batch(accepted, display_mode=display_mode, now=now)
    durable = TelemetryService.persist_batch(accepted, display_mode=display_mode)
    _log_batch(accepted, display_mode)

    return {
        "ok": True,
        "accepted": len(accepted),
        "durablePersisted": durable["persisted"],
        "durableEnabled": not durable["skipped"],
    }


# =============================================================================
# Install banner
# =============================================================================

@router.post(
    "/install/decision",
    dependencies=[Depends(origin_guard), Depends(ip_limit("pwa-install", 240))],
)
async def install_decision(request: Request):
    """
    Decide whether the install banner shows on this page view.

    Counts the page view and, when the banner is revealed, records an
    impression toward the 6-per-30-days cap.
    """
    body = await parse_body(request, InstallDecisionRequest)
    user_agent = body.user_agent or request.headers.get("user-agent")

    prompt = _install_prompt(body.visitor_id, body.session_id)
    decision = prompt.decide(InstallSignals(
        pathname=body.pathname,
        scroll_y=body.scroll_y,
        dwell_ms=body.dwell_ms,
        standalone=body.standalone,
        install_prompt_available=body.install_prompt_available,
        ios_device=body.ios_device or is_ios_device(user_agent),
        user_agent=user_agent,
        variant_query=body.query.pwa_install_variant,
        debug_reset_query=body.query.pwa_install_debug_reset,
        rollout_query=body.query.pwa_rollout,
    ))
    _record_prompt_events(decision.events, body.pathname)
    return {"ok": True, "decision": decision.to_dict()}


@router.post(
    "/install/events",
    dependencies=[Depends(origin_guard), Depends(ip_limit("pwa-install", 240))],
)
async def install_event(request: Request):
    """Apply a banner interaction and return the telemetry events it produced."""
    body = await parse_body(request, InstallEventRequest)

    prompt = _install_prompt(body.visitor_id, body.session_id)
    emitted = prompt.record_action(body.action, mode=body.mode, reason=body.reason, source=body.source)
    _record_prompt_events(emitted, body.pathname)
    return {"ok": True, "events": [{"name": event.name, "detail": event.detail} for event in emitted]}


# =============================================================================
# Rollout
# =============================================================================

@router.get("/rollout", dependencies=[Depends(ip_limit("pwa-rollout", 240))])
async def rollout(
    rollout_id: Annotated[Optional[str], Query(alias="rolloutId", max_length=128)] = None,
    pwa_rollout: Annotated[Optional[str], Query(max_length=16)] = None,
):
    """
    Evaluate the PWA rollout for a visitor.

    The rollout id names the visitor's bucket. Without one a new id is
    created and returned so the client can keep it.
    """
    rollout_id = (rollout_id or "").strip() or str(uuid.uuid4())
    storage = local_storage(get_state_backend(), rollout_id)
    storage.set(ROLLOUT_ID_STORAGE_KEY, rollout_id)

    decision = evaluate_rollout(
        settings.PWA_ENABLED,
        storage,
        settings.PWA_ROLLOUT_PERCENT,
        pwa_rollout,
    )
    return {
        **decision.to_dict(),
        "rolloutId": rollout_id,
    }
