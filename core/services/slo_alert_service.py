# =============================================================================
# core/services/slo_alert_service.py - PWA SLO Alert Dispatch
# =============================================================================
# Evaluates the PWA telemetry summary and, when SLOs are breached, posts an
# alert to the configured webhook.
#
# Every run writes exactly one row to pwa_slo_alert_dispatches describing
# what happened (sent, failed, skipped_pass, skipped_duplicate,
# skipped_config). Sent alerts are de-duplicated by fingerprint inside the
# cooldown window unless the run is forced.
#
# Used by:
#   - GET|POST /api/internal/pwa/slo-alerts (cron / external scheduler)
#   - POST /api/admin/pwa/slo-alerts/trigger
#   - workers.tasks.run_pwa_slo_alert_check (Celery beat)
# =============================================================================

import hashlib
import json
import logging
import math
from typing import Any, Literal

import httpx

from app.config import settings
from core.services.telemetry_service import TelemetryService
from lib.pwa.telemetry_store import DISPLAY_MODES, SummaryOptions
from lib.supabase_client import SupabaseClient
from lib.utils import error_meta, iso_from_ms, now_ms

logger = logging.getLogger(__name__)

DISPATCH_TABLE = "pwa_slo_alert_dispatches"
DISPATCH_COLUMNS = "created_at, delivery_status, summary_status, alert_count, triggered_by, delivery_error"

DispatchStatus = Literal["sent", "failed", "skipped_pass", "skipped_duplicate", "skipped_config"]

MAX_PATH_PREFIX = 180


# =============================================================================
# Option normalization
# =============================================================================

def normalize_window_minutes(value: Any) -> int:
    try:
        raw = float(60 if value is None else value)
    except (TypeError, ValueError):
        return 60
    if not math.isfinite(raw):
        return 60
    return max(5, min(24 * 60, math.floor(raw)))


def normalize_display_mode(value: str | None) -> str:
    return value if value in DISPLAY_MODES else "all"


def normalize_path_prefix(value: str | None) -> str | None:
    if not value:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > MAX_PATH_PREFIX:
        return normalized[:MAX_PATH_PREFIX]
    return normalized if normalized.startswith("/") else f"/{normalized}"


def normalize_dispatch_limit(value: Any) -> int:
    try:
        raw = float(10 if value is None else value)
    except (TypeError, ValueError):
        return 10
    if not math.isfinite(raw):
        return 10
    return max(1, min(50, math.floor(raw)))


# =============================================================================
# Fingerprint & payload
# =============================================================================

def _stable_number(value: float) -> float | int:
    # 2600.0 and 2600 must hash the same
    rounded = round(float(value), 4)
    return int(rounded) if rounded.is_integer() else rounded


def alert_fingerprint(
    window_minutes: int,
    display_mode: str,
    path_prefix: str | None,
    status: str,
    alerts: list[dict[str, Any]],
) -> str:
    """
    sha256 hex digest identifying an alert situation.

    Two runs with the same filter, status and alert values produce the same
    fingerprint, which is what cooldown de-duplication keys on.
    """
    stable_value = json.dumps(
        {
            "windowMinutes": window_minutes,
            "displayMode": display_mode,
            "pathPrefix": path_prefix,
            "status": status,
            "alerts": [
                {
                    "key": alert["key"],
                    "severity": alert["severity"],
                    "current": _stable_number(alert["current"]),
                    "target": _stable_number(alert["target"]),
                    "comparator": alert["comparator"],
                }
                for alert in alerts
            ],
        },
        separators=(",", ":"),
    )
    return hashlib.sha256(stable_value.encode("utf-8")).hexdigest()


def _format_number(value: float) -> str:
    return str(_stable_number(value))


def build_webhook_payload(
    window_minutes: int,
    display_mode: str,
    path_prefix: str | None,
    summary: dict[str, Any],
) -> dict[str, Any]:
    """Build the JSON body posted to the alert webhook."""
    alerts = summary["alerts"]
    totals = summary["totals"]

    path_part = f" path={path_prefix}" if path_prefix else ""
    lines = [
        f"[PWA SLO {summary['status'].upper()}] {len(alerts)} active alert(s)",
        f"Window: {window_minutes}m",
        f"Filter: mode={display_mode}{path_part}",
        f"Events: total={totals['events']}, webVitals={totals['webVitals']}, lifecycle={totals['lifecycle']}",
    ]
    for alert in alerts:
        lines.append(
            f"- {alert['label']}: {_format_number(alert['current'])} {alert['comparator']} "
            f"{_format_number(alert['target'])} ({alert['severity']})"
        )

    return {
        "event": "pwa_slo_alert",
        "generatedAt": summary["generatedAt"],
        "status": summary["status"],
        "text": "\n".join(lines),
        "summary": {
            "filter": summary["filter"],
            "totals": totals,
            "funnels": summary["funnels"],
            "alerts": alerts,
            "thresholds": summary["thresholds"],
        },
    }


# =============================================================================
# Service
# =============================================================================

class SloAlertService:
    """
    Service for running SLO alert checks and reading dispatch history.
    """

    @staticmethod
    def record_dispatch(
        fingerprint: str,
        delivery_status: DispatchStatus,
        summary_status: str,
        alert_count: int,
        window_minutes: int,
        display_mode: str,
        path_prefix: str | None,
        payload: dict[str, Any],
        triggered_by: str,
        delivery_error: str | None = None,
    ) -> None:
        """Insert a dispatch row. Failures are logged and swallowed."""
        try:
            SupabaseClient.get_client().table(DISPATCH_TABLE).insert({
                "fingerprint": fingerprint,
                "delivery_status": delivery_status,
                "summary_status": summary_status,
                "alert_count": alert_count,
                "window_minutes": window_minutes,
                "display_mode": display_mode,
                "path_prefix": path_prefix,
                "payload": payload,
                "triggered_by": triggered_by,
                "delivery_error": delivery_error,
            }).execute()
        except Exception as e:
            logger.error(f"Failed to persist {DISPATCH_TABLE} row: {error_meta(e)['message']}")

    @staticmethod
    def has_recent_successful_dispatch(fingerprint: str) -> bool:
        """
        Check for a sent dispatch with this fingerprint inside the cooldown.

        A failing query counts as "no duplicate" so alerts are not lost.
        """
        since_iso = iso_from_ms(now_ms() - settings.PWA_SLO_ALERT_COOLDOWN_MINUTES * 60 * 1000)
        try:
            response = (
                SupabaseClient.get_client()
                .table(DISPATCH_TABLE)
                .select("id")
                .eq("fingerprint", fingerprint)
                .eq("delivery_status", "sent")
                .gte("created_at", since_iso)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to query {DISPATCH_TABLE} for dedupe: {error_meta(e)['message']}")
            return False

        return bool(response.data)

    @staticmethod
    def recent_dispatches(limit: int = 10) -> list[dict[str, Any]]:
        """
        Latest dispatch rows, newest first, in camelCase.

        Raises:
            Exception: Propagates the Supabase error so callers can report it
        """
        response = (
            SupabaseClient.get_client()
            .table(DISPATCH_TABLE)
            .select(DISPATCH_COLUMNS)
            .order("created_at", desc=True)
            .limit(normalize_dispatch_limit(limit))
            .execute()
        )
        return [
            {
                "createdAt": row.get("created_at"),
                "deliveryStatus": row.get("delivery_status"),
                "summaryStatus": row.get("summary_status"),
                "alertCount": row.get("alert_count"),
                "triggeredBy": row.get("triggered_by"),
                "deliveryError": row.get("delivery_error"),
            }
            for row in response.data or []
        ]

    @staticmethod
    def _load_summary(options: SummaryOptions) -> tuple[dict[str, Any], str]:
        if TelemetryService.is_durable_enabled():
            summary = TelemetryService.durable_summary(options)

            cleanup = TelemetryService.cleanup_retention()
            if not cleanup["ok"] and not cleanup["skipped"]:
                logger.warning(f"PWA telemetry retention cleanup failed: {cleanup.get('error')}")

            if summary is not None:
                return summary, "durable"

        return TelemetryService.memory_summary(options), "memory"

    @staticmethod
    def run_check(
        window_minutes: Any = 60,
        display_mode: str | None = "all",
        path_prefix: str | None = None,
        force: bool = False,
        triggered_by: str | None = "manual",
    ) -> dict[str, Any]:
        """
        Evaluate SLOs and dispatch an alert when needed.

        Args:
            window_minutes: Summary window (clamped to 5..1440)
            display_mode: browser/standalone/unknown, anything else means all
            path_prefix: Optional path filter
            force: Skip cooldown de-duplication
            triggered_by: Who started the run (manual, scheduler, admin:<id>)

        Returns:
            {"ok", "status": sent|skipped|error, "reason"?, "fingerprint",
             "alertCount", "summaryStatus", "source"}
        """
        window_minutes = normalize_window_minutes(window_minutes)
        display_mode = normalize_display_mode(display_mode)
        path_prefix = normalize_path_prefix(path_prefix)
        triggered_by = (triggered_by or "").strip() or "manual"

        options = SummaryOptions(
            window_minutes=window_minutes,
            display_mode=display_mode,
            path_prefix=path_prefix,
        )
        summary, source = SloAlertService._load_summary(options)

        alerts = summary["alerts"]
        summary_status = summary["status"]
        fingerprint = alert_fingerprint(window_minutes, display_mode, path_prefix, summary_status, alerts)

        base_result = {
            "fingerprint": fingerprint,
            "alertCount": len(alerts),
            "summaryStatus": summary_status,
            "source": source,
        }

        def record(status: DispatchStatus, payload: dict[str, Any], error: str | None = None) -> None:
            SloAlertService.record_dispatch(
                fingerprint=fingerprint,
                delivery_status=status,
                summary_status=summary_status,
                alert_count=len(alerts),
                window_minutes=window_minutes,
                display_mode=display_mode,
                path_prefix=path_prefix,
                payload=payload,
                triggered_by=triggered_by,
                delivery_error=error,
            )

        # ---------------------------------------------------------------------
        # Nothing to alert on
        # ---------------------------------------------------------------------
        if summary_status == "pass" or not alerts:
            record("skipped_pass", {
                "source": source,
                "generatedAt": summary["generatedAt"],
                "totals": summary["totals"],
            })
            return {**base_result, "ok": True, "status": "skipped", "reason": "no_active_alerts", "alertCount": 0}

        webhook_url = (settings.PWA_SLO_ALERT_WEBHOOK_URL or "").strip()
        if not webhook_url:
            record(
                "skipped_config",
                {"source": source, "generatedAt": summary["generatedAt"], "alerts": alerts},
                "PWA_SLO_ALERT_WEBHOOK_URL is not configured",
            )
            return {**base_result, "ok": False, "status": "error", "reason": "missing_webhook_config"}

        if not force and SloAlertService.has_recent_successful_dispatch(fingerprint):
            record("skipped_duplicate", {
                "source": source,
                "generatedAt": summary["generatedAt"],
                "alerts": alerts,
            })
            return {**base_result, "ok": True, "status": "skipped", "reason": "duplicate_within_cooldown"}

        # ---------------------------------------------------------------------
        # Deliver
        # ---------------------------------------------------------------------
        payload = build_webhook_payload(window_minutes, display_mode, path_prefix, summary)

        try:
            response = httpx.post(
                webhook_url,
                json=payload,
                timeout=settings.PWA_SLO_ALERT_TIMEOUT_MS / 1000,
            )
        except Exception as e:
            message = str(e) or "Unknown webhook error"
            logger.error(f"PWA SLO alert webhook failed: {message}")
            record("failed", payload, message)
            return {**base_result, "ok": False, "status": "error", "reason": message}

        if not response.is_success:
            body = response.text or ""
            message = f"Webhook returned {response.status_code}"
            if body:
                message = f"{message}: {body[:180]}"
            logger.error(f"PWA SLO alert webhook rejected: {message}")
            record("failed", payload, message)
            return {**base_result, "ok": False, "status": "error", "reason": message}

        logger.info(f"PWA SLO alert sent ({summary_status}, {len(alerts)} alerts, triggered by {triggered_by})")
        record("sent", payload)
        return {**base_result, "ok": True, "status": "sent"}
