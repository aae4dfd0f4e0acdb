# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Defines periodic PWA maintenance tasks.
#
# Tasks:
# - run_pwa_slo_alert_check: Evaluate telemetry SLOs and send the webhook
# - cleanup_pwa_telemetry: Delete durable telemetry past retention
#
# Both run from the beat schedule in workers/config.py and can also be
# queued by hand with .delay().
# =============================================================================

import logging
from typing import Any

from celery import shared_task

logger = logging.getLogger(__name__)


# =============================================================================
# SLO Alerts
# =============================================================================

@shared_task(bind=True, name="workers.tasks.run_pwa_slo_alert_check")
def run_pwa_slo_alert_check(
    self,
    window_minutes: int = 60,
    display_mode: str = "all",
    path_prefix: str | None = None,
    force: bool = False,
    triggered_by: str = "scheduler",
) -> dict[str, Any]:
    """
    Run the PWA SLO alert check.

    The cooldown de-duplication applies unless force is set, so running this
    every 15 minutes sends at most one webhook per cooldown for the same
    set of alerts.

    Args:
        window_minutes: Summary window (clamped to 5..1440)
        display_mode: all, browser, standalone or unknown
        path_prefix: Optional path filter
        force: Skip cooldown de-duplication
        triggered_by: Recorded on the dispatch row

    Returns:
        The check result ({"ok", "status", "reason"?, ...}), or
        {"ok": False, "status": "error", "reason"} when the check raised
    """
    from core.services.slo_alert_service import SloAlertService

    logger.info(f"Running PWA SLO alert check ({window_minutes}m, {display_mode}, triggered by {triggered_by})")

    try:
        result = SloAlertService.run_check(
            window_minutes=window_minutes,
            display_mode=display_mode,
            path_prefix=path_prefix,
            force=force,
            triggered_by=triggered_by,
        )
    except Exception as e:
        logger.exception(f"PWA SLO alert check failed: {e}")
        return {
            "ok": False,
            "status": "error",
            "reason": str(e),
        }

    if result["ok"]:
        logger.info(f"PWA SLO alert check finished: {result['status']} {result.get('reason') or ''}".rstrip())
    else:
        logger.warning(f"PWA SLO alert check reported an error: {result.get('reason')}")
    return result


# =============================================================================
# Telemetry Retention
# =============================================================================

@shared_task(bind=True, name="workers.tasks.cleanup_pwa_telemetry")
def cleanup_pwa_telemetry(self) -> dict[str, Any]:
    """
    Delete durable telemetry rows older than PWA_TELEMETRY_RETENTION_DAYS.

    Skipped when durable telemetry is disabled.
    """
    from core.services.telemetry_service import TelemetryService

    result = TelemetryService.cleanup_retention()
    if result["skipped"]:
        logger.info("Durable PWA telemetry disabled, nothing to clean up")
    return result
