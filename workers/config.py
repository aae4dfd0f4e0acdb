# =============================================================================
# workers/config.py - Celery Settings and Beat Schedule
# =============================================================================
# Applied with celery_app.config_from_object("workers.config:CeleryConfig").
#
# Schedule:
#   pwa-slo-alert-check     every 15 minutes
#   pwa-telemetry-cleanup   daily at 03:30 UTC
# =============================================================================

from celery.schedules import crontab

from app.config import settings

SLO_ALERT_CHECK_INTERVAL_SECONDS = 15 * 60
PWA_QUEUE = "pwa"


class CeleryConfig:
    broker_url = settings.REDIS_URL
    result_backend = settings.REDIS_URL
    result_expires = 60 * 60

    # A check that outlives its 15 minute slot would overlap the next one;
    # webhook calls inside it are capped at 30s each.
    task_acks_late = True
    worker_prefetch_multiplier = 1
    task_soft_time_limit = 90
    task_time_limit = 120

    task_serializer = "json"
    result_serializer = "json"
    accept_content = ["json"]

    task_default_queue = PWA_QUEUE
    task_routes = {"workers.tasks.*": {"queue": PWA_QUEUE}}

    beat_schedule = {
        "pwa-slo-alert-check": {
            "task": "workers.tasks.run_pwa_slo_alert_check",
            "schedule": SLO_ALERT_CHECK_INTERVAL_SECONDS,
            "kwargs": {"triggered_by": "scheduler"},
        },
        "pwa-telemetry-cleanup": {
            "task": "workers.tasks.cleanup_pwa_telemetry",
            "schedule": crontab(hour=3, minute=30),
        },
    }

    worker_send_task_events = True
    task_send_sent_event = True

    timezone = "UTC"
    enable_utc = True
