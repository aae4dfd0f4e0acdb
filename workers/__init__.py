# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# This package contains the Celery configuration and the periodic PWA
# maintenance tasks (SLO alert checks, telemetry retention).
#
# Components:
# - celery_app.py: Celery application configuration
# - tasks.py: Task definitions
# - config.py: Worker settings and the beat schedule
#
# Usage:
#   # Start worker with the embedded beat scheduler
#   celery -A workers.celery_app worker --beat --loglevel=info
#
#   # Queue a check by hand
#   from workers.tasks import run_pwa_slo_alert_check
#   result = run_pwa_slo_alert_check.delay(force=True, triggered_by="manual")
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
