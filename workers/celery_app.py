# =============================================================================
# workers/celery_app.py - Celery Application
# =============================================================================
# Background worker for the PWA jobs (SLO alert checks, telemetry cleanup).
# Redis is both broker and result backend; the schedule lives in
# workers.config.
#
#   celery -A workers.celery_app worker --beat --loglevel=info
# =============================================================================

import logging

from celery import Celery
from celery.signals import setup_logging, task_failure, task_postrun, task_prerun
from dotenv import load_dotenv

load_dotenv()

from app.config import settings  # noqa: E402

logger = logging.getLogger(__name__)


def _redacted(url: str) -> str:
    """Drop credentials from a redis:// URL before it goes to the log."""
    return url.rsplit("@", 1)[-1]


celery_app = Celery("kubazar_worker", include=["workers.tasks"])
celery_app.config_from_object("workers.config:CeleryConfig")


@setup_logging.connect
def configure_worker_logging(**kwargs):
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(f"Worker logging configured, broker {_redacted(settings.REDIS_URL)}")


@task_prerun.connect
def log_task_start(task_id=None, task=None, **kwargs):
    logger.info(f"{task.name} [{task_id}] started")


@task_postrun.connect
def log_task_end(task_id=None, task=None, state=None, **kwargs):
    logger.info(f"{task.name} [{task_id}] finished: {state}")


@task_failure.connect
def log_task_failure(sender=None, task_id=None, exception=None, **kwargs):
    logger.error(f"{sender.name} [{task_id}] failed: {exception}")


if __name__ == "__main__":
    celery_app.start()
