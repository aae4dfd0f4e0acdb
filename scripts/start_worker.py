#!/usr/bin/env python3
# =============================================================================
# scripts/start_worker.py - Run the PWA Worker Locally
# =============================================================================
# One worker process with the embedded beat scheduler, consuming the "pwa"
# queue. Needs REDIS_URL and the Supabase settings from .env.
#
# Usage:
#   python scripts/start_worker.py
# =============================================================================

from workers.celery_app import celery_app
from workers.config import PWA_QUEUE


def main():
    print("KU BAZAR worker: SLO alert checks every 15 min, telemetry cleanup at 03:30 UTC")
    print("Ctrl+C to stop\n")

    # Concurrency 1 keeps beat from scheduling the same check twice.
    celery_app.worker_main([
        "worker",
        "--beat",
        f"--queues={PWA_QUEUE}",
        "--concurrency=1",
        "--loglevel=info",
    ])


if __name__ == "__main__":
    main()
