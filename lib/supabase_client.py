# =============================================================================
# lib/supabase_client.py - Shared Supabase Client
# =============================================================================
# One service-role client per process, shared by the API routes, the
# services and the Celery tasks.
#
# The service-role key bypasses Row Level Security, so every query a service
# builds must be scoped to the calling user (seller_id, sender_id, ...).
#
# Usage:
#   from lib.supabase_client import SupabaseClient
#   client = SupabaseClient.get_client()
#   client.table("reviews").select("id").eq("seller_id", seller_id).execute()
# =============================================================================

import logging
from threading import Lock

from supabase import Client, create_client

from app.config import settings

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Lazily created service-role client. Not meant to be instantiated."""

    _instance: Client | None = None
    _lock = Lock()

    @classmethod
    def get_client(cls) -> Client:
        """
        Return the process-wide client, creating it on first use.

        Raises:
            RuntimeError: SUPABASE_URL or SUPABASE_SERVICE_KEY is not set
        """
        if cls._instance is not None:
            return cls._instance

        with cls._lock:
            if cls._instance is None:
                if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
                    raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
                cls._instance = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
                logger.info(f"Supabase client ready for {settings.SUPABASE_URL}")
        return cls._instance

    @classmethod
    def ping(cls) -> None:
        """Cheapest query that proves the database answers. Raises on failure."""
        cls.get_client().table("products").select("id").limit(1).execute()

    @classmethod
    def check_bucket(cls, bucket: str) -> None:
        """Raise unless the storage bucket exists."""
        cls.get_client().storage.get_bucket(bucket)
