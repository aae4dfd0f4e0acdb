# =============================================================================
# core/services/favorite_service.py - Favorites (Watchlist)
# =============================================================================
# One favorites row per (user_id, product_id).
# =============================================================================

import logging

from app.exceptions import UpstreamError
from lib.supabase_client import SupabaseClient
from lib.utils import error_meta

logger = logging.getLogger(__name__)


class FavoriteService:
    """
    Service for the user's watchlist.
    """

    @staticmethod
    def add_favorite(user_id: str, product_id: str) -> None:
        """
        Save a product to the user's watchlist. Saving twice is a no-op.

        Raises:
            UpstreamError: If the upsert fails
        """
        client = SupabaseClient.get_client()
        try:
            client.table("favorites").upsert(
                {"user_id": user_id, "product_id": product_id},
                on_conflict="user_id,product_id",
            ).execute()
        except Exception as e:
            logger.error(f"Failed to add favorite {product_id} for {user_id}: {error_meta(e)}")
            raise UpstreamError("Failed to add favorite")

    @staticmethod
    def remove_favorite(user_id: str, product_id: str) -> None:
        client = SupabaseClient.get_client()
        try:
            (
                client.table("favorites")
                .delete()
                .eq("user_id", user_id)
                .eq("product_id", product_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to remove favorite {product_id} for {user_id}: {error_meta(e)}")
            raise UpstreamError("Failed to remove favorite")
