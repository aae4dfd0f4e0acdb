# =============================================================================
# core/services/review_service.py - Review Operations
# =============================================================================
# Reads and writes the reviews / review_helpful tables.
#
# Reviews are public; the buyer's name is hidden by the client when
# is_anonymous is set, but the row is always returned.
# =============================================================================

import logging
from typing import Any

from app.exceptions import NotFoundError, UpstreamError
from core.models.review import ReviewCreate, ReviewItem, ReviewList
from lib.supabase_client import SupabaseClient
from lib.utils import is_unique_violation

logger = logging.getLogger(__name__)

REVIEW_LIST_COLUMNS = (
    "id, rating, comment, is_anonymous, created_at, buyer_id, "
    "buyer:buyer_id(full_name, avatar_url)"
)
REVIEW_INSERT_COLUMNS = "id, rating, comment, is_anonymous, created_at"

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50


def _first(relation: Any) -> dict[str, Any]:
    """PostgREST embeds come back as an object or a one-item list."""
    if isinstance(relation, list):
        return relation[0] if relation else {}
    return relation or {}


class ReviewService:
    """
    Service for seller reviews and helpful votes.
    """

    @staticmethod
    def list_reviews(
        seller_id: str | None,
        product_id: str | None,
        limit: int | None = None,
        offset: int | None = None,
        viewer_id: str | None = None,
    ) -> ReviewList:
        """
        Page through reviews for a seller or a product, newest first.

        Args:
            seller_id: Filter by seller
            product_id: Filter by product (used when seller_id is empty)
            limit: Page size (default 10, max 50)
            offset: Rows to skip
            viewer_id: Current user, to flag the reviews they voted helpful

        Returns:
            ReviewList with an exact total and the average of the page
        """
        page_size = min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
        if page_size <= 0:
            page_size = DEFAULT_PAGE_SIZE
        start = max(offset or 0, 0)

        client = SupabaseClient.get_client()
        query = client.table("reviews").select(REVIEW_LIST_COLUMNS, count="exact")
        if seller_id:
            query = query.eq("seller_id", seller_id)
        else:
            query = query.eq("product_id", product_id)

        try:
            response = (
                query.order("created_at", desc=True)
                .range(start, start + page_size - 1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to load reviews: {e}")
            raise UpstreamError("Failed to load reviews")

        rows = response.data or []
        review_ids = [row["id"] for row in rows]
        helpful_counts, voted = ReviewService._helpful_stats(review_ids, viewer_id)

        items: list[ReviewItem] = []
        for row in rows:
            buyer = _first(row.get("buyer"))
            items.append(
                ReviewItem(
                    id=row["id"],
                    rating=row.get("rating") or 0,
                    comment=row.get("comment") or "",
                    is_anonymous=bool(row.get("is_anonymous")),
                    created_at=row.get("created_at") or "",
                    buyer_name=buyer.get("full_name") or "Buyer",
                    buyer_avatar=buyer.get("avatar_url"),
                    buyer_id=row.get("buyer_id"),
                    helpful_count=helpful_counts.get(row["id"], 0),
                    voted_by_me=row["id"] in voted,
                )
            )

        average = sum(item.rating for item in items) / len(items) if items else 0
        return ReviewList(
            items=items,
            total=response.count if response.count is not None else len(items),
            average=average,
        )

    @staticmethod
    def _helpful_stats(review_ids: list[str], viewer_id: str | None) -> tuple[dict[str, int], set[str]]:
        """Count helpful votes per review and collect the viewer's own votes."""
        counts: dict[str, int] = {}
        voted: set[str] = set()
        if not review_ids:
            return counts, voted

        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("review_helpful")
                .select("review_id, user_id")
                .in_("review_id", review_ids)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Failed to load helpful votes: {e}")
            return counts, voted

        for row in response.data or []:
            review_id = row.get("review_id")
            counts[review_id] = counts.get(review_id, 0) + 1
            if viewer_id and row.get("user_id") == viewer_id:
                voted.add(review_id)
        return counts, voted

    @staticmethod
    def create_review(buyer_id: str, review: ReviewCreate) -> dict[str, Any]:
        """
        Insert a review written by the current user.

        Returns:
            The inserted row (id, rating, comment, is_anonymous, created_at)

        Raises:
            UpstreamError: If the insert fails
        """
        client = SupabaseClient.get_client()
        data = {
            "seller_id": review.seller_id,
            "product_id": review.product_id or None,
            "buyer_id": buyer_id,
            "rating": review.rating,
            "comment": review.comment or None,
            "is_anonymous": review.is_anonymous,
        }

        try:
            response = client.table("reviews").insert(data).execute()
        except Exception as e:
            logger.error(f"Failed to submit review for seller {review.seller_id}: {e}")
            raise UpstreamError("Failed to submit review")

        if not response.data:
            raise UpstreamError("Failed to submit review")

        row = response.data[0]
        logger.info(f"Review {row.get('id')} submitted for seller {review.seller_id}")
        return {key: row.get(key) for key in ("id", "rating", "comment", "is_anonymous", "created_at")}

    @staticmethod
    def update_review(buyer_id: str, review_id: str, changes: dict[str, Any]) -> None:
        """
        Apply a partial update to one of the caller's reviews.

        Raises:
            NotFoundError: No review with that id written by the caller
            UpstreamError: If the update fails
        """
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("reviews")
                .update(changes)
                .eq("id", review_id)
                .eq("buyer_id", buyer_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to update review {review_id}: {e}")
            raise UpstreamError("Failed to update review")

        if not response.data:
            raise NotFoundError("Review not found")

    @staticmethod
    def set_helpful(review_id: str, user_id: str, add: bool) -> int:
        """
        Add or remove the caller's helpful vote.

        Voting twice is not an error.

        Returns:
            Number of helpful votes on the review afterwards
        """
        client = SupabaseClient.get_client()
        table = client.table("review_helpful")

        try:
            if add:
                table.insert({"review_id": review_id, "user_id": user_id}).execute()
            else:
                table.delete().eq("review_id", review_id).eq("user_id", user_id).execute()
        except Exception as e:
            if not (add and is_unique_violation(e)):
                logger.error(f"Failed to update helpful vote on {review_id}: {e}")
                raise UpstreamError("Failed to update vote")

        try:
            response = (
                client.table("review_helpful")
                .select("review_id", count="exact", head=True)
                .eq("review_id", review_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to count helpful votes on {review_id}: {e}")
            raise UpstreamError("Failed to update vote")

        return response.count or 0
