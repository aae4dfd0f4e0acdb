# =============================================================================
# core/models/review.py - Review Schemas
# =============================================================================
# Buyer reviews of sellers (optionally tied to a product):
# - ReviewCreate: POST /api/reviews
# - ReviewUpdate: PATCH /api/reviews (author only)
# - HelpfulVote: POST /api/reviews/helpful
# - ReviewItem / ReviewList: GET /api/reviews
# =============================================================================

from typing import Literal

from pydantic import Field

from .common import CamelModel


class ReviewCreate(CamelModel):
    """
    Schema for submitting a review.

    Example:
        {"sellerId": "...", "rating": 5, "comment": "Fast delivery"}
    """

    seller_id: str = Field(..., min_length=1)
    product_id: str | None = None
    rating: int = Field(..., ge=1, le=5, description="Star rating, 1 to 5 inclusive")
    comment: str | None = None
    is_anonymous: bool = False


class ReviewUpdate(CamelModel):
    """
    Partial update of a review by its author.

    Only fields present in the payload are changed. An explicit
    `"comment": null` clears the comment.
    """

    id: str | None = None
    rating: float | None = None
    comment: str | None = None
    is_anonymous: bool | None = None


class HelpfulVote(CamelModel):
    review_id: str = Field(..., min_length=1)
    action: Literal["add", "remove"]


class ReviewItem(CamelModel):
    id: str
    rating: float
    comment: str
    is_anonymous: bool
    created_at: str
    buyer_name: str
    buyer_avatar: str | None = None
    buyer_id: str | None = None
    helpful_count: int = 0
    voted_by_me: bool = False


class ReviewList(CamelModel):
    items: list[ReviewItem]
    total: int
    average: float
