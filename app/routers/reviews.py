# =============================================================================
# app/routers/reviews.py - Seller Review Endpoints
# =============================================================================
# Public listing of reviews plus authenticated create/update and helpful
# votes. Mutating routes check origin and IP limits before the payload.
# =============================================================================

import logging
import math
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from app.auth import AuthUser, get_current_user_optional
from app.exceptions import ValidationFailedError
from app.guards import (
    ip_limit,
    limit_user,
    origin_guard,
    parse_body,
    read_json,
    require_user,
    validate,
)
from core.models.review import HelpfulVote, ReviewCreate, ReviewList, ReviewUpdate
from core.services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=ReviewList)
async def list_reviews(
    seller_id: Annotated[Optional[str], Query(alias="sellerId")] = None,
    product_id: Annotated[Optional[str], Query(alias="productId")] = None,
    limit: Annotated[Optional[int], Query()] = None,
    offset: Annotated[Optional[int], Query()] = None,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    List reviews for a seller or a product, newest first.

    Returns {items, total, average}. votedByMe is only set for signed-in callers.
    """
    if not seller_id and not product_id:
        raise ValidationFailedError("sellerId or productId required")

    return ReviewService.list_reviews(
        seller_id=seller_id,
        product_id=product_id,
        limit=limit,
        offset=offset,
        viewer_id=str(user.id) if user else None,
    )


@router.post(
    "",
    dependencies=[
        Depends(origin_guard),
        Depends(ip_limit("reviews", 60, message="Too many submissions. Please wait a moment.")),
    ],
)
async def create_review(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Submit a review (rating 1 to 5) for a seller.
    """
    payload = await parse_body(request, ReviewCreate)
    user = require_user(user)
    limit_user("reviews", user.id, 10, message="You have reached the review rate limit.")

    if payload.comment is not None:
        payload.comment = payload.comment.strip() or None

    review = ReviewService.create_review(str(user.id), payload)
    return {"ok": True, "review": review}


@router.patch("", dependencies=[Depends(origin_guard)])
async def update_review(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Edit the caller's own review. Only fields present in the body change.
    """
    user = require_user(user)
    payload = validate(ReviewUpdate, await read_json(request))
    if not payload.id:
        raise ValidationFailedError("id required")

    changes = {}
    if payload.rating is not None:
        if not math.isfinite(payload.rating) or payload.rating < 1 or payload.rating > 5:
            raise ValidationFailedError("Invalid rating")
        changes["rating"] = payload.rating
    if "comment" in payload.model_fields_set:
        changes["comment"] = (payload.comment or "").strip() or None
    if payload.is_anonymous is not None:
        changes["is_anonymous"] = payload.is_anonymous

    ReviewService.update_review(str(user.id), payload.id, changes)
    return {"ok": True}


@router.post(
    "/helpful",
    dependencies=[
        Depends(origin_guard),
        Depends(ip_limit("helpful", 120, message="Too many actions. Try later.")),
    ],
)
async def vote_helpful(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Add or remove a "helpful" vote. Returns the new vote count.
    """
    vote = await parse_body(request, HelpfulVote)
    user = require_user(user)
    limit_user("helpful", user.id, 60, message="Rate limited")

    count = ReviewService.set_helpful(vote.review_id, str(user.id), vote.action == "add")
    return {"ok": True, "count": count}
