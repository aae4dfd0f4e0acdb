# =============================================================================
# app/routers/favorites.py - Favorites (Watchlist) Endpoints
# =============================================================================

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from app.auth import AuthUser, get_current_user_optional
from app.exceptions import ValidationFailedError
from app.guards import ip_limit, limit_user, origin_guard, read_json, require_user, validate
from core.models.common import blank_to_none
from core.models.favorite import FavoriteRequest
from core.services.favorite_service import FavoriteService

logger = logging.getLogger(__name__)

router = APIRouter()

FAVORITES_GUARDS = [
    Depends(origin_guard),
    Depends(ip_limit(
        "favorites",
        80,
        message="Too many favorite operations from this network. Please try again later.",
    )),
]


async def _favorite_target(request: Request, user: Optional[AuthUser]) -> tuple[AuthUser, str]:
    user = require_user(user)
    limit_user("favorites", user.id, 40, message="Favorite rate limit reached. Please wait before trying again.")

    payload = validate(FavoriteRequest, await read_json(request))
    product_id = blank_to_none(payload.product_id)
    if not product_id:
        raise ValidationFailedError("productId is required")
    return user, product_id


@router.post("", dependencies=FAVORITES_GUARDS)
async def add_favorite(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    user, product_id = await _favorite_target(request, user)
    FavoriteService.add_favorite(str(user.id), product_id)
    return {"success": True}


@router.delete("", dependencies=FAVORITES_GUARDS)
async def remove_favorite(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    user, product_id = await _favorite_target(request, user)
    FavoriteService.remove_favorite(str(user.id), product_id)
    return {"success": True}
