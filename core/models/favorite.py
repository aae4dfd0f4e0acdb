# =============================================================================
# core/models/favorite.py - Favorites (Watchlist) Schemas
# =============================================================================

from .common import CamelModel


class FavoriteRequest(CamelModel):
    """Body of POST/DELETE /api/favorites. productId is checked by the route."""

    product_id: str | None = None
