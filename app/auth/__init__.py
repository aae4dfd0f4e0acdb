# =============================================================================
# app/auth/__init__.py - Authentication Module
# =============================================================================
# Supabase access-token verification for the marketplace API.
#
# Usage:
#   from app.auth import AuthUser, get_current_user_optional
#   from app.guards import require_user
#
#   @router.post("")
#   async def create(request: Request, user=Depends(get_current_user_optional)):
#       payload = await parse_body(request, Model)
#       user = require_user(user)
# =============================================================================

from app.auth.dependencies import decode_access_token, get_current_user, get_current_user_optional
from app.auth.models import AuthUser, UserResponse

__all__ = [
    "AuthUser",
    "UserResponse",
    "decode_access_token",
    "get_current_user",
    "get_current_user_optional",
]
