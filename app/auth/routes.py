# =============================================================================
# app/auth/routes.py - Account Endpoints
# =============================================================================
# Sign-up and sign-in happen in the browser with the Supabase client; the
# API only reports who the token belongs to.
#
#   GET /me       profile of the signed-in user
#   GET /verify   cheap token check used by the client on resume
# =============================================================================

import logging

from fastapi import APIRouter, Depends

from app.auth.dependencies import get_current_user
from app.auth.models import AuthUser, UserResponse
from lib.supabase_client import SupabaseClient
from lib.utils import error_meta

logger = logging.getLogger(__name__)

router = APIRouter()

PROFILE_COLUMNS = "id, email, full_name, avatar_url, created_at"


def _profile_row(user_id: str) -> dict | None:
    try:
        response = (
            SupabaseClient.get_client()
            .table("users")
            .select(PROFILE_COLUMNS)
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.warning(f"Profile lookup for {user_id} failed: {error_meta(e)['message']}")
        return None
    return response.data[0] if response.data else None


@router.get("/me", response_model=UserResponse)
async def me(user: AuthUser = Depends(get_current_user)) -> UserResponse:
    """
    Current user's profile.

    Falls back to the token's id and e-mail when the public.users row is
    missing (e.g. right after sign-up) or can't be read.
    """
    flags = {"role": user.role, "is_admin": user.is_admin, "is_moderator": user.is_moderator}
    row = _profile_row(str(user.id))
    if row is None:
        return UserResponse(id=user.id, email=user.email, **flags)
    return UserResponse(
        id=user.id,
        email=row.get("email") or user.email,
        full_name=row.get("full_name"),
        avatar_url=row.get("avatar_url"),
        created_at=row.get("created_at"),
        **flags,
    )


@router.get("/verify")
async def verify(user: AuthUser = Depends(get_current_user)) -> dict:
    return {"valid": True, "userId": str(user.id), "role": user.role}
