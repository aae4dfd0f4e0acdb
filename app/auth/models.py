# =============================================================================
# app/auth/models.py - Authentication Models
# =============================================================================
# AuthUser is what routes receive from the auth dependencies. TokenPayload
# is the subset of Supabase access-token claims the API reads.
# =============================================================================

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from lib import roles


class AuthUser(BaseModel):
    """
    Caller identity taken from a verified access token.

    No database lookup is involved; `role` is the marketplace role
    (admin, moderator or None for regular buyers and sellers).
    """
    model_config = ConfigDict(frozen=True)

    id: UUID
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return roles.is_admin(self.role)

    @property
    def is_moderator(self) -> bool:
        return roles.is_moderator(self.role)


class UserResponse(BaseModel):
    """
    GET /api/auth/me

    Profile columns come from public.users; is_admin / is_moderator let the
    client decide whether to show the admin and moderation screens.
    """
    id: UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: Optional[str] = None
    is_admin: bool = False
    is_moderator: bool = False
    created_at: Optional[datetime] = None


class TokenPayload(BaseModel):
    """Claims read from a Supabase access token. Other claims are ignored."""
    model_config = ConfigDict(extra="ignore")

    sub: str
    email: Optional[str] = None
    exp: Optional[int] = None
    app_metadata: dict[str, Any] = Field(default_factory=dict)
    user_metadata: dict[str, Any] = Field(default_factory=dict)
