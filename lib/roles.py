# =============================================================================
# lib/roles.py - Marketplace Role Resolution
# =============================================================================
# Supabase keeps custom roles in token metadata. The marketplace checks
# app_metadata first (set by admins), then user_metadata, then the top-level
# claim. The top-level claim is usually the Postgres role "authenticated",
# which carries no marketplace meaning.
# =============================================================================

from typing import Any, Mapping

ADMIN_ROLE = "admin"
MODERATOR_ROLE = "moderator"

_POSTGRES_ROLES = {"authenticated", "anon", "service_role"}


def _role_from(metadata: Any) -> str | None:
    if isinstance(metadata, Mapping):
        value = metadata.get("role")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def resolve_role(claims: Mapping[str, Any]) -> str | None:
    """
    Resolve the lowercased marketplace role from JWT claims.

    Args:
        claims: Decoded token payload

    Returns:
        Role string, or None when the user has no marketplace role
    """
    role = _role_from(claims.get("app_metadata")) or _role_from(claims.get("user_metadata"))
    if role is None:
        top_level = claims.get("role")
        if isinstance(top_level, str) and top_level.strip().lower() not in _POSTGRES_ROLES:
            role = top_level.strip()
    return role.lower() if role else None


def is_admin(role: str | None) -> bool:
    return role == ADMIN_ROLE


def is_moderator(role: str | None) -> bool:
    return role in (ADMIN_ROLE, MODERATOR_ROLE)
