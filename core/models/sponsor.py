# =============================================================================
# core/models/sponsor.py - Sponsor Store Admin Schemas
# =============================================================================
# Admin management of sponsor stores (partner shops promoted in the app):
# - SponsorStoreCreate: POST /api/admin/sponsors/stores
# - SponsorStoreStatusUpdate: PATCH /api/admin/sponsors/stores/{id}/status
#
# New stores always start as "pending"; approval goes through the
# admin_set_sponsor_store_status RPC which enforces the allowed transitions.
# =============================================================================

import re
import unicodedata
from typing import Annotated, Literal
from uuid import UUID

from pydantic import StringConstraints

from .common import CamelModel

SponsorStoreStatus = Literal["pending", "active", "disabled"]
SPONSOR_STORE_STATUSES: tuple[str, ...] = ("pending", "active", "disabled")
SLUG_MAX_LENGTH = 80


def _optional_text(max_length: int):
    return Annotated[str, StringConstraints(strip_whitespace=True, max_length=max_length)] | None


def normalize_slug(value: str) -> str:
    """
    Turn free text into a URL slug.

    Example:
        normalize_slug("Café  Erbil!") -> "cafe-erbil"
    """
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = re.sub(r"[^a-z0-9]+", "-", stripped.lower())
    slug = re.sub(r"^-+|-+$", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug[:SLUG_MAX_LENGTH]


def normalize_store_status(value: object) -> SponsorStoreStatus:
    normalized = value.strip().lower() if isinstance(value, str) else ""
    if normalized in ("active", "disabled"):
        return normalized  # type: ignore[return-value]
    return "pending"


class SponsorStoreCreate(CamelModel):
    """
    Schema for creating a sponsor store.

    Example:
        {"name": "Erbil Phones", "sponsorTier": "featured", "isFeatured": true}
    """

    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=140)]
    slug: _optional_text(SLUG_MAX_LENGTH) = None
    description: _optional_text(4000) = None
    primary_city: _optional_text(40) = None
    phone: _optional_text(40) = None
    whatsapp: _optional_text(40) = None
    website: _optional_text(512) = None
    owner_user_id: UUID | None = None
    status: SponsorStoreStatus = "active"
    sponsor_tier: Literal["basic", "featured"] = "basic"
    is_featured: bool = False


class SponsorStoreStatusUpdate(CamelModel):
    status: Literal["active", "disabled"]
