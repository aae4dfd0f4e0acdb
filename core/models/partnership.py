# =============================================================================
# core/models/partnership.py - Partnership Inquiry Schemas
# =============================================================================
# Payload for POST /api/partnerships (business/partner contact form).
#
# store_onboarding doubles as the "become a seller" application and needs
# a signed-in user.
# =============================================================================

from typing import Annotated, Literal

from pydantic import EmailStr, Field, StringConstraints

from .common import CamelModel

PartnershipType = Literal[
    "influencer_collab",
    "sponsored_placement",
    "store_onboarding",
    "affiliate_referrals",
    "pr_press",
    "integrations",
    "investment_other",
]

SELLER_APPLICATION_TYPE = "store_onboarding"

PARTNERSHIP_TYPE_EMAIL_LABELS: dict[str, str] = {
    "influencer_collab": "Influencer collab",
    "sponsored_placement": "Sponsored placement",
    "store_onboarding": "Store onboarding / bulk listings",
    "affiliate_referrals": "Affiliate / referrals",
    "pr_press": "PR / press",
    "integrations": "Integrations",
    "investment_other": "Investment / other",
}


def _trimmed(max_length: int, min_length: int = 0):
    return Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=min_length, max_length=max_length),
    ]


class PartnershipInquiry(CamelModel):
    """
    Partnership / seller application form.

    Optional text fields accept "" and are stored as NULL.

    Example:
        {
            "name": "Dara",
            "email": "dara@example.com",
            "partnershipType": "sponsored_placement",
            "message": "We would like to promote our shop on KU BAZAR."
        }
    """

    name: _trimmed(140, 2)
    company: _trimmed(140) | None = None
    email: EmailStr = Field(..., max_length=255)
    website: _trimmed(512) | None = None
    partnership_type: PartnershipType
    partnership_type_label: _trimmed(140, 1) | None = None
    message: _trimmed(4000, 10)
    budget_range: _trimmed(64) | None = None
    country: _trimmed(80) | None = None
    city: _trimmed(80) | None = None
    phone: _trimmed(40) | None = None
    attachment_url: _trimmed(512) | None = None
    honeypot: str | None = None

    @property
    def type_label(self) -> str:
        return self.partnership_type_label or PARTNERSHIP_TYPE_EMAIL_LABELS[self.partnership_type]


class PartnershipResult(CamelModel):
    ok: bool = True
    email_sent: bool = False
    mailto: str | None = None
    saved: bool = False
