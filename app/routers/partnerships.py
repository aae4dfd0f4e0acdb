# =============================================================================
# app/routers/partnerships.py - Partnership Inquiry Endpoint
# =============================================================================
# POST /api/partnerships accepts the public partner / seller application form.
# =============================================================================

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from app.auth import AuthUser, get_current_user_optional
from app.guards import ip_limit, origin_guard, parse_body
from core.models.partnership import PartnershipInquiry
from core.services.partnership_service import PartnershipService

logger = logging.getLogger(__name__)

router = APIRouter()

FIVE_MINUTES_MS = 5 * 60_000


@router.post(
    "",
    dependencies=[
        Depends(origin_guard),
        Depends(ip_limit(
            "partnerships",
            6,
            FIVE_MINUTES_MS,
            "Too many requests. Please wait a few minutes and try again.",
        )),
    ],
)
async def submit_partnership(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Submit a partnership inquiry.

    Bots that fill the hidden honeypot field get a silent success. Seller
    applications (store_onboarding) need a signed-in user.

    Returns:
        {ok, emailSent, mailto, saved}
    """
    inquiry = await parse_body(request, PartnershipInquiry)
    if inquiry.honeypot and inquiry.honeypot.strip():
        logger.info("Partnership inquiry dropped by honeypot")
        return {"ok": True}

    result = PartnershipService.submit(inquiry, str(user.id) if user else None)
    return result.model_dump(by_alias=True)
