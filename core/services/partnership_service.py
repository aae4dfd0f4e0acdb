# =============================================================================
# core/services/partnership_service.py - Partnership Inquiries
# =============================================================================
# Stores partnership / seller-application inquiries and notifies the team.
#
# Delivery is layered so an inquiry is never silently lost:
#   1. row in partnership_inquiries (status "new")
#   2. e-mail through the Resend HTTP API (when configured)
#   3. a mailto: link the client can open as a last resort
# =============================================================================

import logging
from urllib.parse import quote

import httpx

from app.config import settings
from app.exceptions import NotAuthenticatedError, UpstreamError
from core.models.common import blank_to_none
from core.models.partnership import SELLER_APPLICATION_TYPE, PartnershipInquiry, PartnershipResult
from lib.supabase_client import SupabaseClient
from lib.utils import error_meta

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
RESEND_TIMEOUT_SECONDS = 10.0

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"


def build_email(inquiry: PartnershipInquiry) -> tuple[str, str]:
    """
    Build the notification subject and plain-text body.

    Returns:
        (subject, body)
    """
    subject = f"Partnership inquiry: {inquiry.name}"
    lines = [
        f"Name: {inquiry.name}",
        f"Company: {inquiry.company or '-'}",
        f"Email: {inquiry.email}",
        f"Website: {inquiry.website or '-'}",
        f"Type code: {inquiry.partnership_type}",
        f"Type label: {inquiry.type_label}",
        f"Budget: {inquiry.budget_range or '-'}",
        f"Country: {inquiry.country or '-'}",
        f"City: {inquiry.city or '-'}",
        f"Phone/WhatsApp: {inquiry.phone or '-'}",
        f"Attachment: {inquiry.attachment_url or '-'}",
        "",
        inquiry.message,
    ]
    return subject, "\n".join(lines)


def build_mailto(subject: str, body: str) -> str | None:
    target = settings.PUBLIC_PARTNERSHIPS_EMAIL or settings.PARTNERSHIPS_NOTIFY_EMAIL
    if not target:
        return None
    return (
        f"mailto:{quote(target, safe=_URI_COMPONENT_SAFE)}"
        f"?subject={quote(subject, safe=_URI_COMPONENT_SAFE)}"
        f"&body={quote(body, safe=_URI_COMPONENT_SAFE)}"
    )


class PartnershipService:
    """
    Service for partnership inquiries.
    """

    @staticmethod
    def resolve_user_id(user_id: str | None) -> str | None:
        """Return the id only when a matching public.users row exists."""
        if not user_id:
            return None
        client = SupabaseClient.get_client()
        try:
            response = client.table("users").select("id").eq("id", user_id).limit(1).execute()
        except Exception as e:
            logger.error(f"Failed to verify partnership inquiry user: {error_meta(e)}")
            return None
        return response.data[0]["id"] if response.data else None

    @staticmethod
    def send_notification(subject: str, body: str) -> bool:
        """
        Send the inquiry e-mail through Resend.

        Returns:
            True when Resend accepted the message, False when it is not
            configured or the call failed
        """
        to_email = settings.PARTNERSHIPS_NOTIFY_EMAIL or settings.PUBLIC_PARTNERSHIPS_EMAIL
        from_email = settings.PARTNERSHIPS_FROM_EMAIL
        if not settings.RESEND_API_KEY or not to_email or not from_email:
            return False

        try:
            response = httpx.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                json={"from": from_email, "to": [to_email], "subject": subject, "text": body},
                timeout=RESEND_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Failed to send partnership email: {e}")
            return False

        if not response.is_success:
            logger.warning(f"Failed to send partnership email: {response.status_code} {response.text[:200]}")
            return False
        return True

    @staticmethod
    def submit(inquiry: PartnershipInquiry, user_id: str | None) -> PartnershipResult:
        """
        Save and deliver an inquiry.

        Args:
            inquiry: Validated form (honeypot already checked by the route)
            user_id: Signed-in user, if any

        Returns:
            PartnershipResult describing which delivery paths worked

        Raises:
            NotAuthenticatedError: Seller application without a known user
            UpstreamError: Nothing could be saved, sent or offered as mailto
        """
        resolved_user_id = PartnershipService.resolve_user_id(user_id)
        if inquiry.partnership_type == SELLER_APPLICATION_TYPE and not resolved_user_id:
            raise NotAuthenticatedError("Sign in is required to submit a seller application.")

        client = SupabaseClient.get_client()
        saved = False
        try:
            client.table("partnership_inquiries").insert({
                "user_id": resolved_user_id,
                "name": inquiry.name,
                "company": blank_to_none(inquiry.company),
                "email": str(inquiry.email),
                "website": blank_to_none(inquiry.website),
                "partnership_type": inquiry.partnership_type,
                "message": inquiry.message,
                "budget_range": blank_to_none(inquiry.budget_range),
                "country": blank_to_none(inquiry.country),
                "city": blank_to_none(inquiry.city),
                "phone": blank_to_none(inquiry.phone),
                "attachment_url": blank_to_none(inquiry.attachment_url),
                "status": "new",
            }).execute()
            saved = True
        except Exception as e:
            logger.error(f"Failed to create partnership inquiry: {error_meta(e)}")

        subject, body = build_email(inquiry)
        email_sent = PartnershipService.send_notification(subject, body)
        mailto = build_mailto(subject, body)

        if not saved and not email_sent and not mailto:
            raise UpstreamError("Failed to submit inquiry")

        logger.info(
            f"Partnership inquiry ({inquiry.partnership_type}) received: "
            f"saved={saved} email_sent={email_sent}"
        )
        return PartnershipResult(ok=True, email_sent=email_sent, mailto=mailto, saved=saved)
