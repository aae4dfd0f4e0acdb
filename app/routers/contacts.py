# =============================================================================
# app/routers/contacts.py - Public App Contacts
# =============================================================================
# GET /api/app/contacts returns the support contacts shown in the footer.
# =============================================================================

from fastapi import APIRouter

from core.services.contacts_service import ContactsService

router = APIRouter()


@router.get("/contacts")
async def get_contacts():
    contacts = ContactsService.get_contacts()
    return {
        "ok": True,
        "contacts": contacts.model_dump(by_alias=True, include={"support_email", "support_whatsapp", "source"}),
    }
