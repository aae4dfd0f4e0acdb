# =============================================================================
# core/models/contacts.py - App Support Contacts
# =============================================================================
# Support e-mail / WhatsApp shown in the app footer and help pages.
# Stored in the single-row app_settings table (id = true), with the
# PUBLIC_PARTNERSHIPS_* settings as fallback.
# =============================================================================

from typing import Annotated, Literal

from pydantic import StringConstraints

from .common import CamelModel

ContactsSource = Literal["db", "env", "none"]


class AppContacts(CamelModel):
    support_email: str | None = None
    support_whatsapp: str | None = None
    updated_at: str | None = None
    updated_by_name: str | None = None
    source: ContactsSource = "none"


class AppContactsUpdate(CamelModel):
    support_email: Annotated[str, StringConstraints(strip_whitespace=True, max_length=255)] | None = None
    support_whatsapp: Annotated[str, StringConstraints(strip_whitespace=True, max_length=64)] | None = None
