# =============================================================================
# core/services/contacts_service.py - App Support Contacts
# =============================================================================
# Reads and writes the single app_settings row (id = true).
#
# When the row is missing or holds neither contact, the public
# PUBLIC_PARTNERSHIPS_EMAIL / PUBLIC_PARTNERSHIPS_WHATSAPP settings are
# used instead (source "env"), or nothing at all (source "none").
# =============================================================================

import logging
import re
from typing import Any

from pydantic import EmailStr, TypeAdapter, ValidationError

from app.config import settings
from app.exceptions import ValidationFailedError
from core.models.contacts import AppContacts, AppContactsUpdate
from lib.supabase_client import SupabaseClient
from lib.utils import error_meta, is_missing_relation

logger = logging.getLogger(__name__)

SETTINGS_TABLE = "app_settings"
SETTINGS_COLUMNS = (
    "support_email, support_whatsapp, updated_at, updated_by, "
    "updated_user:users!app_settings_updated_by_fkey(full_name, name, email)"
)
WHATSAPP_PATTERN = re.compile(r"^\+[0-9]{7,20}$")

_email_adapter = TypeAdapter(EmailStr)


def normalize_email(value: str | None) -> str | None:
    normalized = (value or "").strip().lower()
    return normalized or None


def normalize_whatsapp(value: str | None) -> str | None:
    """
    Keep digits and "+", turn a leading 00 into "+", and make sure the
    number starts with "+".

    Example:
        normalize_whatsapp("00964 750 123 4567") -> "+9647501234567"
    """
    normalized = re.sub(r"[^\d+]", "", value or "")
    normalized = re.sub(r"^00", "+", normalized).strip()
    if not normalized:
        return None
    if normalized.startswith("+"):
        return normalized
    return f"+{normalized}"


def _updated_by_name(relation: Any) -> str | None:
    if isinstance(relation, list):
        relation = relation[0] if relation else None
    if not relation:
        return None
    for key in ("full_name", "name", "email"):
        value = (relation.get(key) or "").strip()
        if value:
            return value
    return None


def fallback_contacts() -> AppContacts:
    support_email = normalize_email(settings.PUBLIC_PARTNERSHIPS_EMAIL)
    support_whatsapp = normalize_whatsapp(settings.PUBLIC_PARTNERSHIPS_WHATSAPP)
    return AppContacts(
        support_email=support_email,
        support_whatsapp=support_whatsapp,
        source="env" if support_email or support_whatsapp else "none",
    )


class ContactsService:
    """
    Service for the support contacts shown across the app.
    """

    @staticmethod
    def get_contacts() -> AppContacts:
        """
        Load contacts from app_settings, falling back to configuration.

        Never raises: read failures are logged and the fallback is returned.
        """
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table(SETTINGS_TABLE)
                .select(SETTINGS_COLUMNS)
                .eq("id", True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            if not is_missing_relation(e):
                logger.error(f"Failed to load app contacts: {error_meta(e)}")
            return fallback_contacts()

        if not response.data:
            return fallback_contacts()

        row = response.data[0]
        support_email = normalize_email(row.get("support_email"))
        support_whatsapp = normalize_whatsapp(row.get("support_whatsapp"))
        if not support_email and not support_whatsapp:
            return fallback_contacts()

        return AppContacts(
            support_email=support_email,
            support_whatsapp=support_whatsapp,
            updated_at=row.get("updated_at"),
            updated_by_name=_updated_by_name(row.get("updated_user")),
            source="db",
        )

    @staticmethod
    def update_contacts(update: AppContactsUpdate, user_id: str) -> AppContacts:
        """
        Normalize, validate and store new contacts.

        Args:
            update: Requested values (None clears a contact)
            user_id: Admin making the change

        Returns:
            The contacts as read back after the write

        Raises:
            ValidationFailedError: Invalid e-mail / WhatsApp number, or the
                upsert was rejected
        """
        support_email = normalize_email(update.support_email)
        support_whatsapp = normalize_whatsapp(update.support_whatsapp)

        if support_email:
            try:
                _email_adapter.validate_python(support_email)
            except ValidationError:
                raise ValidationFailedError("Email is invalid.")
        if support_whatsapp and not WHATSAPP_PATTERN.match(support_whatsapp):
            raise ValidationFailedError("WhatsApp number is invalid.")

        client = SupabaseClient.get_client()
        try:
            client.table(SETTINGS_TABLE).upsert(
                {
                    "id": True,
                    "support_email": support_email,
                    "support_whatsapp": support_whatsapp,
                    "updated_by": user_id,
                },
                on_conflict="id",
            ).execute()
        except Exception as e:
            logger.error(f"Failed to update app contacts: {error_meta(e)}")
            raise ValidationFailedError("Failed to update contacts.")

        logger.info(f"App contacts updated by {user_id}")
        return ContactsService.get_contacts()
