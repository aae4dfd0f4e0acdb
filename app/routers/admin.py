# =============================================================================
# app/routers/admin.py - Admin Moderation & App Settings
# =============================================================================
# Endpoints:
#   POST  /moderate       toggle products.is_active (x-admin-token header)
#   GET   /app-contacts   current support contacts (moderators)
#   PATCH /app-contacts   update support contacts (admins)
# =============================================================================

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Request

from app.auth import AuthUser, get_current_user_optional
from app.config import settings
from app.exceptions import NotAuthenticatedError, ValidationFailedError
from app.guards import (
    ip_limit,
    limit_user,
    origin_guard,
    parse_body,
    read_json,
    require_admin,
    require_moderator,
    validate,
)
from core.models.common import blank_to_none
from core.models.contacts import AppContactsUpdate
from core.models.moderation import ModerateProduct
from core.services.contacts_service import ContactsService
from core.services.moderation_service import ModerationService

logger = logging.getLogger(__name__)

router = APIRouter()

CONTACTS_SCOPE = "admin-app-contacts:update"


# =============================================================================
# Product moderation
# =============================================================================

@router.post("/moderate")
async def moderate_product(request: Request):
    """
    Activate or deactivate a product.

    Authenticated with the shared ADMIN_REVALIDATE_TOKEN instead of a user
    session so it can be called from scripts.
    """
    token = request.headers.get("x-admin-token") or ""
    expected = settings.ADMIN_REVALIDATE_TOKEN or ""
    if not expected or not secrets.compare_digest(token, expected):
        raise NotAuthenticatedError("Unauthorized")

    payload = validate(ModerateProduct, await read_json(request))
    product_id = blank_to_none(payload.product_id)
    if not product_id:
        raise ValidationFailedError("Missing productId")

    ModerationService.set_product_active(product_id, payload.active)
    logger.info(f"Product {product_id} set is_active={payload.active} via admin token")
    return {"ok": True, "productId": product_id, "is_active": payload.active}


# =============================================================================
# App contacts
# =============================================================================

@router.get("/app-contacts", dependencies=[Depends(origin_guard)])
async def get_app_contacts(user: Optional[AuthUser] = Depends(get_current_user_optional)):
    require_moderator(user)
    contacts = ContactsService.get_contacts()
    return {"ok": True, "contacts": contacts.model_dump(by_alias=True)}


@router.patch(
    "/app-contacts",
    dependencies=[Depends(origin_guard), Depends(ip_limit(CONTACTS_SCOPE, 60))],
)
async def update_app_contacts(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Replace the support e-mail and WhatsApp number.

    Values are normalized first. Omitted or empty values clear the contact.
    """
    user = require_admin(user)
    limit_user(CONTACTS_SCOPE, user.id, 60, message="Too many requests. Please try again later.")

    update = await parse_body(request, AppContactsUpdate)
    contacts = ContactsService.update_contacts(update, str(user.id))
    return {"ok": True, "contacts": contacts.model_dump(by_alias=True)}
