# =============================================================================
# core/services/sponsor_service.py - Sponsor Store Administration
# =============================================================================
# Admin lifecycle of sponsor stores (sponsor_stores + sponsor_audit_logs).
#
# Every call carries a request id that is echoed in the response and in the
# "[sponsor]" log lines so a failure seen in the admin UI can be traced.
# Failures are raised as SponsorError with a SPONSOR_* code.
#
# Lifecycle:
#   create  -> pending (audit row required, store rolled back otherwise)
#   pending -> active / disabled via admin_set_sponsor_store_status RPC,
#              which owns the transition rules
# =============================================================================

import json
import logging
import uuid
from typing import Any

from app.exceptions import SponsorError
from core.models.common import blank_to_none
from core.models.sponsor import (
    SPONSOR_STORE_STATUSES,
    SponsorStoreCreate,
    normalize_slug,
    normalize_store_status,
)
from lib.supabase_client import SupabaseClient
from lib.utils import error_meta, is_foreign_key_violation, is_schema_mismatch, is_unique_violation

logger = logging.getLogger(__name__)

STORES_TABLE = "sponsor_stores"
AUDIT_TABLE = "sponsor_audit_logs"
LIST_LIMIT = 200
MAX_SEARCH_LENGTH = 140
LIST_COLUMNS = (
    "id, name, slug, status, owner_user_id, primary_city, sponsor_tier, is_featured, "
    "updated_at, approved_at, approved_by, disabled_at, disabled_by"
)
CREATE_COLUMNS = "id, name, slug, status, owner_user_id"

SCHEMA_MISMATCH_MESSAGE = "Sponsor store schema mismatch."


# =============================================================================
# Logging
# =============================================================================

def create_request_id() -> str:
    return str(uuid.uuid4())


def _log_context(
    request_id: str,
    route: str,
    action: str,
    actor_id: str | None,
    store_id: str | None,
    status: str | None,
    extra: dict[str, Any] | None,
) -> dict[str, Any]:
    return {
        "requestId": request_id,
        "route": route,
        "action": action,
        "actorUserId": actor_id,
        "storeId": store_id,
        "status": status,
        **(extra or {}),
    }


def log_sponsor_info(
    request_id: str,
    route: str,
    action: str,
    actor_id: str | None = None,
    store_id: str | None = None,
    status: str | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    context = _log_context(request_id, route, action, actor_id, store_id, status, extra)
    logger.info(f"[sponsor] {json.dumps(context, default=str)}")


def log_sponsor_error(
    request_id: str,
    route: str,
    action: str,
    error: Any = None,
    actor_id: str | None = None,
    store_id: str | None = None,
    status: str | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    context = _log_context(request_id, route, action, actor_id, store_id, status, extra)
    context["error"] = error_meta(error) if error is not None else None
    logger.error(f"[sponsor] {json.dumps(context, default=str)}")


# =============================================================================
# Error mapping
# =============================================================================

def map_list_failure(error: Any) -> tuple[int, str, str]:
    if is_schema_mismatch(error):
        return 500, SCHEMA_MISMATCH_MESSAGE, "SPONSOR_SCHEMA_MISMATCH"
    return 400, "Failed to load stores.", "SPONSOR_DB_READ_FAILED"


def map_create_failure(error: Any) -> tuple[int, str, str]:
    if is_unique_violation(error):
        return 409, "Slug already exists. Choose another slug.", "SPONSOR_SLUG_CONFLICT"
    if is_foreign_key_violation(error):
        return 400, "Owner user was not found.", "SPONSOR_OWNER_NOT_FOUND"
    if is_schema_mismatch(error):
        return 500, SCHEMA_MISMATCH_MESSAGE, "SPONSOR_SCHEMA_MISMATCH"
    return 400, "Failed to create store.", "SPONSOR_DB_WRITE_FAILED"


def map_status_failure(error: Any) -> tuple[int, str, str]:
    """
    Translate admin_set_sponsor_store_status errors.

    The RPC raises named exceptions (sponsor_store_not_found, ...) that show
    up in the message, details or hint.
    """
    meta = error_meta(error)
    text = " ".join(str(meta[key]) for key in ("message", "details", "hint"))
    if "sponsor_store_not_found" in text:
        return 404, "Store not found.", "SPONSOR_STORE_NOT_FOUND"
    if "sponsor_store_owner_required" in text:
        return 400, "Store owner is required before approval.", "SPONSOR_OWNER_REQUIRED_FOR_APPROVAL"
    if "sponsor_invalid_status_transition" in text:
        return 400, "Invalid status transition.", "SPONSOR_INVALID_STATUS_TRANSITION"
    if is_schema_mismatch(error) or meta["code"] == "42883":
        return 500, SCHEMA_MISMATCH_MESSAGE, "SPONSOR_SCHEMA_MISMATCH"
    return 400, "Failed to update store status.", "SPONSOR_DB_WRITE_FAILED"


def store_from_row(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "name": row.get("name") or "Store",
        "slug": row.get("slug") or row["id"],
        "status": normalize_store_status(row.get("status")),
        "ownerUserId": row.get("owner_user_id"),
        "primaryCity": row.get("primary_city"),
        "sponsorTier": row.get("sponsor_tier") or "basic",
        "isFeatured": bool(row.get("is_featured")),
        "updatedAt": row.get("updated_at"),
        "approvedAt": row.get("approved_at"),
        "approvedBy": row.get("approved_by"),
        "disabledAt": row.get("disabled_at"),
        "disabledBy": row.get("disabled_by"),
    }


class SponsorService:
    """
    Service for the sponsor store admin surface.
    """

    @staticmethod
    def list_stores(
        request_id: str,
        actor_id: str,
        status: str | None = None,
        search: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        List up to 200 stores, most recently updated first.

        Args:
            request_id: Correlation id
            actor_id: Admin user id (for logs)
            status: Optional pending|active|disabled filter
            search: Optional case-insensitive match on name or slug

        Raises:
            SponsorError: Invalid filter or database failure
        """
        route = "admin-sponsor-stores-list"
        status_filter = (status or "").strip().lower() or None
        search_text = (search or "").strip()

        if status_filter and status_filter not in SPONSOR_STORE_STATUSES:
            raise SponsorError("Invalid status filter.", "SPONSOR_INVALID_PAYLOAD", 400, request_id)
        if len(search_text) > MAX_SEARCH_LENGTH:
            raise SponsorError("Search query is too long.", "SPONSOR_INVALID_PAYLOAD", 400, request_id)

        client = SupabaseClient.get_client()
        query = (
            client.table(STORES_TABLE)
            .select(LIST_COLUMNS)
            .order("updated_at", desc=True)
            .limit(LIST_LIMIT)
        )
        if status_filter:
            query = query.eq("status", status_filter)
        if search_text:
            escaped = search_text.replace("%", "\\%").replace("_", "\\_")
            query = query.or_(f"name.ilike.%{escaped}%,slug.ilike.%{escaped}%")

        try:
            response = query.execute()
        except Exception as e:
            http_status, message, code = map_list_failure(e)
            log_sponsor_error(
                request_id, route, "list.failed", e, actor_id=actor_id,
                extra={"statusFilter": status_filter, "rawSearch": search_text or None},
            )
            raise SponsorError(message, code, http_status, request_id)

        stores = [store_from_row(row) for row in response.data or []]
        log_sponsor_info(
            request_id, route, "list.succeeded", actor_id=actor_id,
            status=status_filter, extra={"count": len(stores)},
        )
        return stores

    @staticmethod
    def create_store(request_id: str, actor_id: str, payload: SponsorStoreCreate) -> dict[str, Any]:
        """
        Create a store in the "pending" state and write its audit row.

        If the audit row cannot be written the store is deleted again.

        Returns:
            {"id", "name", "slug", "status"}

        Raises:
            SponsorError: Invalid slug, conflict, missing owner, audit failure
        """
        route = "admin-sponsor-store-create"
        name = payload.name.strip()
        slug = normalize_slug(blank_to_none(payload.slug) or name)
        if len(slug) < 2:
            raise SponsorError(
                "Store slug is invalid. Use letters and numbers.",
                "SPONSOR_INVALID_PAYLOAD",
                400,
                request_id,
            )

        client = SupabaseClient.get_client()
        try:
            response = client.table(STORES_TABLE).insert({
                "name": name,
                "slug": slug,
                "description": blank_to_none(payload.description),
                "primary_city": blank_to_none(payload.primary_city),
                "phone": blank_to_none(payload.phone),
                "whatsapp": blank_to_none(payload.whatsapp),
                "website": blank_to_none(payload.website),
                "status": "pending",
                "sponsor_tier": payload.sponsor_tier,
                "is_featured": payload.is_featured,
                "owner_user_id": str(payload.owner_user_id) if payload.owner_user_id else None,
            }).execute()
        except Exception as e:
            http_status, message, code = map_create_failure(e)
            log_sponsor_error(request_id, route, "create.failed", e, actor_id=actor_id, extra={"slug": slug})
            raise SponsorError(message, code, http_status, request_id)

        if not response.data:
            log_sponsor_error(request_id, route, "create.failed", {"message": "insert returned no row"}, actor_id=actor_id)
            raise SponsorError("Failed to create store.", "SPONSOR_DB_WRITE_FAILED", 400, request_id)

        created = response.data[0]
        store_id = created["id"]

        try:
            client.table(AUDIT_TABLE).insert({
                "actor_id": actor_id,
                "action": "sponsor.store.created",
                "entity_type": "sponsor_store",
                "entity_id": store_id,
                "metadata": {
                    "status": "pending",
                    "owner_user_id": created.get("owner_user_id"),
                    "created_via": "admin_api",
                },
            }).execute()
        except Exception as audit_error:
            SponsorService._rollback_store(request_id, route, actor_id, store_id, audit_error)
            raise SponsorError(
                "Failed to record store lifecycle audit log.",
                "SPONSOR_AUDIT_LOG_FAILED",
                500,
                request_id,
            )

        log_sponsor_info(request_id, route, "create.succeeded", actor_id=actor_id, store_id=store_id, status="pending")
        return {
            "id": store_id,
            "name": created.get("name") or name,
            "slug": created.get("slug") or slug,
            "status": normalize_store_status(created.get("status")),
        }

    @staticmethod
    def _rollback_store(request_id: str, route: str, actor_id: str, store_id: str, audit_error: Exception) -> None:
        client = SupabaseClient.get_client()
        rollback_failed = False
        try:
            client.table(STORES_TABLE).delete().eq("id", store_id).execute()
        except Exception as rollback_error:
            rollback_failed = True
            log_sponsor_error(
                request_id, route, "create.rollback_failed", rollback_error,
                actor_id=actor_id, store_id=store_id,
            )
        log_sponsor_error(
            request_id, route, "create.audit_failed", audit_error,
            actor_id=actor_id, store_id=store_id, extra={"rollbackFailed": rollback_failed},
        )

    @staticmethod
    def set_status(request_id: str, actor_id: str, store_id: str, status: str) -> dict[str, Any]:
        """
        Approve (active) or disable a store through the status RPC.

        Returns:
            {"id", "status", "approvedAt", "approvedBy", "disabledAt", "disabledBy"}

        Raises:
            SponsorError: Mapped RPC failure
        """
        route = "admin-sponsor-store-status-update"
        client = SupabaseClient.get_client()
        try:
            response = client.rpc(
                "admin_set_sponsor_store_status",
                {"p_store_id": store_id, "p_status": status, "p_actor": actor_id},
            ).execute()
        except Exception as e:
            http_status, message, code = map_status_failure(e)
            log_sponsor_error(
                request_id, route, "status_update.failed", e,
                actor_id=actor_id, store_id=store_id, status=status,
            )
            raise SponsorError(message, code, http_status, request_id)

        data = response.data
        row = (data[0] if data else None) if isinstance(data, list) else data
        if not row:
            log_sponsor_error(
                request_id, route, "status_update.failed", {"message": "sponsor_store_not_found"},
                actor_id=actor_id, store_id=store_id, status=status,
            )
            raise SponsorError("Store not found.", "SPONSOR_STORE_NOT_FOUND", 404, request_id)

        next_status = normalize_store_status(row.get("status"))
        log_sponsor_info(
            request_id, route, "status_update.succeeded",
            actor_id=actor_id, store_id=row.get("store_id"), status=next_status,
        )
        return {
            "id": row.get("store_id"),
            "status": next_status,
            "approvedAt": row.get("approved_at"),
            "approvedBy": row.get("approved_by"),
            "disabledAt": row.get("disabled_at"),
            "disabledBy": row.get("disabled_by"),
        }
