# =============================================================================
# app/routers/sponsors.py - Sponsor Store Admin Endpoints
# =============================================================================
# Endpoints (admins only):
#   GET   /stores                    list stores (status / search filters)
#   POST  /stores                    create a pending store
#   PATCH /stores/{store_id}/status  approve or disable a store
#
# Every response carries a requestId. Guard failures are reported with the
# sponsor error envelope {ok: false, error, errorCode, requestId}.
# =============================================================================

import logging
from contextlib import contextmanager
from typing import Annotated, Iterator, Optional

from fastapi import APIRouter, Depends, Path, Query, Request

from app.auth import AuthUser, get_current_user_optional
from app.exceptions import MarketplaceException, SponsorError
from app.guards import enforce_origin, limit_ip, limit_key, limit_user, parse_body, require_admin
from core.models.sponsor import SponsorStoreCreate, SponsorStoreStatusUpdate
from core.services.sponsor_service import SponsorService, create_request_id, log_sponsor_error
from lib.utils import is_uuid, normalize_uuid

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_STATUS_BODY_BYTES = 4096
USER_LIMIT_MESSAGE = "Too many requests. Please try again later."

# HTTP status of a guard failure -> sponsor error code
GUARD_ERROR_CODES: dict[int, str] = {
    400: "SPONSOR_INVALID_PAYLOAD",
    401: "SPONSOR_NOT_AUTHORIZED",
    403: "SPONSOR_FORBIDDEN_ORIGIN",
    413: "SPONSOR_INVALID_PAYLOAD",
    429: "SPONSOR_RATE_LIMITED",
}


@contextmanager
def sponsor_errors(request_id: str, route: str) -> Iterator[None]:
    """Re-raise shared guard errors in the sponsor error envelope."""
    try:
        yield
    except SponsorError:
        raise
    except MarketplaceException as e:
        code = GUARD_ERROR_CODES.get(e.status_code, "SPONSOR_INVALID_PAYLOAD")
        if e.status_code != 429:
            log_sponsor_error(request_id, route, "guard.rejected", {"code": code, "message": e.message})
        raise SponsorError(e.message, code, e.status_code, request_id, headers=e.headers) from e


def _require_admin(request: Request, user: Optional[AuthUser], scope: str, ip_max: int, user_max: int) -> AuthUser:
    enforce_origin(request)
    limit_ip(request, scope, ip_max)
    user = require_admin(user)
    limit_user(scope, user.id, user_max, message=USER_LIMIT_MESSAGE)
    return user


# =============================================================================
# Stores
# =============================================================================

@router.get("/stores")
async def list_stores(
    request: Request,
    status: Annotated[Optional[str], Query()] = None,
    q: Annotated[Optional[str], Query()] = None,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    List sponsor stores, most recently updated first (max 200).
    """
    request_id = create_request_id()
    with sponsor_errors(request_id, "admin-sponsor-stores-list"):
        user = _require_admin(request, user, "admin-sponsor-stores:list", 120, 120)

    stores = SponsorService.list_stores(request_id, str(user.id), status, q)
    return {"ok": True, "requestId": request_id, "stores": stores}


@router.post("/stores")
async def create_store(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Create a store in the pending state.

    The slug is derived from the name when omitted.
    """
    request_id = create_request_id()
    with sponsor_errors(request_id, "admin-sponsor-store-create"):
        user = _require_admin(request, user, "admin-sponsor-stores:create", 60, 30)
        payload = await parse_body(request, SponsorStoreCreate)

    store = SponsorService.create_store(request_id, str(user.id), payload)
    return {"ok": True, "requestId": request_id, "store": store}


@router.patch("/stores/{store_id}/status")
async def update_store_status(
    request: Request,
    store_id: Annotated[str, Path(description="Sponsor store id")],
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Approve (active) or disable a store.

    Transitions are validated by the database; a store needs an owner
    before it can be approved.
    """
    request_id = create_request_id()
    scope = "admin-sponsor-store:status"
    with sponsor_errors(request_id, "admin-sponsor-store-status-update"):
        enforce_origin(request)
        limit_ip(request, scope, 90)

        if not is_uuid(store_id):
            raise SponsorError("Invalid store id.", "SPONSOR_INVALID_PAYLOAD", 400, request_id)
        store_id = normalize_uuid(store_id)

        user = require_admin(user)
        limit_user(scope, user.id, 24, message=USER_LIMIT_MESSAGE)
        limit_key(
            f"{scope}:store:{store_id}",
            8,
            message="Too many status changes for this store. Please wait and try again.",
        )

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_STATUS_BODY_BYTES:
            raise SponsorError("Payload too large.", "SPONSOR_INVALID_PAYLOAD", 413, request_id)

        payload = await parse_body(request, SponsorStoreStatusUpdate)

    store = SponsorService.set_status(request_id, str(user.id), store_id, payload.status)
    return {"ok": True, "requestId": request_id, "store": store}
