# =============================================================================
# app/routers/abuse.py - Abuse Reports & User Blocking
# =============================================================================
# Endpoints:
#   POST         /report          report a product, user or message
#   PATCH|POST   /report/manage   moderators update a report
#   POST         /block           block another user
#   DELETE       /block           unblock
# =============================================================================

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from app.auth import AuthUser, get_current_user_optional
from app.exceptions import ValidationFailedError
from app.guards import (
    ip_limit,
    limit_user,
    origin_guard,
    read_json,
    require_moderator,
    require_user,
    validate,
)
from core.models.common import blank_to_none
from core.models.moderation import REPORT_STATUSES, AbuseReportCreate, AbuseReportManage, BlockRequest
from core.services.moderation_service import ModerationService
from lib.security import UNKNOWN_CLIENT, get_client_identifier

logger = logging.getLogger(__name__)

router = APIRouter()

BLOCK_IP_MESSAGE = "Too many block actions from this network. Please wait a moment."
BLOCK_USER_MESSAGE = "You have reached the block/unblock rate limit. Please try again later."


# =============================================================================
# Reports
# =============================================================================

@router.post(
    "/report",
    dependencies=[
        Depends(origin_guard),
        Depends(ip_limit("abuse-report", 40, message="Too many reports from this network. Please wait a moment.")),
    ],
)
async def report_abuse(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    File an abuse report.

    A `<target>.reported` audit event is logged with the caller's IP and
    user agent. Audit failures don't fail the request.
    """
    payload = validate(AbuseReportCreate, await read_json(request))
    target_type = blank_to_none(payload.target_type)
    target_id = blank_to_none(payload.target_id)
    reason = blank_to_none(payload.reason)
    if not target_type or not target_id or not reason:
        raise ValidationFailedError("targetType, targetId, and reason are required.")

    user = require_user(user)
    limit_user(
        "abuse-report",
        user.id,
        20,
        message="You have reached the report rate limit. Please try again later.",
    )

    ModerationService.create_report(
        reporter_id=str(user.id),
        target_type=target_type,
        target_id=target_id,
        reason=reason,
        details=blank_to_none(payload.details),
    )

    client_ip = get_client_identifier(request.headers)
    ModerationService.log_report_audit(
        target_type,
        target_id,
        reason,
        ip=client_ip if client_ip != UNKNOWN_CLIENT else None,
        user_agent=request.headers.get("user-agent"),
    )
    return {"ok": True}


@router.api_route("/report/manage", methods=["PATCH", "POST"])
async def manage_report(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Change a report's status and optionally re-activate the reported product.

    Moderators and admins only (403 otherwise).
    """
    require_moderator(user, "Unauthorized", status_code=403)

    payload = validate(AbuseReportManage, await read_json(request))
    report_id = blank_to_none(payload.id)
    if not report_id:
        raise ValidationFailedError("Missing report id")
    if payload.status and payload.status not in REPORT_STATUSES:
        raise ValidationFailedError("Invalid status")

    report, reactivated = ModerationService.manage_report(
        report_id,
        payload.status or None,
        payload.reactivate_product,
    )
    return {"ok": True, "report": report, "productReactivated": reactivated}


# =============================================================================
# Blocking
# =============================================================================

async def _block_target(request: Request, user: Optional[AuthUser]) -> tuple[AuthUser, str, BlockRequest]:
    payload = validate(BlockRequest, await read_json(request))
    blocked_user_id = blank_to_none(payload.blocked_user_id)
    if not blocked_user_id:
        raise ValidationFailedError("blockedUserId is required.")

    user = require_user(user)
    if blocked_user_id == str(user.id):
        raise ValidationFailedError("You cannot block yourself.")

    limit_user("block-user", user.id, 30, message=BLOCK_USER_MESSAGE)
    return user, blocked_user_id, payload


@router.post(
    "/block",
    dependencies=[Depends(origin_guard), Depends(ip_limit("block-user", 60, message=BLOCK_IP_MESSAGE))],
)
async def block_user(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    user, blocked_user_id, payload = await _block_target(request, user)
    ModerationService.block_user(str(user.id), blocked_user_id, blank_to_none(payload.reason))
    logger.info(f"User {user.id} blocked {blocked_user_id}")
    return {"ok": True}


@router.delete(
    "/block",
    dependencies=[Depends(origin_guard), Depends(ip_limit("block-user", 60, message=BLOCK_IP_MESSAGE))],
)
async def unblock_user(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    user, blocked_user_id, _ = await _block_target(request, user)
    ModerationService.unblock_user(str(user.id), blocked_user_id)
    logger.info(f"User {user.id} unblocked {blocked_user_id}")
    return {"ok": True}
