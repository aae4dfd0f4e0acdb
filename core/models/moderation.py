# =============================================================================
# core/models/moderation.py - Abuse & Moderation Schemas
# =============================================================================
# - AbuseReportCreate: POST /api/abuse/report
# - AbuseReportManage: PATCH|POST /api/abuse/report/manage (moderators)
# - BlockRequest: POST|DELETE /api/abuse/block
# - ModerateProduct: POST /api/admin/moderate (x-admin-token)
#
# Field checks that need their own error text (missing target, unsupported
# target type, invalid status) are done by the routes, so these models are
# deliberately permissive.
# =============================================================================

from typing import Literal

from .common import CamelModel

ReportTargetType = Literal["product", "user", "message"]
REPORT_TARGET_TYPES: tuple[str, ...] = ("product", "user", "message")

ReportStatus = Literal["open", "auto-flagged", "resolved", "dismissed"]
REPORT_STATUSES: tuple[str, ...] = ("open", "auto-flagged", "resolved", "dismissed")

# target type -> abuse_reports column holding the target id
REPORT_TARGET_COLUMNS: dict[str, str] = {
    "product": "product_id",
    "user": "reported_user_id",
    "message": "message_id",
}


class AbuseReportCreate(CamelModel):
    target_type: str | None = None
    target_id: str | None = None
    reason: str | None = None
    details: str | None = None


class AbuseReportManage(CamelModel):
    id: str | None = None
    status: str | None = None
    reactivate_product: bool = False


class BlockRequest(CamelModel):
    blocked_user_id: str | None = None
    reason: str | None = None


class ModerateProduct(CamelModel):
    product_id: str | None = None
    active: bool = False
