# =============================================================================
# core/services/moderation_service.py - Abuse Reports, Blocks, Moderation
# =============================================================================
# - create_report / manage_report: abuse_reports (plus best-effort audit log)
# - block_user / unblock_user: blocked_users
# - set_product_active: products.is_active (moderation hide/unhide)
# =============================================================================

import logging
from typing import Any

from app.exceptions import NotFoundError, UpstreamError, ValidationFailedError
from core.models.moderation import REPORT_TARGET_COLUMNS
from lib.supabase_client import SupabaseClient
from lib.utils import error_meta

logger = logging.getLogger(__name__)

REPORT_COLUMNS = "id, product_id, status, is_auto_flagged"


class ModerationService:
    """
    Service for abuse reports, user blocks and product moderation.
    """

    # -------------------------------------------------------------------------
    # Abuse reports
    # -------------------------------------------------------------------------

    @staticmethod
    def create_report(
        reporter_id: str,
        target_type: str,
        target_id: str,
        reason: str,
        details: str | None,
    ) -> None:
        """
        File an abuse report against a product, user or message.

        Raises:
            ValidationFailedError: Unsupported target type
            UpstreamError: Insert failed
        """
        column = REPORT_TARGET_COLUMNS.get(target_type)
        if column is None:
            raise ValidationFailedError("Unsupported targetType.")

        client = SupabaseClient.get_client()
        try:
            client.table("abuse_reports").insert({
                "reporter_id": reporter_id,
                column: target_id,
                "reason": reason,
                "details": details,
            }).execute()
        except Exception as e:
            logger.error(f"Failed to create abuse report: {error_meta(e)}")
            raise UpstreamError("Failed to submit report.")

        logger.info(f"Abuse report filed against {target_type} {target_id}")

    @staticmethod
    def log_report_audit(
        target_type: str,
        target_id: str,
        reason: str,
        ip: str | None,
        user_agent: str | None,
    ) -> None:
        """Record a `<target>.reported` audit event. Failures are only logged."""
        context = {
            "targetType": target_type,
            "targetId": target_id,
            "reason": reason,
            "productId": target_id if target_type == "product" else None,
            "reportedUserId": target_id if target_type == "user" else None,
            "messageId": target_id if target_type == "message" else None,
        }
        client = SupabaseClient.get_client()
        try:
            client.rpc("log_audit_event", {
                "p_event_type": f"{target_type}.reported",
                "p_context": context,
                "p_ip": ip,
                "p_user_agent": user_agent,
            }).execute()
        except Exception as e:
            logger.warning(f"Failed to log audit event for abuse report: {e}")

    @staticmethod
    def manage_report(
        report_id: str,
        status: str | None,
        reactivate_product: bool,
    ) -> tuple[dict[str, Any], bool]:
        """
        Update a report's status and optionally re-enable its product.

        Args:
            report_id: abuse_reports.id
            status: New status (already validated), or None to leave it
            reactivate_product: Set products.is_active back to true

        Returns:
            (report row, whether the product was reactivated)

        Raises:
            NotFoundError: Report does not exist
            UpstreamError: Any database failure
        """
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("abuse_reports")
                .select(REPORT_COLUMNS)
                .eq("id", report_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to read abuse report {report_id}: {error_meta(e)}")
            raise UpstreamError("Failed to read report")

        if not response.data:
            raise NotFoundError("Report not found")
        report = response.data[0]

        if status:
            try:
                updated = (
                    client.table("abuse_reports")
                    .update({"status": status})
                    .eq("id", report_id)
                    .execute()
                )
            except Exception as e:
                logger.error(f"Failed to update abuse report {report_id}: {error_meta(e)}")
                raise UpstreamError("Failed to update report")
            if not updated.data:
                raise UpstreamError("Failed to update report")
            report = {key: updated.data[0].get(key) for key in ("id", "product_id", "status", "is_auto_flagged")}

        product_reactivated = False
        if reactivate_product and report.get("product_id"):
            ModerationService.set_product_active(report["product_id"], True)
            product_reactivated = True

        logger.info(f"Abuse report {report_id} managed (status={status}, reactivated={product_reactivated})")
        return report, product_reactivated

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    @staticmethod
    def block_user(user_id: str, blocked_user_id: str, reason: str | None) -> None:
        client = SupabaseClient.get_client()
        try:
            client.table("blocked_users").upsert(
                {"user_id": user_id, "blocked_user_id": blocked_user_id, "reason": reason},
                on_conflict="user_id,blocked_user_id",
            ).execute()
        except Exception as e:
            logger.error(f"Failed to block user: {error_meta(e)}")
            raise UpstreamError("Failed to block user.")

    @staticmethod
    def unblock_user(user_id: str, blocked_user_id: str) -> None:
        client = SupabaseClient.get_client()
        try:
            (
                client.table("blocked_users")
                .delete()
                .eq("user_id", user_id)
                .eq("blocked_user_id", blocked_user_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to unblock user: {error_meta(e)}")
            raise UpstreamError("Failed to unblock user.")

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    @staticmethod
    def set_product_active(product_id: str, active: bool) -> None:
        """
        Raises:
            UpstreamError: Update failed
        """
        client = SupabaseClient.get_client()
        try:
            client.table("products").update({"is_active": active}).eq("id", product_id).execute()
        except Exception as e:
            logger.error(f"Failed to set product {product_id} active={active}: {error_meta(e)}")
            raise UpstreamError("Failed to update product")
