# =============================================================================
# core/services/message_service.py - Conversations & Messages
# =============================================================================
# Buyer/seller chat on top of the conversations and messages tables.
#
# Sending a message runs, in order:
#   1. block check (either direction, via blocked_users)
#   2. content spam checks (links, repeated characters, phrases)
#   3. duplicate check (same text 5+ times in 5 minutes)
#   4. get_or_create_conversation RPC when no conversation id was given
#   5. insert
# =============================================================================

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from app.exceptions import (
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    ServiceUnavailableError,
    UpstreamError,
    ValidationFailedError,
)
from core.models.message import MessageResponse, MessageSend
from lib.supabase_client import SupabaseClient
from lib.utils import error_meta, is_missing_relation

logger = logging.getLogger(__name__)

MESSAGE_COLUMNS = "id, conversation_id, sender_id, receiver_id, product_id, content, is_read, created_at"
CONVERSATION_DETAIL_COLUMNS = (
    "id, product_id, seller_id, buyer_id, last_message, last_message_at, updated_at, "
    "product:product_id(id, title, price, currency, images), "
    "seller:seller_id(id, full_name, avatar_url), "
    "buyer:buyer_id(id, full_name, avatar_url)"
)

# -----------------------------------------------------------------------------
# Spam heuristics
# -----------------------------------------------------------------------------

MAX_LINKS = 5
LINK_PATTERN = re.compile(r"(https?://|www\.)", re.IGNORECASE)
REPEATED_CHAR_PATTERN = re.compile(r"(.)\1{10,}")
SPAM_PHRASES = (
    "make money fast",
    "free crypto",
    "visit my channel",
    "whatsapp me on",
    "telegram me on",
)
DUPLICATE_WINDOW = timedelta(minutes=5)
DUPLICATE_LIMIT = 5


def spam_reason(content: str) -> str | None:
    """
    Return the user-facing rejection message for spammy content, or None.

    Example:
        spam_reason("hiiiiiiiiiiiiii") -> "Message looks like spam (too many repeated characters)."
    """
    if len(LINK_PATTERN.findall(content)) > MAX_LINKS:
        return "Messages with that many links are not allowed."
    if REPEATED_CHAR_PATTERN.search(content):
        return "Message looks like spam (too many repeated characters)."
    lowered = content.lower()
    if any(phrase in lowered for phrase in SPAM_PHRASES):
        return "Message was blocked because it looks like spam."
    return None


def _str_or_none(value: Any) -> str | None:
    return str(value) if value else None


def _profile(relation: Any) -> dict[str, Any] | None:
    if isinstance(relation, list):
        relation = relation[0] if relation else None
    if not relation:
        return None
    return {
        "id": str(relation.get("id")),
        "fullName": relation.get("full_name"),
        "avatarUrl": relation.get("avatar_url"),
    }


def to_message_response(row: dict[str, Any]) -> MessageResponse:
    return MessageResponse(
        id=str(row["id"]),
        conversation_id=str(row["conversation_id"]),
        sender_id=_str_or_none(row.get("sender_id")),
        receiver_id=_str_or_none(row.get("receiver_id")),
        product_id=_str_or_none(row.get("product_id")),
        content=row.get("content") or "",
        is_read=bool(row.get("is_read")),
        created_at=str(row.get("created_at")),
    )


def summary_from_rpc_row(row: dict[str, Any]) -> dict[str, Any]:
    """Shape one list_conversation_summaries row for the client."""
    product_image = row.get("product_image")
    image_paths = [product_image] if isinstance(product_image, str) and product_image.strip() else []

    price = row.get("product_price")
    if price is not None and not isinstance(price, (int, float)):
        try:
            price = float(price)
        except (TypeError, ValueError):
            price = None

    unread = int(row.get("unread_count") or 0)
    product_id = row.get("product_id")

    return {
        "id": str(row["id"]),
        "productId": _str_or_none(product_id),
        "sellerId": str(row.get("seller_id")),
        "buyerId": str(row.get("buyer_id")),
        "lastMessage": row.get("last_message"),
        "lastMessageAt": row.get("last_message_at"),
        "updatedAt": row.get("updated_at"),
        "unreadCount": unread,
        "hasUnread": unread > 0,
        "product": {
            "id": str(product_id),
            "title": row.get("product_title") or "Untitled",
            "price": price,
            "currency": row.get("product_currency") or "IQD",
            "imagePaths": image_paths,
            "imageUrls": [],
        } if product_id else None,
        "seller": {
            "id": str(row["seller_id"]),
            "fullName": row.get("seller_full_name"),
            "avatarUrl": row.get("seller_avatar_url"),
        } if row.get("seller_id") else None,
        "buyer": {
            "id": str(row["buyer_id"]),
            "fullName": row.get("buyer_full_name"),
            "avatarUrl": row.get("buyer_avatar_url"),
        } if row.get("buyer_id") else None,
    }


class MessageService:
    """
    Service for buyer/seller messaging.
    """

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    @staticmethod
    def ensure_not_blocked(sender_id: str, receiver_id: str) -> None:
        """
        Refuse to deliver when either side blocked the other.

        Raises:
            ForbiddenError: A block exists
            ServiceUnavailableError: The block list could not be read
        """
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("blocked_users")
                .select("id")
                .or_(
                    f"and(user_id.eq.{sender_id},blocked_user_id.eq.{receiver_id}),"
                    f"and(user_id.eq.{receiver_id},blocked_user_id.eq.{sender_id})"
                )
                .limit(1)
                .execute()
            )
        except Exception as e:
            if is_missing_relation(e, "blocked_users"):
                logger.warning("blocked_users table missing, skipping block check")
                return
            logger.error(f"Block check failed: {error_meta(e)}")
            raise ServiceUnavailableError("Unable to send message right now.")

        if response.data:
            raise ForbiddenError(
                "Messages cannot be sent because one of you has blocked the other.",
                code="BLOCKED",
            )

    @staticmethod
    def ensure_not_duplicate(sender_id: str, content: str) -> None:
        """
        Raises:
            RateLimitedError: The same text was sent 5+ times in 5 minutes
        """
        since = (datetime.now(timezone.utc) - DUPLICATE_WINDOW).isoformat()
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("messages")
                .select("id")
                .eq("sender_id", sender_id)
                .eq("content", content)
                .gte("created_at", since)
                .limit(DUPLICATE_LIMIT)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Duplicate message check failed: {e}")
            return

        if len(response.data or []) >= DUPLICATE_LIMIT:
            raise RateLimitedError(
                int(DUPLICATE_WINDOW.total_seconds()),
                "You have sent this message too many times in a short period.",
            )

    @staticmethod
    def send_message(sender_id: str, payload: MessageSend) -> MessageResponse:
        """
        Deliver a message from the current user.

        Args:
            sender_id: Authenticated sender
            payload: Validated MessageSend (content already trimmed)

        Returns:
            The stored message

        Raises:
            ForbiddenError / ServiceUnavailableError: Block check
            ValidationFailedError: Content looks like spam
            RateLimitedError: Duplicate flood
            UpstreamError: Conversation or insert failed
        """
        receiver_id = str(payload.receiver_id)
        product_id = str(payload.product_id) if payload.product_id else None
        content = payload.content

        MessageService.ensure_not_blocked(sender_id, receiver_id)

        reason = spam_reason(content)
        if reason:
            raise ValidationFailedError(reason)

        MessageService.ensure_not_duplicate(sender_id, content)

        client = SupabaseClient.get_client()
        conversation_id = str(payload.conversation_id) if payload.conversation_id else None
        if conversation_id is None:
            conversation_id = MessageService.get_or_create_conversation(
                seller_id=receiver_id,
                buyer_id=sender_id,
                product_id=product_id,
            )

        try:
            response = (
                client.table("messages")
                .insert({
                    "conversation_id": conversation_id,
                    "sender_id": sender_id,
                    "receiver_id": receiver_id,
                    "product_id": product_id,
                    "content": content,
                })
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to insert message into {conversation_id}: {error_meta(e)}")
            raise UpstreamError("Failed to send message")

        if not response.data:
            raise UpstreamError("Failed to send message")
        return to_message_response(response.data[0])

    # -------------------------------------------------------------------------
    # Conversations
    # -------------------------------------------------------------------------

    @staticmethod
    def get_or_create_conversation(seller_id: str, buyer_id: str, product_id: str | None) -> str:
        """
        Returns:
            Conversation id for (seller, buyer, product)

        Raises:
            UpstreamError: RPC failed or returned nothing
        """
        client = SupabaseClient.get_client()
        try:
            response = client.rpc(
                "get_or_create_conversation",
                {"p_seller_id": seller_id, "p_buyer_id": buyer_id, "p_product_id": product_id},
            ).execute()
        except Exception as e:
            logger.error(f"get_or_create_conversation failed: {error_meta(e)}")
            raise UpstreamError("Failed to open conversation")

        if not response.data:
            raise UpstreamError("Failed to open conversation")
        return str(response.data)

    @staticmethod
    def list_conversations(user_id: str) -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        try:
            response = client.rpc("list_conversation_summaries", {"p_user_id": user_id}).execute()
        except Exception as e:
            logger.error(f"Conversations query failed: {error_meta(e)}")
            raise UpstreamError("Failed to load conversations")
        return [summary_from_rpc_row(row) for row in response.data or []]

    @staticmethod
    def _load_participants(conversation_id: str, columns: str = "id, seller_id, buyer_id") -> dict[str, Any] | None:
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("conversations")
                .select(columns)
                .eq("id", conversation_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to load conversation {conversation_id}: {error_meta(e)}")
            raise UpstreamError("Failed to load conversation")
        return response.data[0] if response.data else None

    @staticmethod
    def get_conversation(conversation_id: str, user_id: str) -> dict[str, Any]:
        """
        Load one conversation with product and participant profiles.

        Raises:
            NotFoundError: No such conversation
            ForbiddenError: Caller is neither buyer nor seller
        """
        row = MessageService._load_participants(conversation_id, CONVERSATION_DETAIL_COLUMNS)
        if row is None:
            raise NotFoundError("Conversation not found")
        if user_id not in (str(row.get("seller_id")), str(row.get("buyer_id"))):
            raise ForbiddenError()

        product = row.get("product")
        if isinstance(product, list):
            product = product[0] if product else None
        images = (product or {}).get("images") or []

        return {
            "id": str(row["id"]),
            "productId": _str_or_none(row.get("product_id")),
            "sellerId": str(row["seller_id"]),
            "buyerId": str(row["buyer_id"]),
            "lastMessage": row.get("last_message"),
            "lastMessageAt": row.get("last_message_at"),
            "updatedAt": row.get("updated_at"),
            "product": {
                "id": str(product.get("id")),
                "title": product.get("title") or "Untitled",
                "price": product.get("price"),
                "currency": product.get("currency") or "IQD",
                "imagePaths": images,
                "imageUrls": images,
            } if product else None,
            "seller": _profile(row.get("seller")),
            "buyer": _profile(row.get("buyer")),
        }

    @staticmethod
    def list_messages(conversation_id: str, user_id: str) -> list[MessageResponse]:
        """
        Raises:
            ForbiddenError: Missing conversation or caller is not a participant
        """
        convo = MessageService._load_participants(conversation_id)
        if convo is None or user_id not in (str(convo.get("seller_id")), str(convo.get("buyer_id"))):
            raise ForbiddenError()

        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("messages")
                .select(MESSAGE_COLUMNS)
                .eq("conversation_id", conversation_id)
                .order("created_at", desc=False)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to load messages for {conversation_id}: {error_meta(e)}")
            raise UpstreamError("Failed to load messages")
        return [to_message_response(row) for row in response.data or []]

    # -------------------------------------------------------------------------
    # Read state
    # -------------------------------------------------------------------------

    @staticmethod
    def mark_read(conversation_id: str, user_id: str) -> None:
        """Mark every unread message the caller received in a conversation as read."""
        client = SupabaseClient.get_client()
        try:
            (
                client.table("messages")
                .update({"is_read": True})
                .eq("conversation_id", conversation_id)
                .eq("receiver_id", user_id)
                .eq("is_read", False)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to mark {conversation_id} read: {error_meta(e)}")
            raise UpstreamError("Failed to mark conversation read")

    @staticmethod
    def unread_count(user_id: str) -> int:
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("messages")
                .select("id", count="exact", head=True)
                .eq("receiver_id", user_id)
                .eq("is_read", False)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to load unread count: {error_meta(e)}")
            raise UpstreamError("Failed to load unread count")
        return response.count or 0

    # -------------------------------------------------------------------------
    # Deleting
    # -------------------------------------------------------------------------

    @staticmethod
    def delete_message(message_id: str, user_id: str) -> None:
        """
        Delete one of the caller's own messages and refresh the
        conversation's last_message / last_message_at.

        Raises:
            NotFoundError: No such message
            ForbiddenError: Caller is not the sender
        """
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("messages")
                .select("id, conversation_id, sender_id")
                .eq("id", message_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to load message {message_id} for delete: {error_meta(e)}")
            raise UpstreamError("Failed to load message")

        if not response.data:
            raise NotFoundError("Message not found")
        message = response.data[0]
        if str(message.get("sender_id")) != user_id:
            raise ForbiddenError()

        try:
            client.table("messages").delete().eq("id", message_id).execute()
        except Exception as e:
            logger.error(f"Failed to delete message {message_id}: {error_meta(e)}")
            raise UpstreamError("Failed to delete message")

        MessageService._refresh_last_message(message["conversation_id"])

    @staticmethod
    def _refresh_last_message(conversation_id: str) -> None:
        """Best-effort recompute of the conversation summary columns."""
        client = SupabaseClient.get_client()
        try:
            latest = (
                client.table("messages")
                .select("content, created_at")
                .eq("conversation_id", conversation_id)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
            row = latest.data[0] if latest.data else None
            client.table("conversations").update({
                "last_message": row.get("content") if row else None,
                "last_message_at": row.get("created_at") if row else None,
            }).eq("id", conversation_id).execute()
        except Exception as e:
            logger.error(f"Failed to recompute conversation {conversation_id} after delete: {e}")
