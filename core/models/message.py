# =============================================================================
# core/models/message.py - Messaging & Translation Schemas
# =============================================================================
# Buyer/seller conversations:
# - MessageSend: POST /api/messages/send
# - ConversationCreate: POST /api/messages/conversations
# - MarkRead: POST /api/messages/read
# - MessageResponse: a message as returned to the client
#
# Translation of user text (POST /api/translate) lives here too since it is
# used to translate chat messages.
# =============================================================================

from typing import Annotated, Literal
from uuid import UUID

from pydantic import Field, StringConstraints

from .common import CamelModel

Locale = Literal["en", "ar", "ku"]
LOCALES: tuple[str, ...] = ("en", "ar", "ku")
DEFAULT_LOCALE: Locale = "en"

MessageContent = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]


class MessageSend(CamelModel):
    """
    Schema for sending a message.

    When conversation_id is omitted, the conversation between the sender
    (buyer) and the receiver (seller) is created or reused.
    """

    conversation_id: UUID | None = None
    receiver_id: UUID
    product_id: UUID | None = None
    content: MessageContent


class ConversationCreate(CamelModel):
    seller_id: str = Field(..., min_length=1)
    buyer_id: str = Field(..., min_length=1)
    product_id: str | None = None


class MarkRead(CamelModel):
    conversation_id: str = Field(..., min_length=1)


class MessageResponse(CamelModel):
    id: str
    conversation_id: str
    sender_id: str | None
    receiver_id: str | None
    product_id: str | None = None
    content: str
    is_read: bool
    created_at: str


class TranslateRequest(CamelModel):
    """
    Text to translate. Unknown locales fall back to English.
    """

    text: str = ""
    source_locale: str | None = None
    target_locale: str | None = None


class TranslateResponse(CamelModel):
    translated_text: str
    is_translated: bool | None = None
    original_locale: Locale | None = None
    target_locale: Locale | None = None
