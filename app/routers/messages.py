# =============================================================================
# app/routers/messages.py - Buyer/Seller Messaging Endpoints
# =============================================================================
# Endpoints:
#   POST   /send                          send a message (spam/block checks)
#   GET    /conversations                 caller's conversation summaries
#   POST   /conversations                 create or reuse a conversation
#   GET    /conversations/{id}            one conversation with participants
#   GET    /conversations/{id}/messages   messages, oldest first
#   POST   /conversations/{id}/read       mark received messages read
#   POST   /read                          same, conversation id in the body
#   GET    /unread-count                  unread messages for the caller
#   DELETE /{message_id}                  delete one of the caller's messages
# =============================================================================

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Request

from app.auth import AuthUser, get_current_user, get_current_user_optional
from app.exceptions import NotAuthenticatedError
from app.guards import ip_limit, limit_user, origin_guard, parse_body, require_user
from core.models.message import ConversationCreate, MarkRead, MessageSend
from core.services.message_service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Sending
# =============================================================================

@router.post(
    "/send",
    dependencies=[
        Depends(origin_guard),
        Depends(ip_limit("messages", 120, message="Too many requests from this network. Please wait a moment.")),
    ],
)
async def send_message(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Send a message to another user.

    Without conversationId the buyer/seller conversation is created or
    reused. Blocked pairs get 403, spam gets 400, repeated copies get 429.
    """
    payload = await parse_body(request, MessageSend)
    user = require_user(user)
    limit_user("messages", user.id, 40, message="Message rate limit reached. Please try again shortly.")

    message = MessageService.send_message(str(user.id), payload)
    return {"message": message.model_dump(by_alias=True)}


# =============================================================================
# Conversations
# =============================================================================

@router.get("/conversations")
async def list_conversations(user: AuthUser = Depends(get_current_user)):
    return {"conversations": MessageService.list_conversations(str(user.id))}


@router.post("/conversations")
async def create_or_get_conversation(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    """
    Open the conversation between a seller and a buyer.

    The caller has to be one of the two participants.
    """
    payload = await parse_body(request, ConversationCreate)
    if user is None or str(user.id) not in (payload.seller_id, payload.buyer_id):
        raise NotAuthenticatedError()

    conversation_id = MessageService.get_or_create_conversation(
        payload.seller_id,
        payload.buyer_id,
        payload.product_id or None,
    )
    return {"id": conversation_id}


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: Annotated[str, Path(description="Conversation id")],
    user: AuthUser = Depends(get_current_user),
):
    return {"conversation": MessageService.get_conversation(conversation_id, str(user.id))}


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: Annotated[str, Path(description="Conversation id")],
    user: AuthUser = Depends(get_current_user),
):
    messages = MessageService.list_messages(conversation_id, str(user.id))
    return {"messages": [message.model_dump(by_alias=True) for message in messages]}


@router.post("/conversations/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: Annotated[str, Path(description="Conversation id")],
    user: AuthUser = Depends(get_current_user),
):
    MessageService.mark_read(conversation_id, str(user.id))
    return {"ok": True}


@router.post("/read")
async def mark_read(
    request: Request,
    user: Optional[AuthUser] = Depends(get_current_user_optional),
):
    payload = await parse_body(request, MarkRead)
    user = require_user(user)
    MessageService.mark_read(payload.conversation_id, str(user.id))
    return {"ok": True}


@router.get("/unread-count")
async def unread_count(user: AuthUser = Depends(get_current_user)):
    return {"count": MessageService.unread_count(str(user.id))}


# =============================================================================
# Deletion
# =============================================================================

@router.delete("/{message_id}")
async def delete_message(
    message_id: Annotated[str, Path(description="Message id")],
    user: AuthUser = Depends(get_current_user),
):
    """
    Delete one of the caller's own messages.

    The conversation's last message preview is recomputed afterwards.
    """
    MessageService.delete_message(message_id, str(user.id))
    return {"ok": True}
