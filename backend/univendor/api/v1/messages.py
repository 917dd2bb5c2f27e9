# backend/univendor/api/v1/messages.py
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.api.deps import get_broker, get_current_user, get_current_vendor
from univendor.db.database import get_db
from univendor.db.models.conversation import CONVERSATION_USER_VENDOR, Conversation
from univendor.db.models.user import User
from univendor.db.models.vendor import Vendor
from univendor.realtime.broker import Broker
from univendor.schemas.message import (
    ConversationCreate,
    ConversationSummary,
    MessageSend,
    Notification,
    VendorConversationSummary,
)
from univendor.services import conversation_service, message_service, relay_service

router = APIRouter()


@router.post("/send")
async def send_message(
    body: MessageSend,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Stores a message (status 'sent'). Live delivery is a separate `message`
    relay event emitted by the sender's client.
    """
    if body.conversation_id is not None:
        conversation, participants = await conversation_service.get_conversation_for_participant(
            db, body.conversation_id, body.conversation_type, user.id
        )
    else:
        conversation = await conversation_service.resolve_vendor_conversation(db, user.id, body.vendor_id)
        participants = await conversation_service.get_participant_ids(db, conversation)

    attachment = None
    if body.has_attachment and body.attachment_url:
        attachment = {"url": body.attachment_url, "type": body.attachment_type, "name": body.attachment_name}

    message = await message_service.write_message(db, conversation, user.id, body.content, attachment, participants)
    return {
        "success": True,
        "conversation_id": conversation.id,
        "recipient_id": message.recipient_id,
        "message": message_service.serialize_message(message, user.id),
    }


@router.post("/conversations/create")
async def create_conversation(
    body: ConversationCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """First contact: find or create the thread, then store the opening message."""
    if body.recipient_type == "vendor":
        conversation = await conversation_service.resolve_vendor_conversation(db, user.id, body.recipient_id)
    else:
        conversation = await conversation_service.resolve_user_conversation(db, user.id, body.recipient_id)

    message = await message_service.write_message(db, conversation, user.id, body.message)
    return {
        "success": True,
        "conversation_id": conversation.id,
        "conversation_type": conversation.conversation_type,
        "message_id": message.id,
    }


@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await conversation_service.list_conversations_for_user(db, user.id)


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: int,
    conversation_type: str = Query(CONVERSATION_USER_VENDOR, alias="type"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation, _ = await conversation_service.get_conversation_for_participant(
        db, conversation_id, conversation_type, user.id
    )
    return await conversation_service.describe_conversation(db, conversation, user.id)


async def _history_and_mark_read(db: AsyncSession, broker: Broker, conversation, reader_id: int) -> list[dict]:
    messages = [
        message_service.serialize_message(m, reader_id)
        for m in await message_service.get_messages(db, conversation)
    ]
    marked = await message_service.mark_conversation_read(db, conversation, reader_id)
    await relay_service.publish_read_receipts(broker, conversation, reader_id, marked)
    return messages


@router.get("/conversations/{conversation_id}/messages")
async def get_conversation_messages(
    conversation_id: int,
    conversation_type: str = Query(CONVERSATION_USER_VENDOR, alias="type"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    broker: Broker = Depends(get_broker),
):
    """Full history; the counterpart's messages are marked read afterwards."""
    conversation, _ = await conversation_service.get_conversation_for_participant(
        db, conversation_id, conversation_type, user.id
    )
    return {"messages": await _history_and_mark_read(db, broker, conversation, user.id)}


# --- Vendor inbox ---

@router.get("/vendor/conversations", response_model=list[VendorConversationSummary])
async def list_vendor_conversations(
    vendor: Vendor = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
):
    return await conversation_service.list_conversations_for_vendor(db, vendor)


@router.get("/vendor/conversations/{conversation_id}")
async def get_vendor_conversation(
    conversation_id: int,
    vendor: Vendor = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
    broker: Broker = Depends(get_broker),
):
    conversation = await db.get(Conversation, conversation_id)
    if not conversation or conversation.vendor_id != vendor.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")

    return {
        "conversation": await conversation_service.describe_conversation(db, conversation, vendor.user_id),
        "messages": await _history_and_mark_read(db, broker, conversation, vendor.user_id),
    }


# --- Badges ---

@router.get("/unread-count")
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"count": await message_service.count_unread(db, user.id)}


@router.get("/notifications", response_model=list[Notification])
async def notifications(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await message_service.get_notifications(db, user.id)
