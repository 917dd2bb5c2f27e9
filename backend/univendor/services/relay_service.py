# backend/univendor/services/relay_service.py
"""
Live event relay: message delivery, typing indicators and read receipts.

Events travel over the Broker to `private-user-{id}` channels. Payload keys are
camelCase because they are the wire protocol shared with browser clients.
Publishing is best effort: failures are logged and dropped, never retried,
while the database state (status transitions) is always updated.
"""
import logging
from typing import Optional
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.db.models.base import get_utc_now
from univendor.db.models.conversation import CONVERSATION_USER_VENDOR
from univendor.db.models.message import Message, STATUS_DELIVERED, STATUS_READ
from univendor.db.models.user import User
from univendor.realtime.broker import Broker
from univendor.realtime.channels import private_user_channel
from univendor.services import message_service
from univendor.services.conversation_service import counterpart_of, get_conversation_for_participant

logger = logging.getLogger(__name__)

EVENT_MESSAGE = "message"
EVENT_NOTIFICATION = "notification"
EVENT_TYPING = "typing"
EVENT_READ_RECEIPT = "read_receipt"


async def safe_publish(broker: Broker, user_id: int, event: str, payload: dict) -> int:
    """Publishes to a user's private channel; returns receivers, 0 on failure."""
    channel = private_user_channel(user_id)
    try:
        return await broker.publish(channel, event, payload)
    except Exception as e:
        logger.error(f"[Relay] Publish {event} to {channel} failed: {e}")
        return 0


def _int_field(data: dict, *keys: str, required: bool = True) -> Optional[int]:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail=f"Invalid {key}")
    if required:
        raise HTTPException(status_code=400, detail=f"Missing {keys[0]}")
    return None


def _conversation_type(data: dict) -> str:
    return data.get("conversationType") or CONVERSATION_USER_VENDOR


def message_event_payload(message: Message, sender: User) -> dict:
    return {
        "id": message.id,
        "conversationId": message.conversation_id,
        "conversationType": message.conversation_type,
        "senderId": message.sender_id,
        "senderName": sender.full_name,
        "content": message.content,
        "timestamp": message.created_at.isoformat(),
        "status": STATUS_DELIVERED,
        "hasAttachment": message.has_attachment,
        "attachmentUrl": message.attachment_url,
        "attachmentType": message.attachment_type,
        "attachmentName": message.attachment_name,
    }


async def deliver_message(db: AsyncSession, broker: Broker, sender: User, data: dict) -> dict:
    """
    Pushes a message to the counterpart and advances it to 'delivered'.
    `data` names an already stored message ({"id", "conversationId"}); with
    {"content"} and no id the message is written first.
    """
    conversation_id = _int_field(data, "conversationId")
    conversation, participants = await get_conversation_for_participant(
        db, conversation_id, _conversation_type(data), sender.id
    )
    recipient_id = counterpart_of(participants, sender.id)

    message_id = _int_field(data, "id", "messageId", required=False)
    if message_id is None:
        attachment = None
        if data.get("attachmentUrl"):
            attachment = {
                "url": data.get("attachmentUrl"),
                "type": data.get("attachmentType"),
                "name": data.get("attachmentName"),
            }
        message = await message_service.write_message(
            db, conversation, sender.id, data.get("content"), attachment, participants
        )
    else:
        message = await db.get(Message, message_id)
        if (
            not message
            or message.conversation_id != conversation.id
            or message.conversation_type != conversation.conversation_type
        ):
            raise HTTPException(status_code=404, detail="Message not found")
        if message.sender_id != sender.id:
            raise HTTPException(status_code=403, detail="Only the sender can deliver a message")

    payload = message_event_payload(message, sender)
    receivers = await safe_publish(broker, recipient_id, EVENT_MESSAGE, payload)
    await safe_publish(broker, recipient_id, EVENT_NOTIFICATION, {
        "conversationId": message.conversation_id,
        "conversationType": message.conversation_type,
        "messageId": message.id,
        "senderId": sender.id,
        "senderName": sender.full_name,
        "preview": message_service.preview_for(message.content, message.has_attachment),
        "timestamp": payload["timestamp"],
    })

    # delivered once handed to the relay, whether or not anyone was listening
    await message_service.advance_status(db, message.id, STATUS_DELIVERED)
    logger.info(f"[Relay] message #{message.id} User {sender.id} -> User {recipient_id} ({receivers} receivers)")
    return {"success": True, "message_id": message.id, "recipient_id": recipient_id, "receivers": receivers}


async def set_typing(db: AsyncSession, broker: Broker, sender: User, data: dict) -> dict:
    """Ephemeral; nothing is stored."""
    conversation_id = _int_field(data, "conversationId")
    is_typing = data.get("isTyping", True)
    if not isinstance(is_typing, bool):
        raise HTTPException(status_code=400, detail="Invalid isTyping")
    _, participants = await get_conversation_for_participant(
        db, conversation_id, _conversation_type(data), sender.id
    )
    recipient_id = counterpart_of(participants, sender.id)
    receivers = await safe_publish(broker, recipient_id, EVENT_TYPING, {
        "conversationId": conversation_id,
        "conversationType": _conversation_type(data),
        "userId": sender.id,
        "isTyping": is_typing,
    })
    return {"success": True, "receivers": receivers}


async def mark_read(db: AsyncSession, broker: Broker, reader: User, data: dict) -> dict:
    message_id = _int_field(data, "messageId", "id")
    message = await db.get(Message, message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")

    # participant check goes through the message's own conversation
    await get_conversation_for_participant(db, message.conversation_id, message.conversation_type, reader.id)
    if message.sender_id == reader.id:
        raise HTTPException(status_code=403, detail="Cannot mark your own message as read")

    changed = await message_service.advance_status(db, message.id, STATUS_READ)
    await send_read_receipt(broker, message.sender_id, message.conversation_id, message.conversation_type, message.id, reader.id)
    return {"success": True, "updated": changed}


async def send_read_receipt(
    broker: Broker,
    sender_id: int,
    conversation_id: int,
    conversation_type: str,
    message_id: int,
    reader_id: int,
) -> int:
    return await safe_publish(broker, sender_id, EVENT_READ_RECEIPT, {
        "conversationId": conversation_id,
        "conversationType": conversation_type,
        "messageId": message_id,
        "readBy": reader_id,
        "timestamp": get_utc_now().isoformat(),
    })


async def publish_read_receipts(broker: Broker, conversation, reader_id: int, marked: list[dict]):
    """Receipts for rows flipped by message_service.mark_conversation_read."""
    for row in marked:
        await send_read_receipt(
            broker, row["sender_id"], conversation.id, conversation.conversation_type, row["id"], reader_id
        )


HANDLERS = {
    EVENT_MESSAGE: deliver_message,
    EVENT_TYPING: set_typing,
    EVENT_READ_RECEIPT: mark_read,
}


async def dispatch(db: AsyncSession, broker: Broker, user: User, event: Optional[str], data) -> dict:
    """Routes a client-emitted {event, data} frame (WebSocket or HTTP trampoline)."""
    handler = HANDLERS.get(event)
    if handler is None:
        raise HTTPException(status_code=400, detail="Unknown event")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Invalid event data")
    return await handler(db, broker, user, data)
