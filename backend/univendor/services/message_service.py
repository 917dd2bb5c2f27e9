# backend/univendor/services/message_service.py
import logging
from typing import Optional
from fastapi import HTTPException
from sqlalchemy import select, update, func, desc
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.db.models.base import get_utc_now
from univendor.db.models.conversation import ATTACHMENT_PLACEHOLDER, CONVERSATION_USER_VENDOR, Conversation
from univendor.db.models.message import Message, STATUS_ORDER, STATUS_SENT, STATUS_DELIVERED, STATUS_READ
from univendor.db.models.user import User
from univendor.db.models.vendor import Vendor
from univendor.services.conversation_service import (
    AnyConversation,
    counterpart_of,
    get_participant_ids,
    touch_conversation,
    conversation_membership_filter,
)

logger = logging.getLogger(__name__)

NOTIFICATION_LIMIT = 10


def preview_for(content: Optional[str], has_attachment: bool) -> str:
    """Text shown as conversations.last_message."""
    if content:
        return content
    return ATTACHMENT_PLACEHOLDER if has_attachment else ""


async def write_message(
    db: AsyncSession,
    conversation: AnyConversation,
    sender_id: int,
    content: Optional[str] = None,
    attachment: Optional[dict] = None,
    participants: Optional[tuple] = None,
) -> Message:
    """
    Persists a message with status 'sent', then refreshes the conversation preview.
    `attachment` is {"url", "type", "name"} when a file was uploaded first.
    """
    content = (content or "").strip() or None
    has_attachment = bool(attachment and attachment.get("url"))
    if not content and not has_attachment:
        raise HTTPException(status_code=400, detail="Message content is required")

    participants = participants or await get_participant_ids(db, conversation)
    if sender_id not in participants:
        raise HTTPException(status_code=403, detail="Not a participant of this conversation")

    message = Message(
        conversation_id=conversation.id,
        conversation_type=conversation.conversation_type,
        sender_id=sender_id,
        recipient_id=counterpart_of(participants, sender_id),
        content=content,
        status=STATUS_SENT,
        has_attachment=has_attachment,
        attachment_url=attachment.get("url") if has_attachment else None,
        attachment_type=attachment.get("type") if has_attachment else None,
        attachment_name=attachment.get("name") if has_attachment else None,
    )
    db.add(message)
    await db.commit()
    await db.refresh(message)

    # second write; a failure here leaves the message stored with a stale preview
    await touch_conversation(db, conversation, preview_for(content, has_attachment))

    logger.info(
        f"[Message] {conversation.conversation_type}:{conversation.id} "
        f"User {sender_id} -> User {message.recipient_id} (#{message.id})"
    )
    return message


async def get_messages(db: AsyncSession, conversation: AnyConversation) -> list[Message]:
    """Full history, oldest first."""
    stmt = (
        select(Message)
        .where(
            Message.conversation_type == conversation.conversation_type,
            Message.conversation_id == conversation.id,
        )
        .order_by(Message.created_at, Message.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def advance_status(db: AsyncSession, message_id: int, new_status: str) -> bool:
    """
    Moves a message forward in sent -> delivered -> read.
    The WHERE clause only matches lower states, so a late 'delivered' never
    overwrites 'read'. Returns True when a row changed.
    """
    if new_status not in STATUS_ORDER or new_status == STATUS_SENT:
        raise ValueError(f"Invalid target status: {new_status}")

    lower = STATUS_ORDER[:STATUS_ORDER.index(new_status)]
    now = get_utc_now()
    values = {"status": new_status}
    if new_status == STATUS_DELIVERED:
        values["delivered_at"] = now
    else:
        values["delivered_at"] = func.coalesce(Message.delivered_at, now)
        values["read_at"] = now

    result = await db.execute(
        update(Message)
        .where(Message.id == message_id, Message.status.in_(lower))
        .values(**values)
    )
    await db.commit()
    return result.rowcount > 0


async def mark_conversation_read(db: AsyncSession, conversation: AnyConversation, reader_id: int) -> list[dict]:
    """
    Marks every incoming unread message in the thread as read.
    Returns [{"id", "sender_id"}] for the rows that changed so receipts can be sent.
    """
    stmt = select(Message.id, Message.sender_id).where(
        Message.conversation_type == conversation.conversation_type,
        Message.conversation_id == conversation.id,
        Message.sender_id != reader_id,
        Message.status != STATUS_READ,
    )
    rows = (await db.execute(stmt)).all()
    if not rows:
        return []

    now = get_utc_now()
    ids = [row.id for row in rows]
    await db.execute(
        update(Message)
        .where(Message.id.in_(ids), Message.status != STATUS_READ)
        .values(
            status=STATUS_READ,
            read_at=now,
            delivered_at=func.coalesce(Message.delivered_at, now),
        )
    )
    await db.commit()
    return [{"id": row.id, "sender_id": row.sender_id} for row in rows]


async def count_unread(db: AsyncSession, user_id: int) -> int:
    """Messages in any of the user's threads that the user did not send and has not read."""
    stmt = select(func.count(Message.id)).where(
        conversation_membership_filter(user_id),
        Message.sender_id != user_id,
        Message.status != STATUS_READ,
    )
    result = await db.execute(stmt)
    return result.scalar_one()


async def get_notifications(db: AsyncSession, user_id: int, limit: int = NOTIFICATION_LIMIT) -> list[dict]:
    """Latest unread incoming messages with the sender's display name."""
    stmt = (
        select(Message, User)
        .join(User, Message.sender_id == User.id)
        .where(
            conversation_membership_filter(user_id),
            Message.sender_id != user_id,
            Message.status != STATUS_READ,
        )
        .order_by(desc(Message.created_at), desc(Message.id))
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()

    # vendor threads show the business name when the vendor side wrote
    vendor_names = {}
    vendor_conversation_ids = {
        m.conversation_id for m, _ in rows if m.conversation_type == CONVERSATION_USER_VENDOR
    }
    if vendor_conversation_ids:
        result = await db.execute(
            select(Conversation.id, Vendor.user_id, Vendor.business_name)
            .join(Vendor, Conversation.vendor_id == Vendor.id)
            .where(Conversation.id.in_(vendor_conversation_ids))
        )
        vendor_names = {cid: (owner_id, name) for cid, owner_id, name in result.all()}

    notifications = []
    for message, sender in rows:
        sender_name = sender.full_name
        owner = vendor_names.get(message.conversation_id) if message.conversation_type == CONVERSATION_USER_VENDOR else None
        if owner and owner[0] == sender.id:
            sender_name = owner[1]
        notifications.append({
            "id": message.id,
            "conversation_id": message.conversation_id,
            "conversation_type": message.conversation_type,
            "sender_id": sender.id,
            "sender_name": sender_name,
            "content": preview_for(message.content, message.has_attachment),
            "created_at": message.created_at,
        })
    return notifications


def serialize_message(message: Message, current_user_id: Optional[int] = None) -> dict:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "conversation_type": message.conversation_type,
        "sender_id": message.sender_id,
        "recipient_id": message.recipient_id,
        "content": message.content,
        "status": message.status,
        "timestamp": message.created_at,
        "is_from_current_user": current_user_id is not None and message.sender_id == current_user_id,
        "has_attachment": message.has_attachment,
        "attachment_url": message.attachment_url,
        "attachment_type": message.attachment_type,
        "attachment_name": message.attachment_name,
    }
