# backend/univendor/services/conversation_service.py
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union
from fastapi import HTTPException, status
from sqlalchemy import select, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.db.models.base import get_utc_now
from univendor.db.models.conversation import (
    Conversation,
    UserConversation,
    CONVERSATION_USER_VENDOR,
    CONVERSATION_USER_USER,
    CONVERSATION_TYPES,
)
from univendor.db.models.message import Message, STATUS_READ
from univendor.db.models.user import User
from univendor.db.models.vendor import Vendor

logger = logging.getLogger(__name__)

AnyConversation = Union[Conversation, UserConversation]

PLACEHOLDER_IMAGE = "/placeholder.svg?height=100&width=100"


def _insert_for(db: AsyncSession):
    """Dialect-specific INSERT so ON CONFLICT DO NOTHING is available."""
    if db.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert


def validate_conversation_type(conversation_type: str) -> str:
    if conversation_type not in CONVERSATION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid conversation type")
    return conversation_type


# --- Resolver (find-or-create) ---

async def resolve_vendor_conversation(db: AsyncSession, user_id: int, vendor_id: int) -> Conversation:
    """
    Returns the single customer<->vendor thread, creating it on first contact.
    The unique (user_id, vendor_id) constraint plus ON CONFLICT DO NOTHING makes
    concurrent first messages converge on one row.
    """
    vendor = await db.get(Vendor, vendor_id)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")
    if vendor.user_id == user_id:
        raise HTTPException(status_code=400, detail="Cannot start a conversation with yourself")

    stmt = select(Conversation).where(Conversation.user_id == user_id, Conversation.vendor_id == vendor_id)
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing:
        return existing

    now = get_utc_now()
    insert = _insert_for(db)
    await db.execute(
        insert(Conversation)
        .values(user_id=user_id, vendor_id=vendor_id, created_at=now, updated_at=now)
        .on_conflict_do_nothing(index_elements=["user_id", "vendor_id"])
    )
    await db.commit()

    conversation = (await db.execute(stmt)).scalar_one()
    logger.info(f"[Conversation] Resolved user {user_id} <-> vendor {vendor_id}: {conversation.id}")
    return conversation


async def resolve_user_conversation(db: AsyncSession, user_id: int, other_user_id: int) -> UserConversation:
    """Peer thread for an unordered pair of users; stored as (min, max)."""
    if user_id == other_user_id:
        raise HTTPException(status_code=400, detail="Cannot start a conversation with yourself")
    other = await db.get(User, other_user_id)
    if not other:
        raise HTTPException(status_code=404, detail="User not found")

    user1_id, user2_id = sorted((user_id, other_user_id))
    stmt = select(UserConversation).where(
        UserConversation.user1_id == user1_id,
        UserConversation.user2_id == user2_id,
    )
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing:
        return existing

    now = get_utc_now()
    insert = _insert_for(db)
    await db.execute(
        insert(UserConversation)
        .values(user1_id=user1_id, user2_id=user2_id, created_at=now, updated_at=now)
        .on_conflict_do_nothing(index_elements=["user1_id", "user2_id"])
    )
    await db.commit()

    return (await db.execute(stmt)).scalar_one()


# --- Lookup / participants ---

async def get_conversation(db: AsyncSession, conversation_id: int, conversation_type: str) -> Optional[AnyConversation]:
    model = Conversation if conversation_type == CONVERSATION_USER_VENDOR else UserConversation
    return await db.get(model, conversation_id)


async def get_participant_ids(db: AsyncSession, conversation: AnyConversation) -> Tuple[int, int]:
    """User ids on both ends of a thread (the vendor side is the vendor's owning user)."""
    if isinstance(conversation, Conversation):
        vendor = await db.get(Vendor, conversation.vendor_id)
        vendor_user_id = vendor.user_id if vendor else None
        return conversation.user_id, vendor_user_id
    return conversation.user1_id, conversation.user2_id


def counterpart_of(participants: Tuple[int, int], user_id: int) -> int:
    first, second = participants
    return second if user_id == first else first


async def get_conversation_for_participant(
    db: AsyncSession,
    conversation_id: int,
    conversation_type: str,
    user_id: int,
) -> Tuple[AnyConversation, Tuple[int, int]]:
    """Conversation plus its participants; 404 unless `user_id` is one of them."""
    validate_conversation_type(conversation_type)
    conversation = await get_conversation(db, conversation_id, conversation_type)
    if not conversation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")

    participants = await get_participant_ids(db, conversation)
    if user_id not in participants:
        # same answer as a missing row so ids cannot be probed
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation, participants


async def touch_conversation(db: AsyncSession, conversation: AnyConversation, preview: str):
    conversation.last_message = preview
    conversation.updated_at = get_utc_now()
    await db.commit()


# --- List views ---

async def _unread_by_conversation(db: AsyncSession, conversation_type: str, conversation_ids: list[int], user_id: int) -> dict:
    if not conversation_ids:
        return {}
    stmt = (
        select(Message.conversation_id, func.count(Message.id))
        .where(
            Message.conversation_type == conversation_type,
            Message.conversation_id.in_(conversation_ids),
            Message.sender_id != user_id,
            Message.status != STATUS_READ,
        )
        .group_by(Message.conversation_id)
    )
    result = await db.execute(stmt)
    return {conversation_id: count for conversation_id, count in result.all()}


async def list_conversations_for_user(db: AsyncSession, user_id: int) -> list[dict]:
    """Customer-side vendor threads and peer threads, newest first."""
    vendor_rows = (await db.execute(
        select(Conversation, Vendor)
        .join(Vendor, Conversation.vendor_id == Vendor.id)
        .where(Conversation.user_id == user_id)
    )).all()

    peer_rows = (await db.execute(
        select(UserConversation).where(
            or_(UserConversation.user1_id == user_id, UserConversation.user2_id == user_id)
        )
    )).scalars().all()

    vendor_unread = await _unread_by_conversation(
        db, CONVERSATION_USER_VENDOR, [c.id for c, _ in vendor_rows], user_id
    )
    peer_unread = await _unread_by_conversation(
        db, CONVERSATION_USER_USER, [c.id for c in peer_rows], user_id
    )

    # peer display names in one query
    peer_ids = {counterpart_of((c.user1_id, c.user2_id), user_id) for c in peer_rows}
    peers = {}
    if peer_ids:
        users = (await db.execute(select(User).where(User.id.in_(peer_ids)))).scalars().all()
        peers = {u.id: u for u in users}

    summaries = []
    for conversation, vendor in vendor_rows:
        summaries.append({
            "id": conversation.id,
            "conversation_type": CONVERSATION_USER_VENDOR,
            "vendor_id": vendor.id,
            "counterpart_user_id": vendor.user_id,
            "name": vendor.business_name,
            "image": vendor.logo_image or PLACEHOLDER_IMAGE,
            "last_message": conversation.last_message,
            "updated_at": conversation.updated_at,
            "timestamp": format_timestamp(conversation.updated_at),
            "unread": vendor_unread.get(conversation.id, 0) > 0,
        })
    for conversation in peer_rows:
        other_id = counterpart_of((conversation.user1_id, conversation.user2_id), user_id)
        other = peers.get(other_id)
        summaries.append({
            "id": conversation.id,
            "conversation_type": CONVERSATION_USER_USER,
            "vendor_id": None,
            "counterpart_user_id": other_id,
            "name": other.full_name if other else "Unknown user",
            "image": other.profile_image if other else None,
            "last_message": conversation.last_message,
            "updated_at": conversation.updated_at,
            "timestamp": format_timestamp(conversation.updated_at),
            "unread": peer_unread.get(conversation.id, 0) > 0,
        })

    summaries.sort(key=lambda s: s["updated_at"], reverse=True)
    return summaries


async def list_conversations_for_vendor(db: AsyncSession, vendor: Vendor) -> list[dict]:
    rows = (await db.execute(
        select(Conversation, User)
        .join(User, Conversation.user_id == User.id)
        .where(Conversation.vendor_id == vendor.id)
        .order_by(Conversation.updated_at.desc())
    )).all()

    unread = await _unread_by_conversation(db, CONVERSATION_USER_VENDOR, [c.id for c, _ in rows], vendor.user_id)
    return [
        {
            "id": conversation.id,
            "conversation_type": CONVERSATION_USER_VENDOR,
            "user_id": customer.id,
            "user_name": customer.full_name,
            "user_image": customer.profile_image,
            "last_message": conversation.last_message,
            "updated_at": conversation.updated_at,
            "timestamp": format_timestamp(conversation.updated_at),
            "unread": unread.get(conversation.id, 0) > 0,
        }
        for conversation, customer in rows
    ]


def format_timestamp(value: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    List-view label: clock time today, "Yesterday", weekday within a week, else the date.
    """
    if value is None:
        return ""
    now = now or get_utc_now()
    if value.date() == now.date():
        return value.strftime("%H:%M")
    if value.date() == (now - timedelta(days=1)).date():
        return "Yesterday"
    if value > now - timedelta(days=7):
        return value.strftime("%A")
    return value.strftime("%Y-%m-%d")


def conversation_membership_filter(user_id: int):
    """
    SQL condition matching messages that belong to any of the user's threads
    (as customer, as vendor owner, or as a peer).
    """
    own_vendor_ids = select(Vendor.id).where(Vendor.user_id == user_id)
    vendor_threads = select(Conversation.id).where(
        or_(Conversation.user_id == user_id, Conversation.vendor_id.in_(own_vendor_ids))
    )
    peer_threads = select(UserConversation.id).where(
        or_(UserConversation.user1_id == user_id, UserConversation.user2_id == user_id)
    )
    return or_(
        and_(Message.conversation_type == CONVERSATION_USER_VENDOR, Message.conversation_id.in_(vendor_threads)),
        and_(Message.conversation_type == CONVERSATION_USER_USER, Message.conversation_id.in_(peer_threads)),
    )


async def describe_conversation(db: AsyncSession, conversation: AnyConversation, viewer_id: int) -> dict:
    """Header data for a thread as seen by one participant."""
    detail = {
        "id": conversation.id,
        "conversation_type": conversation.conversation_type,
        "last_message": conversation.last_message,
        "created_at": conversation.created_at,
        "updated_at": conversation.updated_at,
        "vendor_id": None,
    }
    if isinstance(conversation, Conversation):
        vendor = await db.get(Vendor, conversation.vendor_id)
        customer = await db.get(User, conversation.user_id)
        detail["vendor_id"] = vendor.id
        if viewer_id == conversation.user_id:
            detail["counterpart"] = {
                "user_id": vendor.user_id,
                "name": vendor.business_name,
                "image": vendor.logo_image or PLACEHOLDER_IMAGE,
                "location": vendor.location,
            }
        else:
            detail["counterpart"] = {
                "user_id": customer.id,
                "name": customer.full_name,
                "image": customer.profile_image,
                "location": None,
            }
        return detail

    other = await db.get(User, counterpart_of((conversation.user1_id, conversation.user2_id), viewer_id))
    detail["counterpart"] = {
        "user_id": other.id if other else None,
        "name": other.full_name if other else "Unknown user",
        "image": other.profile_image if other else None,
        "location": None,
    }
    return detail
