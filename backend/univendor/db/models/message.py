from datetime import datetime
from typing import Optional
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from univendor.db.database import Base
from univendor.db.models.base import get_utc_now
from univendor.db.models.conversation import CONVERSATION_USER_VENDOR

STATUS_SENT = "sent"
STATUS_DELIVERED = "delivered"
STATUS_READ = "read"

# Lifecycle order; a message only ever moves to the right
STATUS_ORDER = (STATUS_SENT, STATUS_DELIVERED, STATUS_READ)

class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation", "conversation_type", "conversation_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # points at conversations.id or user_conversations.id depending on conversation_type
    conversation_id: Mapped[int] = mapped_column(Integer, nullable=False)
    conversation_type: Mapped[str] = mapped_column(String(20), default=CONVERSATION_USER_VENDOR, nullable=False)
    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    recipient_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # status is the single source of truth for delivery/read state
    status: Mapped[str] = mapped_column(String(20), default=STATUS_SENT, nullable=False)

    has_attachment: Mapped[bool] = mapped_column(Boolean, default=False)
    attachment_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    attachment_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    attachment_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now, index=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
