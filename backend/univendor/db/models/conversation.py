from datetime import datetime
from typing import Optional
from sqlalchemy import Integer, Text, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from univendor.db.database import Base
from univendor.db.models.base import get_utc_now

CONVERSATION_USER_VENDOR = "user_vendor"
CONVERSATION_USER_USER = "user_user"
CONVERSATION_TYPES = (CONVERSATION_USER_VENDOR, CONVERSATION_USER_USER)

ATTACHMENT_PLACEHOLDER = "Sent an attachment"

# --- Customer <-> vendor thread ---
class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("user_id", "vendor_id", name="uq_conversation_user_vendor"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("vendors.id", ondelete="CASCADE"), index=True, nullable=False)
    # denormalized preview for list views
    last_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)

    user: Mapped["User"] = relationship("User")
    vendor: Mapped["Vendor"] = relationship("Vendor")

    conversation_type = CONVERSATION_USER_VENDOR


# --- Peer (user <-> user) thread; pair is stored ordered so (a, b) and (b, a) collide ---
class UserConversation(Base):
    __tablename__ = "user_conversations"
    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_user_conversation_pair"),
        CheckConstraint("user1_id < user2_id", name="ck_user_conversation_ordered"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user1_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    user2_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    last_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)

    user1: Mapped["User"] = relationship("User", foreign_keys=[user1_id])
    user2: Mapped["User"] = relationship("User", foreign_keys=[user2_id])

    conversation_type = CONVERSATION_USER_USER
