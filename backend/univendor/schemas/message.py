from pydantic import BaseModel, model_validator
from datetime import datetime
from typing import Literal, Optional

ConversationType = Literal["user_vendor", "user_user"]

class MessageSend(BaseModel):
    conversation_id: Optional[int] = None
    # first contact with a vendor may name the vendor instead of a conversation
    vendor_id: Optional[int] = None
    conversation_type: ConversationType = "user_vendor"
    content: Optional[str] = None
    has_attachment: bool = False
    attachment_url: Optional[str] = None
    attachment_type: Optional[str] = None
    attachment_name: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if self.conversation_id is None and self.vendor_id is None:
            raise ValueError("conversation_id or vendor_id is required")
        return self

class ConversationCreate(BaseModel):
    recipient_id: int
    recipient_type: Literal["user", "vendor"] = "vendor"
    message: str

class MessageRead(BaseModel):
    id: int
    conversation_id: int
    conversation_type: str
    sender_id: int
    recipient_id: Optional[int] = None
    content: Optional[str] = None
    status: str
    timestamp: datetime
    is_from_current_user: bool
    has_attachment: bool
    attachment_url: Optional[str] = None
    attachment_type: Optional[str] = None
    attachment_name: Optional[str] = None

class ConversationSummary(BaseModel):
    id: int
    conversation_type: str
    vendor_id: Optional[int] = None
    counterpart_user_id: Optional[int] = None
    name: str
    image: Optional[str] = None
    last_message: Optional[str] = None
    updated_at: datetime
    timestamp: str
    unread: bool

class VendorConversationSummary(BaseModel):
    id: int
    conversation_type: str
    user_id: int
    user_name: str
    user_image: Optional[str] = None
    last_message: Optional[str] = None
    updated_at: datetime
    timestamp: str
    unread: bool

class Notification(BaseModel):
    id: int
    conversation_id: int
    conversation_type: str
    sender_id: int
    sender_name: str
    content: str
    created_at: datetime
