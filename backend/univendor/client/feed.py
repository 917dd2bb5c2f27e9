import logging
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

STATUS_ORDER = ("sent", "delivered", "read")


def _rank(status: Optional[str]) -> int:
    return STATUS_ORDER.index(status) if status in STATUS_ORDER else 0


def normalize_message(data: dict) -> dict:
    """Accepts REST (snake_case) and relay (camelCase) message shapes."""
    def pick(*keys, default=None):
        for key in keys:
            if key in data and data[key] is not None:
                return data[key]
        return default

    return {
        "id": int(pick("id", "messageId")),
        "conversation_id": pick("conversation_id", "conversationId"),
        "conversation_type": pick("conversation_type", "conversationType", default="user_vendor"),
        "sender_id": pick("sender_id", "senderId"),
        "content": pick("content"),
        "status": pick("status", default="sent"),
        "timestamp": pick("timestamp", "created_at"),
        "has_attachment": bool(pick("has_attachment", "hasAttachment", default=False)),
        "attachment_url": pick("attachment_url", "attachmentUrl"),
        "attachment_type": pick("attachment_type", "attachmentType"),
        "attachment_name": pick("attachment_name", "attachmentName"),
    }


class ConversationFeed:
    """
    Local view of one thread: full history once, then live events on top.

    Messages are keyed by id, so the same message arriving from a poll and a
    push renders once. Status only moves forward (sent -> delivered -> read).
    Incoming messages from the other party queue a read receipt in
    `pending_read_receipts` for the transport to send.
    """

    def __init__(self, conversation_id: int, current_user_id: int, conversation_type: str = "user_vendor"):
        self.conversation_id = conversation_id
        self.conversation_type = conversation_type
        self.current_user_id = current_user_id
        self._messages = {}
        self.pending_read_receipts: List[int] = []

    @property
    def messages(self) -> List[dict]:
        return sorted(self._messages.values(), key=lambda m: (str(m["timestamp"] or ""), m["id"]))

    def load(self, history: Iterable[dict]):
        self._messages = {}
        for item in history:
            message = normalize_message(item)
            self._messages[message["id"]] = message

    def _belongs_here(self, message: dict) -> bool:
        return (
            message["conversation_id"] in (None, self.conversation_id)
            and message["conversation_type"] == self.conversation_type
        )

    def apply_message(self, data: dict) -> bool:
        """Returns True when the message was new to this feed."""
        message = normalize_message(data)
        if not self._belongs_here(message):
            return False

        existing = self._messages.get(message["id"])
        if existing:
            self.apply_status(message["id"], message["status"])
            return False

        self._messages[message["id"]] = message
        if message["sender_id"] != self.current_user_id and message["status"] != "read":
            self.pending_read_receipts.append(message["id"])
        return True

    def apply_status(self, message_id: int, status: str) -> bool:
        message = self._messages.get(message_id)
        if not message or _rank(status) <= _rank(message["status"]):
            return False
        message["status"] = status
        return True

    def apply_read_receipt(self, data: dict) -> bool:
        if data.get("conversationId") not in (None, self.conversation_id):
            return False
        return self.apply_status(int(data["messageId"]), "read")

    def apply_event(self, event: str, data: dict) -> bool:
        if event == "message":
            return self.apply_message(data)
        if event == "read_receipt":
            return self.apply_read_receipt(data)
        return False

    def drain_read_receipts(self) -> List[int]:
        pending, self.pending_read_receipts = self.pending_read_receipts, []
        return pending
