import json
import logging
from typing import Awaitable, Callable, Optional
import httpx
import websockets
from univendor.client.feed import ConversationFeed
from univendor.client.typing_tracker import TypingTracker
from univendor.core.security import SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)

SOCKET_PATH = "/api/socket"

EventHandler = Callable[[str, dict], Awaitable[None]]


class MessagingClient:
    """
    Async client for the messaging API: REST calls over httpx, live events
    over the /api/socket WebSocket. Authentication is the `auth_session` cookie.
    """

    def __init__(
        self,
        base_url: str,
        session_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        cookies = {SESSION_COOKIE_NAME: session_token} if session_token else None
        self._http = httpx.AsyncClient(base_url=self.base_url, cookies=cookies, transport=transport, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        await self._http.aclose()

    @property
    def session_token(self) -> Optional[str]:
        return self._http.cookies.get(SESSION_COOKIE_NAME)

    async def _request(self, method: str, path: str, **kwargs):
        response = await self._http.request(method, path, **kwargs)
        response.raise_for_status()
        return response.json()

    # --- Auth ---

    async def login(self, email: str, password: str) -> dict:
        return await self._request("POST", "/api/auth/login", json={"email": email, "password": password})

    # --- REST messaging ---

    async def get_conversations(self) -> list:
        return await self._request("GET", "/api/messages/conversations")

    async def get_messages(self, conversation_id: int, conversation_type: str = "user_vendor") -> list:
        data = await self._request(
            "GET", f"/api/messages/conversations/{conversation_id}/messages", params={"type": conversation_type}
        )
        return data["messages"]

    async def send_message(
        self,
        conversation_id: int,
        content: Optional[str],
        conversation_type: str = "user_vendor",
        attachment: Optional[dict] = None,
    ) -> dict:
        body = {"conversation_id": conversation_id, "conversation_type": conversation_type, "content": content}
        if attachment:
            body.update({
                "has_attachment": True,
                "attachment_url": attachment.get("url"),
                "attachment_type": attachment.get("type"),
                "attachment_name": attachment.get("name"),
            })
        return await self._request("POST", "/api/messages/send", json=body)

    async def start_conversation(self, recipient_id: int, message: str, recipient_type: str = "vendor") -> dict:
        return await self._request(
            "POST",
            "/api/messages/conversations/create",
            json={"recipient_id": recipient_id, "recipient_type": recipient_type, "message": message},
        )

    async def unread_count(self) -> int:
        data = await self._request("GET", "/api/messages/unread-count")
        return int(data["count"])

    async def notifications(self) -> list:
        return await self._request("GET", "/api/messages/notifications")

    async def messaging_config(self) -> dict:
        return await self._request("GET", "/api/messaging/config")

    # --- Relay events over HTTP ---

    async def emit(self, event: str, data: dict) -> dict:
        return await self._request("POST", "/api/socketio", json={"event": event, "data": data})

    async def send_and_deliver(self, conversation_id: int, content: str, conversation_type: str = "user_vendor") -> dict:
        """Stores the message, then asks the relay to push it to the other side."""
        sent = await self.send_message(conversation_id, content, conversation_type)
        message = sent["message"]
        await self.emit("message", {
            "id": message["id"],
            "conversationId": conversation_id,
            "conversationType": conversation_type,
        })
        return sent

    async def set_typing(self, conversation_id: int, is_typing: bool = True, conversation_type: str = "user_vendor") -> dict:
        return await self.emit("typing", {
            "conversationId": conversation_id,
            "conversationType": conversation_type,
            "isTyping": is_typing,
        })

    async def send_read_receipt(self, message_id: int) -> dict:
        return await self.emit("read_receipt", {"messageId": message_id})

    # --- Feeds / live connection ---

    async def open_feed(self, conversation_id: int, current_user_id: int, conversation_type: str = "user_vendor") -> ConversationFeed:
        feed = ConversationFeed(conversation_id, current_user_id, conversation_type)
        feed.load(await self.get_messages(conversation_id, conversation_type))
        return feed

    def socket_url(self) -> str:
        if self.base_url.startswith("https://"):
            return "wss://" + self.base_url[len("https://"):] + SOCKET_PATH
        return "ws://" + self.base_url.split("://", 1)[-1] + SOCKET_PATH

    async def listen(self, on_event: EventHandler):
        """Streams {"event", "data"} frames from the live socket until it closes."""
        headers = {"Cookie": f"{SESSION_COOKIE_NAME}={self.session_token}"}
        async with websockets.connect(self.socket_url(), additional_headers=headers) as ws:
            async for raw in ws:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("[Client] Ignoring non-JSON frame")
                    continue
                await on_event(frame.get("event"), frame.get("data") or {})

    async def follow(self, feed: ConversationFeed, typing: Optional[TypingTracker] = None):
        """Keeps `feed` (and `typing`) current from the live socket."""
        async def on_event(event: str, data: dict):
            if event == "typing" and typing is not None:
                typing.apply(data)
                return
            feed.apply_event(event, data)
            for message_id in feed.drain_read_receipts():
                try:
                    await self.send_read_receipt(message_id)
                except httpx.HTTPError as e:
                    logger.warning(f"[Client] Read receipt for #{message_id} failed: {e}")

        await self.listen(on_event)
