import hashlib
import hmac
import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

PRIVATE_USER_PREFIX = "private-user-"

# Key/secret pair used to sign channel subscriptions (Pusher-compatible "key:signature")
REALTIME_APP_KEY = os.getenv("REALTIME_APP_KEY", "univendor")
REALTIME_APP_SECRET = os.getenv("REALTIME_APP_SECRET", os.getenv("SECRET_KEY", "your-secret-key-very-secret"))


def private_user_channel(user_id: int) -> str:
    return f"{PRIVATE_USER_PREFIX}{user_id}"


def parse_private_user_channel(channel: str) -> Optional[int]:
    """User id encoded in a private-user-{id} channel name, or None for any other name."""
    if not channel or not channel.startswith(PRIVATE_USER_PREFIX):
        return None
    suffix = channel[len(PRIVATE_USER_PREFIX):]
    if not suffix.isdigit():
        return None
    return int(suffix)


def can_subscribe(user_id: int, channel: str) -> bool:
    """A user may only listen on their own private channel."""
    return parse_private_user_channel(channel) == user_id


def sign_channel_auth(socket_id: str, channel: str) -> str:
    signature = hmac.new(
        REALTIME_APP_SECRET.encode(),
        f"{socket_id}:{channel}".encode(),
        hashlib.sha256,
    ).hexdigest()
    return f"{REALTIME_APP_KEY}:{signature}"


def verify_channel_auth(socket_id: str, channel: str, auth: str) -> bool:
    return hmac.compare_digest(sign_channel_auth(socket_id, channel), auth or "")
