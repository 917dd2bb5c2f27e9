# backend/univendor/api/v1/realtime.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.api.deps import get_broker, get_current_user
from univendor.db.database import get_db
from univendor.db.models.user import User
from univendor.realtime.broker import Broker
from univendor.realtime.channels import (
    REALTIME_APP_KEY,
    can_subscribe,
    parse_private_user_channel,
    private_user_channel,
    sign_channel_auth,
)
from univendor.schemas.realtime import ChannelAuthRequest, ChannelAuthResponse, MessagingConfig, RelayEvent
from univendor.services import relay_service

router = APIRouter()

SOCKET_PATH = "/api/socket"
AUTH_ENDPOINT = "/api/realtime/auth"


@router.post("/socketio")
async def emit_event(
    body: RelayEvent,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    broker: Broker = Depends(get_broker),
):
    """HTTP trampoline: same {event, data} frames the WebSocket accepts."""
    return await relay_service.dispatch(db, broker, user, body.event, body.data)


@router.post("/realtime/auth", response_model=ChannelAuthResponse)
async def authorize_channel(body: ChannelAuthRequest, user: User = Depends(get_current_user)):
    """Signs a private channel subscription for its owner only."""
    if parse_private_user_channel(body.channel_name) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only private user channels can be authorized")
    if not can_subscribe(user.id, body.channel_name):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return {"auth": sign_channel_auth(body.socket_id, body.channel_name)}


@router.get("/messaging/config", response_model=MessagingConfig)
async def messaging_config(user: User = Depends(get_current_user), broker: Broker = Depends(get_broker)):
    return {
        "backend": broker.name,
        "channel": private_user_channel(user.id),
        "auth_endpoint": AUTH_ENDPOINT,
        "socket_path": SOCKET_PATH,
        "app_key": REALTIME_APP_KEY,
    }
