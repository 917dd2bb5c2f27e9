# backend/univendor/sockets/realtime_socket.py
import asyncio
import json
import logging
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from univendor.core.security import SESSION_COOKIE_NAME
from univendor.db.database import AsyncSessionLocal
from univendor.db.models.user import User
from univendor.realtime.broker import Broker
from univendor.realtime.channels import private_user_channel
from univendor.services import relay_service, session_service

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_UNAUTHORIZED = 4001


async def handle_frame(user: User, broker: Broker, raw: str, send) -> None:
    """
    One client frame: {"event": "message" | "typing" | "read_receipt" | "ping", "data": {...}}.
    Each frame gets its own DB session, closed before the next one is read.
    """
    try:
        frame = json.loads(raw)
        event = frame.get("event")
        data = frame.get("data") or {}
    except (json.JSONDecodeError, AttributeError) as e:
        logger.warning(f"[Socket] Bad frame from User {user.id}: {e}")
        await send("error", {"detail": "Invalid frame"})
        return

    if event == "ping":
        await send("pong", {})
        return

    async with AsyncSessionLocal() as db:
        try:
            result = await relay_service.dispatch(db, broker, user, event, data)
        except HTTPException as e:
            await send("error", {"event": event, "status": e.status_code, "detail": e.detail})
            return
        except Exception:
            logger.exception(f"[Socket] {event} from User {user.id} failed")
            await db.rollback()
            await send("error", {"event": event, "status": 500, "detail": "Internal server error"})
            return

    await send("ack", {"event": event, **result})


@router.websocket("/api/socket")
async def realtime_endpoint(websocket: WebSocket):
    """
    Live connection for one signed-in user: events on the user's private
    channel are pushed down as {"event", "data"} frames.
    """
    broker: Broker = websocket.app.state.broker

    # 1. Cookie auth (same session table as the REST API)
    async with AsyncSessionLocal() as db:
        user = await session_service.resolve_user(db, websocket.cookies.get(SESSION_COOKIE_NAME))
    if not user:
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason="Unauthorized")
        return

    await websocket.accept()
    channel = private_user_channel(user.id)
    send_lock = asyncio.Lock()

    async def send(event: str, payload: dict):
        async with send_lock:
            await websocket.send_json({"event": event, "data": payload})

    # 2. Subscribe this connection to the user's channel
    unsubscribe = await broker.subscribe(channel, send)
    logger.info(f"[Socket] User {user.id} connected on {channel}")
    await send("connected", {"userId": user.id, "channel": channel})

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                # frames are JSON text only
                await send("error", {"detail": "Binary frames are not supported"})
                continue
            await handle_frame(user, broker, raw, send)
    except WebSocketDisconnect:
        logger.info(f"[Socket] User {user.id} disconnected")
    finally:
        await unsubscribe()
