import asyncio
import json
import logging

import pytest
from fastapi import HTTPException
from starlette.websockets import WebSocketDisconnect

from univendor.db.database_redis import RedisManager
from univendor.db.models.message import Message
from univendor.db.models.user import User
from univendor.realtime.broker import LocalBroker, RedisBroker, create_broker
from univendor.realtime.channels import (
    can_subscribe,
    parse_private_user_channel,
    private_user_channel,
    sign_channel_auth,
    verify_channel_auth,
)
from univendor.services import conversation_service, message_service, relay_service


# --- broker ---

async def test_local_broker_fans_out_and_unsubscribes():
    broker = LocalBroker()
    received = []

    async def first(event, payload):
        received.append(("first", event, payload))

    async def second(event, payload):
        received.append(("second", event, payload))

    unsubscribe_first = await broker.subscribe("private-user-1", first)
    await broker.subscribe("private-user-1", second)

    assert await broker.publish("private-user-1", "typing", {"isTyping": True}) == 2
    assert await broker.publish("private-user-2", "typing", {}) == 0

    await unsubscribe_first()
    assert await broker.publish("private-user-1", "typing", {"isTyping": False}) == 1
    assert received[-1] == ("second", "typing", {"isTyping": False})
    assert broker.subscriber_count("private-user-1") == 1


async def test_local_broker_survives_failing_handler():
    broker = LocalBroker()

    async def broken(event, payload):
        raise RuntimeError("socket gone")

    await broker.subscribe("private-user-1", broken)
    assert await broker.publish("private-user-1", "message", {}) == 0


class FakePubSub:
    """Stands in for a redis.asyncio PubSub: replays frames, then blocks or fails."""

    def __init__(self, frames=(), error=None):
        self.frames = list(frames)
        self.error = error
        self.subscribed = []
        self.unsubscribed = []
        self.closed = False

    async def subscribe(self, channel):
        self.subscribed.append(channel)

    async def unsubscribe(self, channel):
        self.unsubscribed.append(channel)

    async def aclose(self):
        self.closed = True

    async def listen(self):
        for frame in self.frames:
            yield frame
        if self.error:
            raise self.error
        await asyncio.Event().wait()


async def _settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


async def test_redis_broker_publishes_envelope(monkeypatch):
    published = []

    async def fake_publish_json(channel, payload):
        published.append((channel, payload))
        return 3

    monkeypatch.setattr(RedisManager, "publish_json", fake_publish_json)

    receivers = await RedisBroker().publish("private-user-9", "typing", {"isTyping": True})

    assert receivers == 3
    assert published == [("private-user-9", {"event": "typing", "data": {"isTyping": True}})]


async def test_redis_broker_dispatches_frames_and_skips_malformed(monkeypatch):
    pubsub = FakePubSub(frames=[
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": "not json"},
        {"type": "message", "data": json.dumps({"event": "typing", "data": {"isTyping": True}})},
        {"type": "message", "data": json.dumps({"event": "message"})},
    ])
    monkeypatch.setattr(RedisManager, "pubsub", lambda: pubsub)
    received = []

    async def on_event(event, payload):
        received.append((event, payload))

    unsubscribe = await RedisBroker().subscribe("private-user-9", on_event)
    await _settle()

    assert pubsub.subscribed == ["private-user-9"]
    assert received == [("typing", {"isTyping": True}), ("message", {})]

    await unsubscribe()
    assert pubsub.unsubscribed == ["private-user-9"]
    assert pubsub.closed is True


async def test_redis_broker_closes_after_reader_died(monkeypatch, caplog):
    pubsub = FakePubSub(error=ConnectionError("redis went away"))
    monkeypatch.setattr(RedisManager, "pubsub", lambda: pubsub)

    async def on_event(event, payload):
        pass

    unsubscribe = await RedisBroker().subscribe("private-user-9", on_event)
    await _settle()

    with caplog.at_level(logging.WARNING, logger="univendor.realtime.broker"):
        await unsubscribe()

    assert pubsub.closed is True
    assert "already died" in caplog.text


async def test_redis_broker_closes_when_unsubscribe_fails(monkeypatch):
    pubsub = FakePubSub()

    async def broken_unsubscribe(channel):
        raise ConnectionError("redis went away")

    pubsub.unsubscribe = broken_unsubscribe
    monkeypatch.setattr(RedisManager, "pubsub", lambda: pubsub)

    async def on_event(event, payload):
        pass

    unsubscribe = await RedisBroker().subscribe("private-user-9", on_event)
    await unsubscribe()
    assert pubsub.closed is True


def test_create_broker_selects_backend():
    assert isinstance(create_broker("local"), LocalBroker)
    assert isinstance(create_broker("redis"), RedisBroker)
    with pytest.raises(ValueError):
        create_broker("carrier-pigeon")


# --- channels ---

def test_private_channel_names():
    assert private_user_channel(42) == "private-user-42"
    assert parse_private_user_channel("private-user-42") == 42
    assert parse_private_user_channel("presence-user-42") is None
    assert parse_private_user_channel("private-user-abc") is None
    assert can_subscribe(42, "private-user-42") is True
    assert can_subscribe(41, "private-user-42") is False


def test_channel_auth_signature():
    auth = sign_channel_auth("123.456", "private-user-7")
    key, _, signature = auth.partition(":")
    assert key and len(signature) == 64
    assert verify_channel_auth("123.456", "private-user-7", auth) is True
    assert verify_channel_auth("123.456", "private-user-8", auth) is False


# --- relay service ---

@pytest.fixture
async def peers(db, create_user):
    alice = await create_user("alice@campus.edu", first_name="Alice", with_session=False)
    bob = await create_user("bob@campus.edu", first_name="Bob", with_session=False)
    conversation = await conversation_service.resolve_user_conversation(db, alice.id, bob.id)
    return alice, bob, conversation


async def _user(db, stub):
    return await db.get(User, stub.id)


async def test_message_is_delivered_even_without_listeners(db, peers):
    alice, bob, conversation = peers
    message = await message_service.write_message(db, conversation, alice.id, "hello")
    broker = LocalBroker()

    result = await relay_service.deliver_message(
        db, broker, await _user(db, alice),
        {"id": message.id, "conversationId": conversation.id, "conversationType": "user_user"},
    )

    assert result == {"success": True, "message_id": message.id, "recipient_id": bob.id, "receivers": 0}
    stored = await db.get(Message, message.id)
    await db.refresh(stored)
    assert stored.status == "delivered"


async def test_deliver_pushes_message_and_notification_to_recipient(db, peers):
    alice, bob, conversation = peers
    broker = LocalBroker()
    received = []

    async def on_event(event, payload):
        received.append((event, payload))

    await broker.subscribe(private_user_channel(bob.id), on_event)

    # content without an id writes the message first
    result = await relay_service.deliver_message(
        db, broker, await _user(db, alice),
        {"conversationId": conversation.id, "conversationType": "user_user", "content": "lunch?"},
    )

    assert result["receivers"] == 1
    assert [event for event, _ in received] == ["message", "notification"]
    message_payload = received[0][1]
    assert message_payload["conversationId"] == conversation.id
    assert message_payload["senderId"] == alice.id
    assert message_payload["senderName"] == "Alice User"
    assert message_payload["content"] == "lunch?"
    assert received[1][1]["preview"] == "lunch?"


async def test_only_sender_can_deliver(db, peers):
    alice, bob, conversation = peers
    message = await message_service.write_message(db, conversation, alice.id, "hello")

    with pytest.raises(HTTPException) as exc:
        await relay_service.deliver_message(
            db, LocalBroker(), await _user(db, bob),
            {"id": message.id, "conversationId": conversation.id, "conversationType": "user_user"},
        )
    assert exc.value.status_code == 403


async def test_typing_is_relayed_and_not_stored(db, peers):
    alice, bob, conversation = peers
    broker = LocalBroker()
    received = []

    async def on_event(event, payload):
        received.append((event, payload))

    await broker.subscribe(private_user_channel(bob.id), on_event)
    await relay_service.set_typing(
        db, broker, await _user(db, alice),
        {"conversationId": conversation.id, "conversationType": "user_user", "isTyping": True},
    )

    assert received == [("typing", {
        "conversationId": conversation.id,
        "conversationType": "user_user",
        "userId": alice.id,
        "isTyping": True,
    })]
    assert await message_service.get_messages(db, conversation) == []


async def test_typing_flag_must_be_boolean(db, peers):
    alice, bob, conversation = peers
    broker = LocalBroker()
    received = []

    async def on_event(event, payload):
        received.append(payload)

    await broker.subscribe(private_user_channel(bob.id), on_event)

    with pytest.raises(HTTPException) as exc:
        await relay_service.set_typing(
            db, broker, await _user(db, alice),
            {"conversationId": conversation.id, "conversationType": "user_user", "isTyping": "false"},
        )
    assert exc.value.status_code == 400
    assert received == []


async def test_read_receipt_goes_back_to_sender(db, peers):
    alice, bob, conversation = peers
    message = await message_service.write_message(db, conversation, alice.id, "hello")
    broker = LocalBroker()
    received = []

    async def on_event(event, payload):
        received.append((event, payload))

    await broker.subscribe(private_user_channel(alice.id), on_event)
    result = await relay_service.mark_read(db, broker, await _user(db, bob), {"messageId": message.id})

    assert result == {"success": True, "updated": True}
    event, payload = received[0]
    assert event == "read_receipt"
    assert payload["messageId"] == message.id
    assert payload["readBy"] == bob.id

    with pytest.raises(HTTPException) as exc:
        await relay_service.mark_read(db, broker, await _user(db, alice), {"messageId": message.id})
    assert exc.value.status_code == 403


async def test_publish_failure_does_not_block_status(db, peers):
    alice, _, conversation = peers
    message = await message_service.write_message(db, conversation, alice.id, "hello")

    class DownBroker(LocalBroker):
        async def publish(self, channel, event, payload):
            raise ConnectionError("redis unreachable")

    result = await relay_service.deliver_message(
        db, DownBroker(), await _user(db, alice),
        {"id": message.id, "conversationId": conversation.id, "conversationType": "user_user"},
    )
    assert result["receivers"] == 0
    stored = await db.get(Message, message.id)
    await db.refresh(stored)
    assert stored.status == "delivered"


async def test_dispatch_rejects_unknown_events(db, peers):
    alice, _, _ = peers
    user = await _user(db, alice)

    with pytest.raises(HTTPException) as exc:
        await relay_service.dispatch(db, LocalBroker(), user, "shout", {})
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        await relay_service.dispatch(db, LocalBroker(), user, "typing", ["not", "a", "dict"])
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        await relay_service.dispatch(db, LocalBroker(), user, "typing", {"conversationId": "abc"})
    assert exc.value.status_code == 400


# --- HTTP trampoline and socket ---

def test_trampoline_requires_session(client):
    res = client.post("/api/socketio", json={"event": "typing", "data": {"conversationId": 1}})
    assert res.status_code == 401


def test_trampoline_rejects_outsiders(client, make_user):
    alice = make_user("alice@campus.edu")
    bob = make_user("bob@campus.edu")
    outsider = make_user("nosy@campus.edu")
    conversation_id = client.post(
        "/api/messages/conversations/create",
        json={"recipient_id": bob.id, "recipient_type": "user", "message": "hi"},
        headers=alice.headers,
    ).json()["conversation_id"]

    res = client.post(
        "/api/socketio",
        json={"event": "typing", "data": {"conversationId": conversation_id, "conversationType": "user_user"}},
        headers=outsider.headers,
    )
    assert res.status_code == 404


def test_socket_receives_message_and_read_receipt(client, make_user):
    customer = make_user("buyer@campus.edu", first_name="Alice")
    seller = make_user("seller@campus.edu", vendor_name="Quad Coffee")

    with client.websocket_connect("/api/socket", headers=seller.headers) as seller_socket:
        hello = seller_socket.receive_json()
        assert hello == {
            "event": "connected",
            "data": {"userId": seller.id, "channel": private_user_channel(seller.id)},
        }

        sent = client.post(
            "/api/messages/send",
            json={"vendor_id": seller.vendor_id, "content": "Two lattes please"},
            headers=customer.headers,
        ).json()
        res = client.post(
            "/api/socketio",
            json={"event": "message", "data": {"id": sent["message"]["id"], "conversationId": sent["conversation_id"]}},
            headers=customer.headers,
        )
        assert res.json()["receivers"] == 1

        frame = seller_socket.receive_json()
        assert frame["event"] == "message"
        assert frame["data"]["content"] == "Two lattes please"
        assert frame["data"]["senderId"] == customer.id
        assert seller_socket.receive_json()["event"] == "notification"

        with client.websocket_connect("/api/socket", headers=customer.headers) as customer_socket:
            customer_socket.receive_json()

            # the seller marks it read over the socket itself
            seller_socket.send_json({"event": "read_receipt", "data": {"messageId": sent["message"]["id"]}})
            receipt = customer_socket.receive_json()
            assert receipt["event"] == "read_receipt"
            assert receipt["data"]["messageId"] == sent["message"]["id"]
            assert receipt["data"]["readBy"] == seller.id

            ack = seller_socket.receive_json()
            assert ack["event"] == "ack"
            assert ack["data"]["updated"] is True


def test_socket_ping_and_bad_frames(client, make_user):
    user = make_user("alice@campus.edu")

    with client.websocket_connect("/api/socket", headers=user.headers) as socket:
        socket.receive_json()

        socket.send_json({"event": "ping"})
        assert socket.receive_json() == {"event": "pong", "data": {}}

        socket.send_text("not json")
        assert socket.receive_json()["event"] == "error"

        socket.send_json({"event": "shout", "data": {}})
        error = socket.receive_json()
        assert error["event"] == "error"
        assert error["data"]["status"] == 400


def test_socket_answers_binary_frames_with_error(client, make_user):
    user = make_user("alice@campus.edu")

    with client.websocket_connect("/api/socket", headers=user.headers) as socket:
        socket.receive_json()

        socket.send_bytes(b'{"event":"ping","data":{}}')
        error = socket.receive_json()
        assert error["event"] == "error"
        assert "Binary" in error["data"]["detail"]

        # the connection stays usable
        socket.send_json({"event": "ping"})
        assert socket.receive_json() == {"event": "pong", "data": {}}


def test_socket_rejects_missing_session(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/api/socket") as socket:
            socket.receive_json()
    assert exc.value.code == 4001


def test_channel_auth_endpoint(client, make_user):
    user = make_user("alice@campus.edu")

    res = client.post(
        "/api/realtime/auth",
        json={"socket_id": "1.2", "channel_name": private_user_channel(user.id)},
        headers=user.headers,
    )
    assert res.status_code == 200
    assert verify_channel_auth("1.2", private_user_channel(user.id), res.json()["auth"])

    res = client.post(
        "/api/realtime/auth",
        json={"socket_id": "1.2", "channel_name": private_user_channel(user.id + 1)},
        headers=user.headers,
    )
    assert res.status_code == 403

    res = client.post(
        "/api/realtime/auth",
        json={"socket_id": "1.2", "channel_name": "public-lobby"},
        headers=user.headers,
    )
    assert res.status_code == 400


def test_messaging_config(client, make_user):
    user = make_user("alice@campus.edu")
    config = client.get("/api/messaging/config", headers=user.headers).json()
    assert config["backend"] == "local"
    assert config["channel"] == f"private-user-{user.id}"
    assert config["socket_path"] == "/api/socket"
