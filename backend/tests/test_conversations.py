import asyncio

import pytest
from fastapi import HTTPException
from sqlalchemy import select, func

from univendor.db.database import AsyncSessionLocal
from univendor.db.models.conversation import Conversation, UserConversation
from univendor.services import conversation_service


# --- resolver ---

async def test_resolve_vendor_conversation_is_idempotent(db, create_user):
    customer = await create_user("buyer@campus.edu", with_session=False)
    seller = await create_user("seller@campus.edu", vendor_name="Quad Coffee", with_session=False)

    first = await conversation_service.resolve_vendor_conversation(db, customer.id, seller.vendor_id)
    second = await conversation_service.resolve_vendor_conversation(db, customer.id, seller.vendor_id)

    assert first.id == second.id
    count = (await db.execute(select(func.count(Conversation.id)))).scalar_one()
    assert count == 1


async def test_concurrent_first_contact_converges_on_one_row(create_user):
    customer = await create_user("buyer@campus.edu", with_session=False)
    seller = await create_user("seller@campus.edu", vendor_name="Quad Coffee", with_session=False)

    async def resolve():
        async with AsyncSessionLocal() as session:
            conversation = await conversation_service.resolve_vendor_conversation(
                session, customer.id, seller.vendor_id
            )
            return conversation.id

    ids = await asyncio.gather(*(resolve() for _ in range(5)))
    assert len(set(ids)) == 1

    async with AsyncSessionLocal() as session:
        count = (await session.execute(select(func.count(Conversation.id)))).scalar_one()
    assert count == 1


async def test_user_pair_is_order_independent(db, create_user):
    alice = await create_user("alice@campus.edu", with_session=False)
    bob = await create_user("bob@campus.edu", with_session=False)

    forward = await conversation_service.resolve_user_conversation(db, alice.id, bob.id)
    backward = await conversation_service.resolve_user_conversation(db, bob.id, alice.id)

    assert forward.id == backward.id
    assert forward.user1_id == min(alice.id, bob.id)
    assert forward.user2_id == max(alice.id, bob.id)
    count = (await db.execute(select(func.count(UserConversation.id)))).scalar_one()
    assert count == 1


async def test_cannot_message_yourself(db, create_user):
    seller = await create_user("seller@campus.edu", vendor_name="Quad Coffee", with_session=False)

    with pytest.raises(HTTPException) as exc:
        await conversation_service.resolve_vendor_conversation(db, seller.id, seller.vendor_id)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        await conversation_service.resolve_user_conversation(db, seller.id, seller.id)
    assert exc.value.status_code == 400


async def test_unknown_counterpart_is_404(db, create_user):
    customer = await create_user("buyer@campus.edu", with_session=False)

    with pytest.raises(HTTPException) as exc:
        await conversation_service.resolve_vendor_conversation(db, customer.id, 9999)
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        await conversation_service.resolve_user_conversation(db, customer.id, 9999)
    assert exc.value.status_code == 404


async def test_participants_of_vendor_thread_use_owner_user(db, create_user):
    customer = await create_user("buyer@campus.edu", with_session=False)
    seller = await create_user("seller@campus.edu", vendor_name="Quad Coffee", with_session=False)

    conversation = await conversation_service.resolve_vendor_conversation(db, customer.id, seller.vendor_id)
    participants = await conversation_service.get_participant_ids(db, conversation)

    assert participants == (customer.id, seller.id)
    assert conversation_service.counterpart_of(participants, customer.id) == seller.id
    assert conversation_service.counterpart_of(participants, seller.id) == customer.id


async def test_outsider_gets_404_not_403(db, create_user):
    customer = await create_user("buyer@campus.edu", with_session=False)
    seller = await create_user("seller@campus.edu", vendor_name="Quad Coffee", with_session=False)
    outsider = await create_user("nosy@campus.edu", with_session=False)
    conversation = await conversation_service.resolve_vendor_conversation(db, customer.id, seller.vendor_id)

    with pytest.raises(HTTPException) as exc:
        await conversation_service.get_conversation_for_participant(
            db, conversation.id, "user_vendor", outsider.id
        )
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        await conversation_service.get_conversation_for_participant(db, conversation.id, "group", customer.id)
    assert exc.value.status_code == 400


# --- HTTP ---

def test_first_contact_creates_conversation_and_message(client, make_user):
    customer = make_user("buyer@campus.edu", first_name="Alice")
    seller = make_user("seller@campus.edu", vendor_name="Quad Coffee")

    res = client.post(
        "/api/messages/conversations/create",
        json={"recipient_id": seller.vendor_id, "recipient_type": "vendor", "message": "Hi, open today?"},
        headers=customer.headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["conversation_type"] == "user_vendor"

    # a second first-contact reuses the same thread
    again = client.post(
        "/api/messages/conversations/create",
        json={"recipient_id": seller.vendor_id, "recipient_type": "vendor", "message": "Hello?"},
        headers=customer.headers,
    )
    assert again.json()["conversation_id"] == body["conversation_id"]

    summaries = client.get("/api/messages/conversations", headers=customer.headers).json()
    assert len(summaries) == 1
    assert summaries[0]["name"] == "Quad Coffee"
    assert summaries[0]["last_message"] == "Hello?"
    # own messages never count as unread
    assert summaries[0]["unread"] is False

    inbox = client.get("/api/messages/vendor/conversations", headers=seller.headers).json()
    assert len(inbox) == 1
    assert inbox[0]["user_name"] == "Alice User"
    assert inbox[0]["unread"] is True


def test_peer_conversation_lists_for_both_sides(client, make_user):
    alice = make_user("alice@campus.edu", first_name="Alice", last_name="Ng")
    bob = make_user("bob@campus.edu", first_name="Bob", last_name="Ray")

    res = client.post(
        "/api/messages/conversations/create",
        json={"recipient_id": bob.id, "recipient_type": "user", "message": "Selling my textbook"},
        headers=alice.headers,
    )
    assert res.status_code == 200
    conversation_id = res.json()["conversation_id"]

    bob_view = client.get("/api/messages/conversations", headers=bob.headers).json()
    assert [c["id"] for c in bob_view] == [conversation_id]
    assert bob_view[0]["name"] == "Alice Ng"
    assert bob_view[0]["conversation_type"] == "user_user"
    assert bob_view[0]["unread"] is True

    detail = client.get(
        f"/api/messages/conversations/{conversation_id}", params={"type": "user_user"}, headers=bob.headers
    ).json()
    assert detail["counterpart"]["user_id"] == alice.id


def test_vendor_inbox_requires_vendor(client, make_user):
    customer = make_user("buyer@campus.edu")
    res = client.get("/api/messages/vendor/conversations", headers=customer.headers)
    assert res.status_code == 403


def test_conversation_routes_require_session(client):
    assert client.get("/api/messages/conversations").status_code == 401
    assert client.get("/api/messages/unread-count").status_code == 401
