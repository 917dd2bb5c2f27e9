from datetime import datetime, timedelta

import pytest

from univendor.db.models.user import ROLE_ADMIN
from univendor.services.analytics_service import average_response_minutes, calculate_security_risk


@pytest.fixture
def admin(make_user):
    return make_user("admin@campus.edu", first_name="Ada", role=ROLE_ADMIN)


def test_admin_routes_reject_regular_users(client, make_user):
    user = make_user("alice@campus.edu")
    assert client.get("/api/admin/users", headers=user.headers).status_code == 401
    assert client.get("/api/admin/analytics/messages").status_code == 401


def test_list_users_marks_vendors(client, admin, make_user):
    make_user("seller@campus.edu", vendor_name="Quad Coffee")
    users = client.get("/api/admin/users", headers=admin.headers).json()

    by_email = {u["email"]: u for u in users}
    assert by_email["seller@campus.edu"]["is_vendor"] is True
    assert by_email["admin@campus.edu"]["role"] == "admin"


def test_admin_actions(client, admin, make_user):
    user = make_user("alice@campus.edu")

    res = client.post(f"/api/admin/users/{user.id}/verify-email", headers=admin.headers)
    assert res.json()["success"] is True

    res = client.post(f"/api/admin/users/{user.id}/reset-password", headers=admin.headers)
    temporary = res.json()["message"].removeprefix("Password reset to: ")
    login = client.post("/api/auth/login", json={"email": "alice@campus.edu", "password": temporary})
    assert login.status_code == 200
    assert login.json()["user"]["email_verified"] is True
    client.cookies.clear()

    res = client.post(f"/api/admin/users/{user.id}/make-admin", headers=admin.headers)
    assert res.json()["success"] is True
    assert client.get("/api/admin/users", headers=user.headers).status_code == 200

    assert client.post(f"/api/admin/users/{user.id}/promote", headers=admin.headers).status_code == 400
    assert client.post("/api/admin/users/9999/verify-email", headers=admin.headers).status_code == 404

    logs = client.get("/api/admin/security-logs", params={"event_type": "admin_action"}, headers=admin.headers).json()
    assert len(logs["logs"]) == 5
    assert {log["details"]["action"] for log in logs["logs"]} >= {"verify-email", "reset-password", "make-admin"}


def test_deleting_user_removes_their_conversations(client, admin, make_user):
    customer = make_user("buyer@campus.edu")
    seller = make_user("seller@campus.edu", vendor_name="Quad Coffee")
    client.post(
        "/api/messages/send",
        json={"vendor_id": seller.vendor_id, "content": "hello"},
        headers=customer.headers,
    )
    assert client.get("/api/messages/unread-count", headers=seller.headers).json() == {"count": 1}

    res = client.post(f"/api/admin/users/{customer.id}/delete", headers=admin.headers)
    assert res.json() == {"success": True, "message": "User deleted"}

    assert client.get("/api/auth/me", headers=customer.headers).status_code == 401
    assert client.get("/api/messages/vendor/conversations", headers=seller.headers).json() == []
    assert client.get("/api/messages/unread-count", headers=seller.headers).json() == {"count": 0}
    # the vendor side is untouched
    assert client.get(f"/api/vendors/{seller.vendor_id}").status_code == 200


def test_message_analytics(client, admin, make_user):
    customer = make_user("buyer@campus.edu")
    seller = make_user("seller@campus.edu", vendor_name="Quad Coffee")
    conversation_id = client.post(
        "/api/messages/send",
        json={"vendor_id": seller.vendor_id, "content": "hello"},
        headers=customer.headers,
    ).json()["conversation_id"]
    client.post(
        "/api/messages/send",
        json={"conversation_id": conversation_id, "content": "hi!"},
        headers=seller.headers,
    )

    stats = client.get("/api/admin/analytics/messages", headers=admin.headers).json()
    assert stats["total_messages"] == 2
    assert stats["total_conversations"] == 1
    assert stats["active_conversations"] == 1
    assert stats["top_vendors"] == [{"vendor_id": seller.vendor_id, "business_name": "Quad Coffee", "message_count": 2}]
    assert stats["average_response_time"] == 0


def test_user_and_security_analytics(client, admin, make_user):
    make_user("alice@campus.edu", with_session=False)
    client.post("/api/auth/login", json={"email": "alice@campus.edu", "password": "wrong-password"})

    users = client.get("/api/admin/analytics/users", headers=admin.headers).json()
    assert users["total_users"] == 2
    assert {"role": "admin", "count": 1} in users["users_by_role"]

    security = client.get("/api/admin/analytics/security", headers=admin.headers).json()
    assert security["failed_logins"] == 1
    assert security["login_attempts"] == 1
    assert security["security_risk"] == "High"


@pytest.mark.parametrize(
    "failed, attempts, rate_limited, expected",
    [
        (0, 0, 0, "Low"),
        (1, 10, 0, "Low"),
        (2, 10, 0, "Medium"),
        (4, 10, 0, "High"),
        (0, 10, 6, "Medium"),
        (0, 10, 11, "High"),
    ],
)
def test_security_risk_thresholds(failed, attempts, rate_limited, expected):
    assert calculate_security_risk(failed, attempts, rate_limited) == expected


def test_average_response_minutes_pairs_first_reply():
    start = datetime(2024, 3, 15, 9, 0)
    rows = [
        ("user_vendor", 1, 10, start),
        # a follow-up from the same sender is not a reply
        ("user_vendor", 1, 10, start + timedelta(minutes=1)),
        ("user_vendor", 1, 20, start + timedelta(minutes=10)),
        ("user_user", 1, 30, start),
        ("user_user", 1, 40, start + timedelta(minutes=20)),
    ]
    # 10 and 9 minutes in the vendor thread, 20 in the peer thread
    assert average_response_minutes(rows) == 13
    assert average_response_minutes([]) == 0


def test_admin_panel_requires_login(client):
    res = client.get("/admin/", follow_redirects=False)
    assert res.status_code in (302, 303)
    assert "login" in res.headers["location"]
