# backend/univendor/services/analytics_service.py
"""
Admin dashboard numbers.

Counts run in SQL; date bucketing and response-time pairing are done in Python
so the same code works on PostgreSQL and SQLite.
"""
from collections import Counter, defaultdict
from datetime import timedelta
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.db.models.base import get_utc_now
from univendor.db.models.conversation import Conversation, UserConversation, CONVERSATION_USER_VENDOR
from univendor.db.models.message import Message
from univendor.db.models.security_log import SecurityLog
from univendor.db.models.user import User
from univendor.db.models.vendor import Vendor

RECENT_DAYS = 30
ACTIVE_DAYS = 7
GROWTH_MONTHS = 12
TOP_VENDOR_LIMIT = 5
TOP_COUNTRY_LIMIT = 10


def calculate_security_risk(failed_logins: int, login_attempts: int, rate_limit_events: int) -> str:
    failure_rate = failed_logins / login_attempts if login_attempts > 0 else 0

    if rate_limit_events > 10 or failure_rate > 0.3:
        return "High"
    if rate_limit_events > 5 or failure_rate > 0.15:
        return "Medium"
    return "Low"


def _bucket(values, fmt: str) -> list[dict]:
    counts = Counter(v.strftime(fmt) for v in values if v is not None)
    return [{"period": period, "count": counts[period]} for period in sorted(counts)]


async def _count(db: AsyncSession, stmt) -> int:
    return (await db.execute(stmt)).scalar_one() or 0


async def get_user_analytics(db: AsyncSession) -> dict:
    now = get_utc_now()

    total_users = await _count(db, select(func.count(User.id)))
    new_users = await _count(db, select(func.count(User.id)).where(User.created_at > now - timedelta(days=RECENT_DAYS)))
    verified = await _count(db, select(func.count(User.id)).where(User.email_verified.is_(True)))
    two_factor_users = await _count(db, select(func.count(User.id)).where(User.two_factor_enabled.is_(True)))

    by_role = (await db.execute(select(User.role, func.count(User.id)).group_by(User.role))).all()

    growth_since = now - timedelta(days=GROWTH_MONTHS * 31)
    created = (await db.execute(select(User.created_at).where(User.created_at > growth_since))).scalars().all()

    return {
        "total_users": total_users,
        "new_users": new_users,
        "users_by_role": [{"role": role, "count": count} for role, count in by_role],
        "verified_users": verified,
        "unverified_users": total_users - verified,
        "two_factor_users": two_factor_users,
        "user_growth": _bucket(created, "%Y-%m"),
    }


async def get_security_analytics(db: AsyncSession) -> dict:
    since = get_utc_now() - timedelta(days=RECENT_DAYS)
    rows = (await db.execute(
        select(SecurityLog.event_type, SecurityLog.details, SecurityLog.created_at)
        .where(SecurityLog.created_at > since)
    )).all()

    by_type = Counter(row.event_type for row in rows)
    by_country = Counter((row.details or {}).get("country") or "Unknown" for row in rows)

    failed_logins = by_type.get("login_failed", 0)
    # every login attempt ends as either a success or a failure event
    login_attempts = by_type.get("login", 0) + failed_logins
    rate_limit_exceeded = by_type.get("rate_limit_exceeded", 0)

    return {
        "login_attempts": login_attempts,
        "failed_logins": failed_logins,
        "rate_limit_exceeded": rate_limit_exceeded,
        "security_risk": calculate_security_risk(failed_logins, login_attempts, rate_limit_exceeded),
        "events_by_type": [{"event_type": t, "count": c} for t, c in by_type.most_common()],
        "events_by_country": [{"country": k, "count": c} for k, c in by_country.most_common(TOP_COUNTRY_LIMIT)],
        "events_over_time": _bucket([row.created_at for row in rows], "%Y-%m-%d"),
    }


def average_response_minutes(messages) -> int:
    """
    Mean delay between a message and the first later reply from the other
    party in the same thread, in whole minutes.
    `messages` are (conversation_type, conversation_id, sender_id, created_at) rows.
    """
    threads = defaultdict(list)
    for conversation_type, conversation_id, sender_id, created_at in messages:
        threads[(conversation_type, conversation_id)].append((created_at, sender_id))

    delays = []
    for thread in threads.values():
        thread.sort(key=lambda item: item[0])
        for index, (sent_at, sender_id) in enumerate(thread):
            for later_at, later_sender in thread[index + 1:]:
                if later_sender != sender_id and later_at > sent_at:
                    delays.append((later_at - sent_at).total_seconds())
                    break

    if not delays:
        return 0
    return round(sum(delays) / len(delays) / 60)


async def get_message_analytics(db: AsyncSession) -> dict:
    now = get_utc_now()
    since = now - timedelta(days=RECENT_DAYS)

    total_messages = await _count(db, select(func.count(Message.id)))
    total_conversations = (
        await _count(db, select(func.count(Conversation.id)))
        + await _count(db, select(func.count(UserConversation.id)))
    )

    recent = (await db.execute(
        select(Message.conversation_type, Message.conversation_id, Message.sender_id, Message.created_at)
        .where(Message.created_at > since)
    )).all()

    active_since = now - timedelta(days=ACTIVE_DAYS)
    active_conversations = len({
        (row.conversation_type, row.conversation_id) for row in recent if row.created_at > active_since
    })

    top_vendors = (await db.execute(
        select(Vendor.id, Vendor.business_name, func.count(Message.id).label("message_count"))
        .join(Conversation, Conversation.vendor_id == Vendor.id)
        .join(
            Message,
            (Message.conversation_id == Conversation.id)
            & (Message.conversation_type == CONVERSATION_USER_VENDOR),
        )
        .where(Message.created_at > since)
        .group_by(Vendor.id, Vendor.business_name)
        .order_by(func.count(Message.id).desc())
        .limit(TOP_VENDOR_LIMIT)
    )).all()

    return {
        "total_messages": total_messages,
        "recent_messages": len(recent),
        "total_conversations": total_conversations,
        "active_conversations": active_conversations,
        "messages_per_day": _bucket([row.created_at for row in recent], "%Y-%m-%d"),
        "top_vendors": [
            {"vendor_id": vendor_id, "business_name": name, "message_count": count}
            for vendor_id, name, count in top_vendors
        ],
        "average_response_time": average_response_minutes(recent),
    }
