# backend/univendor/services/session_service.py
from univendor.db.models.base import get_utc_now
from typing import Optional
from sqlalchemy import select, delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.db.models.session import UserSession
from univendor.db.models.user import User
from univendor.core.security import generate_session_token, session_expiry
from univendor.services.security_log_service import parse_user_agent


async def create_session(db: AsyncSession, user_id: int, ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> UserSession:
    new_session = UserSession(
        user_id=user_id,
        token=generate_session_token(),
        ip_address=ip_address,
        user_agent=user_agent,
        expires_at=session_expiry(),
    )
    db.add(new_session)
    await db.commit()
    await db.refresh(new_session)
    return new_session


async def get_valid_session(db: AsyncSession, token: Optional[str]) -> Optional[UserSession]:
    """Session row for a non-expired token, else None."""
    if not token:
        return None
    stmt = select(UserSession).where(
        UserSession.token == token,
        UserSession.expires_at > get_utc_now(),
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def resolve_user(db: AsyncSession, token: Optional[str], touch: bool = True) -> Optional[User]:
    """
    Maps a session token to its active user and refreshes last_active.
    Returns None for unknown/expired tokens and deactivated users.
    """
    session = await get_valid_session(db, token)
    if not session:
        return None

    user = await db.get(User, session.user_id)
    if not user or not user.is_active:
        return None

    if touch:
        await db.execute(
            update(UserSession)
            .where(UserSession.id == session.id)
            .values(last_active=get_utc_now())
        )
        await db.commit()
    return user


async def delete_session_by_token(db: AsyncSession, token: str):
    await db.execute(delete(UserSession).where(UserSession.token == token))
    await db.commit()


async def list_active_sessions(db: AsyncSession, user_id: int, current_token: Optional[str] = None) -> list[dict]:
    stmt = (
        select(UserSession)
        .where(UserSession.user_id == user_id, UserSession.expires_at > get_utc_now())
        .order_by(UserSession.last_active.desc())
    )
    result = await db.execute(stmt)
    sessions = result.scalars().all()

    # tokens are never echoed back; the client only needs to know which row is "this device"
    return [
        {
            "id": s.id,
            "ip_address": s.ip_address,
            "user_agent": s.user_agent,
            **parse_user_agent(s.user_agent),
            "created_at": s.created_at,
            "last_active": s.last_active,
            "expires_at": s.expires_at,
            "is_current": s.token == current_token,
        }
        for s in sessions
    ]


async def delete_other_sessions(db: AsyncSession, user_id: int, keep_token: str) -> int:
    result = await db.execute(
        delete(UserSession).where(UserSession.user_id == user_id, UserSession.token != keep_token)
    )
    await db.commit()
    return result.rowcount


async def delete_all_sessions(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(delete(UserSession).where(UserSession.user_id == user_id))
    await db.commit()
    return result.rowcount
