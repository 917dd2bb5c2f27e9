# backend/univendor/services/account_recovery_service.py
import logging
import os
import secrets
from datetime import timedelta
from typing import Optional
from dotenv import load_dotenv
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.core.security import get_password_hash
from univendor.db.models.base import get_utc_now
from univendor.db.models.password_reset import PasswordReset
from univendor.db.models.user import User
from univendor.services import session_service
from univendor.services.user_service import get_user_by_email

load_dotenv()

logger = logging.getLogger(__name__)

APP_URL = os.getenv("APP_URL", "http://localhost:3000")
PASSWORD_RESET_EXPIRY = timedelta(hours=1)
EMAIL_VERIFICATION_EXPIRY = timedelta(hours=1)


def send_email(to: str, subject: str, body: str):
    """No mail transport is wired up; outgoing mail is written to the log."""
    logger.info(f"[Mail] To {to}: {subject}\n{body}")


def generate_verification_code() -> str:
    return f"{secrets.randbelow(10**6):06d}"


# --- Password reset ---

async def request_password_reset(db: AsyncSession, email: str) -> Optional[User]:
    """
    Stores a one-hour reset token and mails the link.
    Returns None for unknown emails; callers answer the same way either way.
    """
    user = await get_user_by_email(db, email)
    if not user or not user.is_active:
        return None

    token = secrets.token_hex(32)
    db.add(PasswordReset(user_id=user.id, token=token, expires_at=get_utc_now() + PASSWORD_RESET_EXPIRY))
    await db.commit()

    send_email(
        user.email,
        "Reset your password",
        f"Set a new password here: {APP_URL}/auth/new-password?token={token}\n"
        "This link expires in 1 hour. If you didn't request it, ignore this email.",
    )
    logger.info(f"[Auth] Password reset requested for User {user.id}")
    return user


async def reset_password(db: AsyncSession, token: str, new_password: str) -> User:
    """Redeems a reset token once, sets the password and signs out every device."""
    result = await db.execute(
        select(PasswordReset).where(
            PasswordReset.token == token,
            PasswordReset.used_at.is_(None),
            PasswordReset.expires_at > get_utc_now(),
        )
    )
    reset = result.scalar_one_or_none()
    if not reset:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user = await db.get(User, reset.user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user.password_hash = get_password_hash(new_password)
    reset.used_at = get_utc_now()
    await db.commit()

    await session_service.delete_all_sessions(db, user.id)
    logger.info(f"[Auth] Password reset completed for User {user.id}")
    return user


# --- Email verification ---

async def send_email_verification(db: AsyncSession, user: User):
    if user.email_verified:
        raise HTTPException(status_code=400, detail="Email already verified")

    code = generate_verification_code()
    user.email_verification_code = code
    user.email_verification_expires = get_utc_now() + EMAIL_VERIFICATION_EXPIRY
    await db.commit()

    send_email(user.email, "Verify your email", f"Your UniVendor verification code is {code}. It expires in 1 hour.")


async def verify_email(db: AsyncSession, user: User, code: str):
    if not user.email_verification_code:
        raise HTTPException(status_code=400, detail="No verification code found")
    if user.email_verification_expires is None or user.email_verification_expires < get_utc_now():
        raise HTTPException(status_code=400, detail="Verification code expired")
    if not secrets.compare_digest(user.email_verification_code, code.strip()):
        raise HTTPException(status_code=400, detail="Invalid verification code")

    user.email_verified = True
    user.email_verification_code = None
    user.email_verification_expires = None
    await db.commit()
