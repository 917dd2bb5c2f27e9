# backend/univendor/services/security_log_service.py
import logging
from typing import Optional
from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.db.database import AsyncSessionLocal
from univendor.db.models.security_log import SecurityLog
from univendor.db.models.user import User

logger = logging.getLogger(__name__)

# Events that also notify the account owner
NOTIFY_EVENTS = {
    "login_failed",
    "password_changed",
    "password_reset",
    "two_factor_disabled",
    "account_locked",
    "session_revoked",
}

ACTIVITY_DESCRIPTIONS = {
    "login": "Successful login to your account",
    "login_failed": "Failed login attempt to your account",
    "logout": "Logout from your account",
    "register": "Account created",
    "password_reset_requested": "Password reset link requested for your account",
    "password_reset": "Password reset for your account",
    "password_changed": "Password changed for your account",
    "email_verification_sent": "Email verification code sent",
    "email_verified": "Email address verified",
    "profile_updated": "Profile information updated for your account",
    "two_factor_setup_initiated": "Two-factor authentication setup started",
    "two_factor_enabled": "Two-factor authentication enabled for your account",
    "two_factor_disabled": "Two-factor authentication disabled for your account",
    "two_factor_challenge": "Two-factor authentication challenge completed",
    "two_factor_challenge_failed": "Failed two-factor authentication challenge",
    "account_locked": "Your account has been locked for security reasons",
    "session_revoked": "Session manually revoked for your account",
    "vendor_profile_updated": "Vendor profile updated",
    "admin_action": "Administrative action performed on your account",
    "rate_limit_exceeded": "Too many requests from your address",
    "api_error": "Server error while handling your request",
}


def get_activity_description(event_type: str) -> str:
    return ACTIVITY_DESCRIPTIONS.get(event_type, "Security activity on your account")


async def log_security_event(
    event_type: str,
    user_id: Optional[int] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    details: Optional[dict] = None,
):
    """
    Appends a row to security_logs.
    Runs in its own session so a failed request transaction cannot swallow the audit
    entry, and never raises into the caller.
    """
    async with AsyncSessionLocal() as db:
        try:
            db.add(SecurityLog(
                user_id=user_id,
                event_type=event_type,
                ip_address=ip_address,
                user_agent=user_agent,
                details=details,
            ))
            await db.commit()
        except Exception as e:
            logger.error(f"[SecurityLog] Failed to record {event_type} (User {user_id}): {e}")
            await db.rollback()
            return

        if event_type in NOTIFY_EVENTS and user_id:
            await send_security_notification(db, user_id, event_type, ip_address)


async def send_security_notification(db: AsyncSession, user_id: int, event_type: str, ip_address: Optional[str]):
    """No mail transport is wired up; the notification is written to the log."""
    try:
        user = await db.get(User, user_id)
    except Exception as e:
        logger.error(f"[SecurityLog] Notification lookup failed (User {user_id}): {e}")
        return
    if not user:
        return
    logger.info(
        f"[SecurityLog] Security notification for {user.email}: "
        f"{get_activity_description(event_type)} from {ip_address or 'unknown location'}"
    )


async def list_security_logs(db: AsyncSession, limit: int = 100, event_type: Optional[str] = None):
    stmt = select(SecurityLog).order_by(desc(SecurityLog.created_at), desc(SecurityLog.id)).limit(limit)
    if event_type:
        stmt = stmt.where(SecurityLog.event_type == event_type)
    result = await db.execute(stmt)
    return result.scalars().all()


def parse_user_agent(user_agent: Optional[str]) -> dict:
    """Rough browser/OS split for the sessions table."""
    if not user_agent:
        return {"browser": "Unknown", "os": "Unknown"}

    browser = "Unknown"
    if "Firefox" in user_agent:
        browser = "Firefox"
    elif "Edg" in user_agent:
        browser = "Edge"
    elif "Chrome" in user_agent:
        browser = "Chrome"
    elif "Safari" in user_agent:
        browser = "Safari"

    os_name = "Unknown"
    if "Windows" in user_agent:
        os_name = "Windows"
    elif "Android" in user_agent:
        os_name = "Android"
    elif "iPhone" in user_agent or "iPad" in user_agent:
        os_name = "iOS"
    elif "Mac OS" in user_agent:
        os_name = "macOS"
    elif "Linux" in user_agent:
        os_name = "Linux"

    return {"browser": browser, "os": os_name}
