# backend/univendor/services/two_factor_service.py
import logging
import secrets
from typing import Optional
import pyotp
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.db.models.user import User

logger = logging.getLogger(__name__)

ISSUER_NAME = "UniVendor"
BACKUP_CODE_COUNT = 10
# accept one step of clock drift either side
VALID_WINDOW = 1


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    """Eight hex characters grouped as XXXX-XXXX."""
    codes = []
    for _ in range(count):
        raw = secrets.token_hex(4).upper()
        codes.append(f"{raw[:4]}-{raw[4:]}")
    return codes


def verify_totp(secret: Optional[str], token: str) -> bool:
    if not secret or not token:
        return False
    return pyotp.TOTP(secret).verify(token.strip().replace(" ", ""), valid_window=VALID_WINDOW)


def get_status(user: User) -> dict:
    return {
        "enabled": user.two_factor_enabled,
        "backup_codes_remaining": len(user.two_factor_backup_codes or []),
    }


async def setup(db: AsyncSession, user: User) -> dict:
    """
    Generates a fresh secret kept in two_factor_temp_secret until `enable`
    proves the authenticator app has it.
    """
    if user.two_factor_enabled:
        raise HTTPException(status_code=400, detail="Two-factor authentication is already enabled")

    secret = pyotp.random_base32()
    user.two_factor_temp_secret = secret
    await db.commit()

    otpauth_url = pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=ISSUER_NAME)
    return {"secret": secret, "otpauth_url": otpauth_url}


async def enable(db: AsyncSession, user: User, token: str) -> list[str]:
    if not user.two_factor_temp_secret:
        raise HTTPException(status_code=400, detail="Two-factor setup has not been started")
    if not verify_totp(user.two_factor_temp_secret, token):
        raise HTTPException(status_code=400, detail="Invalid verification code")

    backup_codes = generate_backup_codes()
    user.two_factor_secret = user.two_factor_temp_secret
    user.two_factor_temp_secret = None
    user.two_factor_enabled = True
    user.two_factor_backup_codes = backup_codes
    await db.commit()
    logger.info(f"[2FA] Enabled for User {user.id}")
    return backup_codes


async def verify_challenge(db: AsyncSession, user: User, token: str) -> bool:
    """
    Checks a login challenge. A backup code is accepted once and then removed.
    """
    if verify_totp(user.two_factor_secret, token):
        return True

    code = (token or "").strip().upper()
    remaining = list(user.two_factor_backup_codes or [])
    if code and code in remaining:
        remaining.remove(code)
        # reassign so the JSON column is flagged dirty
        user.two_factor_backup_codes = remaining
        await db.commit()
        logger.info(f"[2FA] Backup code used by User {user.id} ({len(remaining)} left)")
        return True
    return False


async def disable(db: AsyncSession, user: User, token: str):
    if not user.two_factor_enabled:
        raise HTTPException(status_code=400, detail="Two-factor authentication is not enabled")
    if not verify_totp(user.two_factor_secret, token):
        raise HTTPException(status_code=400, detail="Invalid verification code")

    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.two_factor_temp_secret = None
    user.two_factor_backup_codes = None
    await db.commit()
    logger.info(f"[2FA] Disabled for User {user.id}")
