# backend/univendor/services/user_service.py
import logging
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.core.security import get_password_hash, verify_password, generate_random_password
from univendor.db.models.user import User, ROLE_ADMIN
from univendor.db.models.vendor import Vendor
from univendor.services import session_service

logger = logging.getLogger(__name__)

ADMIN_ACTIONS = ("reset-password", "verify-email", "make-admin", "delete")


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "profile_image": user.profile_image,
        "role": user.role,
        "email_verified": user.email_verified,
    }


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalars().first()


async def is_vendor(db: AsyncSession, user_id: int) -> bool:
    result = await db.execute(select(Vendor.id).where(Vendor.user_id == user_id))
    return result.scalar_one_or_none() is not None


async def register_user(db: AsyncSession, user_in) -> User:
    """
    Creates the account and, when registering as a seller with a business
    name, the vendor profile in the same transaction.
    """
    if await get_user_by_email(db, user_in.email):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    new_user = User(
        email=user_in.email.lower(),
        password_hash=get_password_hash(user_in.password),
        first_name=user_in.first_name,
        last_name=user_in.last_name,
    )
    db.add(new_user)
    await db.flush()

    if user_in.is_vendor and user_in.business_name:
        db.add(Vendor(user_id=new_user.id, business_name=user_in.business_name, categories=[]))

    await db.commit()
    await db.refresh(new_user)
    logger.info(f"[Auth] Registered User {new_user.id} (vendor={bool(user_in.is_vendor and user_in.business_name)})")
    return new_user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """Returns the user when the credentials match an active account, else None."""
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    if not user.is_active:
        return None
    return user


async def update_profile(db: AsyncSession, user: User, profile_in) -> User:
    changes = profile_in.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


async def change_password(db: AsyncSession, user: User, current_password: str, new_password: str):
    if not verify_password(current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = get_password_hash(new_password)
    await db.commit()


# --- Admin ---

async def list_users(db: AsyncSession) -> list[dict]:
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    users = result.scalars().all()
    vendor_user_ids = set((await db.execute(select(Vendor.user_id))).scalars().all())
    return [
        {
            **serialize_user(u),
            "is_active": u.is_active,
            "two_factor_enabled": u.two_factor_enabled,
            "created_at": u.created_at,
            "is_vendor": u.id in vendor_user_ids,
        }
        for u in users
    ]


async def perform_admin_action(db: AsyncSession, user_id: int, action: str) -> dict:
    if action not in ADMIN_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if action == "reset-password":
        new_password = generate_random_password()
        user.password_hash = get_password_hash(new_password)
        await db.commit()
        # no mail transport; the admin relays the temporary password
        return {"success": True, "message": f"Password reset to: {new_password}"}

    if action == "verify-email":
        user.email_verified = True
        user.email_verification_code = None
        user.email_verification_expires = None
        await db.commit()
        return {"success": True, "message": "Email verified"}

    if action == "make-admin":
        user.role = ROLE_ADMIN
        await db.commit()
        return {"success": True, "message": "User is now an admin"}

    await session_service.delete_all_sessions(db, user.id)
    # vendor, conversations and messages go with the row via ON DELETE CASCADE
    await db.execute(delete(User).where(User.id == user.id))
    await db.commit()
    return {"success": True, "message": "User deleted"}
