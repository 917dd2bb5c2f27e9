# backend/univendor/api/v1/users.py
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.api.deps import get_current_user, request_meta
from univendor.db.database import get_db
from univendor.db.models.user import User
from univendor.schemas.user import ProfileUpdate, PasswordChange
from univendor.services import user_service
from univendor.services.security_log_service import log_security_event

router = APIRouter()


def _require_self(user_id: int, user: User):
    if user.id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


@router.patch("/{user_id}/profile")
async def update_profile(
    user_id: int,
    profile_in: ProfileUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _require_self(user_id, user)
    updated = await user_service.update_profile(db, user, profile_in)
    await log_security_event("profile_updated", user_id=user.id, **request_meta(request))
    return {"success": True, "user": user_service.serialize_user(updated)}


@router.post("/{user_id}/password")
async def change_password(
    user_id: int,
    body: PasswordChange,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _require_self(user_id, user)
    await user_service.change_password(db, user, body.current_password, body.new_password)
    await log_security_event("password_changed", user_id=user.id, **request_meta(request))
    return {"success": True}
