# backend/univendor/api/v1/admin.py
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.api.deps import require_admin, request_meta
from univendor.db.database import get_db
from univendor.db.models.user import User
from univendor.schemas.user import AdminUserItem
from univendor.services import analytics_service, user_service
from univendor.services.security_log_service import list_security_logs, log_security_event

router = APIRouter()


@router.get("/users", response_model=list[AdminUserItem])
async def list_users(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await user_service.list_users(db)


@router.post("/users/{user_id}/{action}")
async def user_action(
    user_id: int,
    action: str,
    request: Request,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """reset-password, verify-email, make-admin or delete."""
    await log_security_event(
        "admin_action",
        user_id=admin.id,
        details={"action": action, "target_user_id": user_id},
        **request_meta(request),
    )
    return await user_service.perform_admin_action(db, user_id, action)


@router.get("/security-logs")
async def security_logs(
    limit: int = Query(100, ge=1, le=1000),
    event_type: Optional[str] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    logs = await list_security_logs(db, limit=limit, event_type=event_type)
    return {
        "logs": [
            {
                "id": log.id,
                "user_id": log.user_id,
                "event_type": log.event_type,
                "ip_address": log.ip_address,
                "user_agent": log.user_agent,
                "details": log.details,
                "created_at": log.created_at,
            }
            for log in logs
        ]
    }


@router.get("/analytics/users")
async def user_analytics(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await analytics_service.get_user_analytics(db)


@router.get("/analytics/security")
async def security_analytics(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await analytics_service.get_security_analytics(db)


@router.get("/analytics/messages")
async def message_analytics(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await analytics_service.get_message_analytics(db)
