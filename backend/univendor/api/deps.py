import logging
import os
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyCookie
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.core.security import SESSION_COOKIE_NAME, get_client_ip
from univendor.db.database import get_db
from univendor.db.models.user import User
from univendor.db.models.vendor import Vendor
from univendor.realtime.broker import Broker
from univendor.repositories.rate_limit_repository import MAX_REQUESTS, get_rate_limit_repository, RATE_LIMIT_WINDOW_SECONDS
from univendor.services import session_service
from univendor.services.security_log_service import log_security_event

logger = logging.getLogger(__name__)

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Reads the `auth_session` cookie (shows up as a security scheme in Swagger UI)
session_cookie = APIKeyCookie(name=SESSION_COOKIE_NAME, auto_error=False)


async def get_session_token(token: Optional[str] = Depends(session_cookie)) -> Optional[str]:
    return token


async def get_current_user(
    token: Optional[str] = Depends(session_cookie),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    FastAPI Dependency: resolves the session cookie to a user (and bumps last_active).
    """
    user = await session_service.resolve_user(db, token)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


async def get_current_user_id(user: User = Depends(get_current_user)) -> int:
    return user.id


async def get_current_vendor(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Vendor:
    result = await db.execute(select(Vendor).where(Vendor.user_id == user.id))
    vendor = result.scalar_one_or_none()
    if not vendor:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a vendor")
    return vendor


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


def get_broker(request: Request) -> Broker:
    """The process-scoped broker created at startup."""
    return request.app.state.broker


def rate_limit(endpoint: str = "default"):
    """
    Dependency factory: fixed 15-minute window per (endpoint, client IP).
    """
    max_requests = MAX_REQUESTS.get(endpoint, MAX_REQUESTS["default"])

    async def dependency(request: Request):
        if not RATE_LIMIT_ENABLED:
            return
        ip = get_client_ip(request.headers, request.client)
        repository = get_rate_limit_repository()
        try:
            count, retry_after = await repository.hit(f"{endpoint}:{ip}", RATE_LIMIT_WINDOW_SECONDS)
        except Exception as e:
            # limiter store down: let the request through
            logger.error(f"[RateLimit] Store unavailable for {endpoint}: {e}")
            return

        if count > max_requests:
            await log_security_event(
                "rate_limit_exceeded",
                ip_address=ip,
                user_agent=request.headers.get("user-agent", ""),
                details={"endpoint": endpoint},
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later.",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(max_requests),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return dependency


def request_meta(request: Request) -> dict:
    """IP / user agent pair used for sessions and security logs."""
    return {
        "ip_address": get_client_ip(request.headers, request.client),
        "user_agent": request.headers.get("user-agent", "unknown"),
    }
