# backend/univendor/api/v1/auth.py
import logging
from typing import Optional
from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.api.deps import get_current_user, get_session_token, rate_limit, request_meta
from univendor.core.security import (
    COOKIE_SECURE,
    SESSION_COOKIE_NAME,
    SESSION_EXPIRY_DAYS,
    TWO_FACTOR_COOKIE_NAME,
    TWO_FACTOR_PENDING_MINUTES,
    create_two_factor_pending_token,
    verify_two_factor_pending_token,
)
from univendor.db.database import get_db
from univendor.db.models.session import UserSession
from univendor.db.models.user import User
from univendor.schemas.user import EmailVerificationCode, NewPassword, PasswordResetRequest, UserCreate, UserLogin, TwoFactorToken
from univendor.services import account_recovery_service, session_service, two_factor_service, user_service, vendor_service
from univendor.services.security_log_service import log_security_event

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_session_cookie(response: Response, token: str):
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=SESSION_EXPIRY_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


async def _start_session(db: AsyncSession, user: User, request: Request, response: Response):
    meta = request_meta(request)
    session = await session_service.create_session(db, user.id, **meta)
    _set_session_cookie(response, session.token)
    return session


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(rate_limit("register"))])
async def register(user_in: UserCreate, request: Request, db: AsyncSession = Depends(get_db)):
    """Creates an account (and a vendor profile when registering as a seller)."""
    user = await user_service.register_user(db, user_in)
    is_vendor = await user_service.is_vendor(db, user.id)
    await log_security_event("register", user_id=user.id, **request_meta(request))
    return {"user": user_service.serialize_user(user), "is_vendor": is_vendor}


# --- Password reset ---

@router.post("/reset-password", dependencies=[Depends(rate_limit("reset_password"))])
async def request_password_reset(body: PasswordResetRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """Mails a one-hour reset link. The answer is the same whether or not the email exists."""
    user = await account_recovery_service.request_password_reset(db, body.email)
    if user:
        await log_security_event(
            "password_reset_requested",
            user_id=user.id,
            details={"email": user.email},
            **request_meta(request),
        )
    return {"success": True}


@router.post("/new-password", dependencies=[Depends(rate_limit("reset_password"))])
async def new_password(body: NewPassword, request: Request, db: AsyncSession = Depends(get_db)):
    user = await account_recovery_service.reset_password(db, body.token, body.password)
    await log_security_event("password_reset", user_id=user.id, **request_meta(request))
    return {"success": True}


# --- Email verification ---

@router.post("/verify-email/send")
async def send_email_verification(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await account_recovery_service.send_email_verification(db, user)
    await log_security_event("email_verification_sent", user_id=user.id, **request_meta(request))
    return {"success": True}


@router.post("/verify-email/verify")
async def verify_email(
    body: EmailVerificationCode,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await account_recovery_service.verify_email(db, user, body.code)
    await log_security_event("email_verified", user_id=user.id, **request_meta(request))
    return {"success": True}


@router.post("/login", dependencies=[Depends(rate_limit("login"))])
async def login(user_in: UserLogin, request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    meta = request_meta(request)
    user = await user_service.authenticate_user(db, user_in.email, user_in.password)
    if not user:
        known = await user_service.get_user_by_email(db, user_in.email)
        await log_security_event(
            "login_failed",
            user_id=known.id if known else None,
            details={"email": user_in.email},
            **meta,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    if user.two_factor_enabled:
        # password is fine; the session is only issued after /two-factor/verify
        response.set_cookie(
            key=TWO_FACTOR_COOKIE_NAME,
            value=create_two_factor_pending_token(user.id),
            max_age=TWO_FACTOR_PENDING_MINUTES * 60,
            httponly=True,
            secure=COOKIE_SECURE,
            samesite="lax",
            path="/",
        )
        return {"requires_two_factor": True}

    await _start_session(db, user, request, response)
    await log_security_event("login", user_id=user.id, **meta)
    return {
        "user": user_service.serialize_user(user),
        "is_vendor": await user_service.is_vendor(db, user.id),
        "requires_two_factor": False,
    }


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
):
    if token:
        session = await session_service.get_valid_session(db, token)
        await session_service.delete_session_by_token(db, token)
        if session:
            await log_security_event("logout", user_id=session.user_id, **request_meta(request))
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/me")
async def me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    vendor = await vendor_service.get_vendor_for_user(db, user.id)
    return {
        "user": {**user_service.serialize_user(user), "two_factor_enabled": user.two_factor_enabled},
        "is_vendor": vendor is not None,
        "vendor": vendor_service.serialize_vendor(vendor) if vendor else None,
    }


# --- Sessions ---

@router.get("/sessions")
async def list_sessions(
    user: User = Depends(get_current_user),
    token: Optional[str] = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
):
    return {"sessions": await session_service.list_active_sessions(db, user.id, token)}


@router.delete("/sessions")
async def terminate_other_sessions(
    request: Request,
    user: User = Depends(get_current_user),
    token: Optional[str] = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
):
    """Signs out every other device."""
    count = await session_service.delete_other_sessions(db, user.id, token)
    await log_security_event("session_revoked", user_id=user.id, details={"count": count}, **request_meta(request))
    return {"success": True, "count": count}


@router.delete("/sessions/{session_id}")
async def terminate_session(
    session_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    token: Optional[str] = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
):
    target = await db.get(UserSession, session_id)
    if not target:
        raise HTTPException(status_code=404, detail="Session not found")
    if target.user_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")
    if target.token == token:
        raise HTTPException(status_code=400, detail="Cannot terminate the current session; log out instead")

    await session_service.delete_session_by_token(db, target.token)
    await log_security_event("session_revoked", user_id=user.id, details={"session_id": session_id}, **request_meta(request))
    return {"success": True}


# --- Two-factor ---

@router.get("/two-factor/status")
async def two_factor_status(user: User = Depends(get_current_user)):
    return two_factor_service.get_status(user)


@router.post("/two-factor/setup")
async def two_factor_setup(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await two_factor_service.setup(db, user)
    await log_security_event("two_factor_setup_initiated", user_id=user.id, **request_meta(request))
    return result


@router.post("/two-factor/enable")
async def two_factor_enable(
    body: TwoFactorToken,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    backup_codes = await two_factor_service.enable(db, user, body.token)
    await log_security_event("two_factor_enabled", user_id=user.id, **request_meta(request))
    return {"success": True, "backup_codes": backup_codes}


@router.post("/two-factor/verify", dependencies=[Depends(rate_limit("login"))])
async def two_factor_verify(
    body: TwoFactorToken,
    request: Request,
    response: Response,
    pending: Optional[str] = Cookie(default=None, alias=TWO_FACTOR_COOKIE_NAME),
    db: AsyncSession = Depends(get_db),
):
    """Completes a login that stopped at the TOTP step."""
    user_id = verify_two_factor_pending_token(pending)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No pending two-factor login")

    user = await db.get(User, user_id)
    if not user or not user.is_active or not user.two_factor_enabled:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No pending two-factor login")

    meta = request_meta(request)
    if not await two_factor_service.verify_challenge(db, user, body.token):
        await log_security_event("two_factor_challenge_failed", user_id=user.id, **meta)
        raise HTTPException(status_code=400, detail="Invalid verification code")

    await _start_session(db, user, request, response)
    response.delete_cookie(TWO_FACTOR_COOKIE_NAME, path="/")
    await log_security_event("two_factor_challenge", user_id=user.id, **meta)
    return {
        "user": user_service.serialize_user(user),
        "is_vendor": await user_service.is_vendor(db, user.id),
    }


@router.post("/two-factor/disable")
async def two_factor_disable(
    body: TwoFactorToken,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await two_factor_service.disable(db, user, body.token)
    await log_security_event("two_factor_disabled", user_id=user.id, **request_meta(request))
    return {"success": True}
