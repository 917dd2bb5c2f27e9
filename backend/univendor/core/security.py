from passlib.context import CryptContext
import os
import secrets
from datetime import datetime, timedelta
from jose import jwt, JWTError
from typing import Optional
from univendor.db.models.base import get_utc_now
from dotenv import load_dotenv

load_dotenv()

# 1. Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT settings (only used for the short-lived two-factor pending marker)
SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-very-secret")
ALGORITHM = "HS256"
TWO_FACTOR_PENDING_MINUTES = 10

# Session cookie settings
SESSION_COOKIE_NAME = "auth_session"
TWO_FACTOR_COOKIE_NAME = "two_factor_pending"
SESSION_EXPIRY_DAYS = 30
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
COOKIE_SECURE = ENVIRONMENT == "production"

# --- Passwords ---

def get_password_hash(password: str) -> str:
    """Hashes a password (bcrypt only looks at the first 72 bytes)."""
    return pwd_context.hash(password[:72])

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Compares a plaintext password with its stored hash."""
    return pwd_context.verify(plain_password[:72], hashed_password)

def generate_random_password() -> str:
    return secrets.token_hex(8)

# --- Session tokens ---

def generate_session_token() -> str:
    """64 hex characters, stored verbatim in sessions.token."""
    return secrets.token_hex(32)

def session_expiry() -> datetime:
    return get_utc_now() + timedelta(days=SESSION_EXPIRY_DAYS)

# --- Two-factor pending marker ---

def create_two_factor_pending_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """
    Signs the intermediate "password ok, TOTP still missing" state.
    The cookie carries a JWT instead of a raw user id so it cannot be forged.
    """
    expire = get_utc_now() + (expires_delta or timedelta(minutes=TWO_FACTOR_PENDING_MINUTES))
    to_encode = {"sub": str(user_id), "typ": "2fa_pending", "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def verify_two_factor_pending_token(token: Optional[str]) -> Optional[int]:
    """Returns the pending user id, or None if the marker is missing/invalid/expired."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("typ") != "2fa_pending" or payload.get("sub") is None:
        return None
    return int(payload["sub"])

# --- Request metadata ---

def get_client_ip(headers, client=None) -> str:
    """Client IP as seen behind a proxy (x-forwarded-for first hop, then x-real-ip)."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if client is not None and getattr(client, "host", None):
        return client.host
    return "unknown"
