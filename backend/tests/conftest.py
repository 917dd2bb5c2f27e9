"""Shared fixtures: throwaway SQLite database, in-process broker and rate limiter."""

import asyncio
import os
import tempfile
from types import SimpleNamespace

# Must be set before any univendor module reads its configuration
_TMP_DIR = tempfile.mkdtemp(prefix="univendor-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["REALTIME_BACKEND"] = "local"
os.environ["RATE_LIMIT_BACKEND"] = "local"
os.environ["RATE_LIMIT_ENABLED"] = "true"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from univendor.core.security import SESSION_COOKIE_NAME, get_password_hash
from univendor.db.database import AsyncSessionLocal, Base, engine, load_models
from univendor.db.models.user import User, ROLE_USER
from univendor.db.models.vendor import Vendor
from univendor.main import app
from univendor.repositories.rate_limit_repository import LocalRateLimitRepository
from univendor.services import session_service

load_models()

DEFAULT_PASSWORD = "password123"
# one bcrypt hash reused by every factory-made user
_PASSWORD_HASH = get_password_hash(DEFAULT_PASSWORD)


def run(coro):
    """Runs a coroutine on a private loop (for sync tests and fixtures)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _reset_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await LocalRateLimitRepository.reset()


async def _create_user(
    email: str,
    first_name: str = "Test",
    last_name: str = "User",
    vendor_name: str = None,
    role: str = ROLE_USER,
    with_session: bool = True,
):
    async with AsyncSessionLocal() as db:
        user = User(
            email=email,
            password_hash=_PASSWORD_HASH,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        db.add(user)
        await db.flush()

        vendor_id = None
        if vendor_name:
            vendor = Vendor(user_id=user.id, business_name=vendor_name, categories=[])
            db.add(vendor)
            await db.flush()
            vendor_id = vendor.id
        await db.commit()

        token = None
        if with_session:
            session = await session_service.create_session(db, user.id, "127.0.0.1", "pytest")
            token = session.token

    return SimpleNamespace(
        id=user.id,
        email=email,
        vendor_id=vendor_id,
        token=token,
        headers={"Cookie": f"{SESSION_COOKIE_NAME}={token}"} if token else {},
    )


@pytest.fixture(autouse=True)
def clean_database():
    run(_reset_schema())
    yield


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def broker(client):
    """The LocalBroker the running app publishes through."""
    return client.app.state.broker


@pytest.fixture
def make_user():
    """Sync factory: make_user("a@x.edu", vendor_name="Cart") -> id, vendor_id, token, headers."""
    def _make(email, **kwargs):
        return run(_create_user(email, **kwargs))
    return _make


@pytest.fixture
def create_user():
    """Async flavour of make_user for async tests."""
    return _create_user


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session
