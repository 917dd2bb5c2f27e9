import os
from dotenv import load_dotenv
from sqladmin.authentication import AuthenticationBackend
from starlette.requests import Request
from univendor.db.database import AsyncSessionLocal
from univendor.db.models.user import User
from univendor.core.security import SECRET_KEY, verify_password
from univendor.services.user_service import get_user_by_email

load_dotenv()

ADMIN_SESSION_SECRET = os.getenv("ADMIN_SESSION_SECRET", SECRET_KEY)

class AdminAuth(AuthenticationBackend):
    """Login form for the /admin panel; only role=admin accounts get in."""

    async def login(self, request: Request) -> bool:
        form = await request.form()
        email = form.get("username")
        password = form.get("password")
        if not email or not password:
            return False

        async with AsyncSessionLocal() as session:
            user = await get_user_by_email(session, email)

            if not user or not verify_password(password, user.password_hash):
                return False
            if not user.is_admin or not user.is_active:
                return False

            request.session.update({"admin_user_id": user.id})
            return True

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> bool:
        user_id = request.session.get("admin_user_id")
        if not user_id:
            return False

        # role can be revoked while the panel session is still alive
        async with AsyncSessionLocal() as session:
            user = await session.get(User, user_id)
            return bool(user and user.is_admin and user.is_active)

authentication_backend = AdminAuth(secret_key=ADMIN_SESSION_SECRET)
