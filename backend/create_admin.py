import asyncio
import sys
import getpass

# allow `python backend/create_admin.py` from the project root
import os
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from univendor.db.database import AsyncSessionLocal, init_db
from univendor.db.models.user import User, ROLE_ADMIN
from univendor.core.security import get_password_hash
from univendor.services.user_service import get_user_by_email

async def create_superuser():
    email = input("Enter Admin Email: ").strip()
    password = getpass.getpass("Enter Admin Password: ")
    first_name = input("Enter First Name (Optional): ") or "Admin"
    last_name = input("Enter Last Name (Optional): ") or "User"

    await init_db()
    async with AsyncSessionLocal() as session:
        existing = await get_user_by_email(session, email)
        if existing:
            if existing.role == ROLE_ADMIN:
                print(f"User {email} is already an admin.")
                return
            existing.role = ROLE_ADMIN
            await session.commit()
            print(f"Existing user {email} promoted to admin.")
            return

        print("Creating admin...")
        admin_user = User(
            email=email.lower(),
            password_hash=get_password_hash(password),
            first_name=first_name,
            last_name=last_name,
            role=ROLE_ADMIN,
            is_active=True,
            email_verified=True,
        )
        session.add(admin_user)
        await session.commit()
        print(f"Admin '{email}' created successfully!")

if __name__ == "__main__":
    asyncio.run(create_superuser())
