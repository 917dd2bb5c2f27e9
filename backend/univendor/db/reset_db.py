import asyncio
import sys
import os
from decimal import Decimal

# backend/ on sys.path so `univendor` imports when run as a script
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from univendor.db.database import engine, Base, AsyncSessionLocal, load_models
from univendor.db.models.user import User, ROLE_ADMIN
from univendor.db.models.vendor import Vendor
from univendor.db.models.product import Product
from univendor.core.security import get_password_hash
from univendor.services import conversation_service, message_service

async def reset_database():
    load_models()
    print("--- Resetting database ---")
    async with engine.begin() as conn:
        print("1. Dropping all tables...")
        await conn.run_sync(Base.metadata.drop_all)
        print("2. Creating tables from the current models...")
        await conn.run_sync(Base.metadata.create_all)

    print("3. Seeding demo data...")
    async with AsyncSessionLocal() as session:
        test_password = get_password_hash("password123")

        admin = User(email="admin@univendor.test", password_hash=test_password, first_name="Campus", last_name="Admin",
                     role=ROLE_ADMIN, email_verified=True)
        alice = User(email="alice@univendor.test", password_hash=test_password, first_name="Alice", last_name="Kim",
                     email_verified=True)
        bob = User(email="bob@univendor.test", password_hash=test_password, first_name="Bob", last_name="Lee")
        seller = User(email="cafe@univendor.test", password_hash=test_password, first_name="Dana", last_name="Park",
                      email_verified=True)
        session.add_all([admin, alice, bob, seller])
        await session.flush()

        cafe = Vendor(
            user_id=seller.id,
            business_name="Quad Coffee Cart",
            description="Espresso and pastries by the library steps.",
            location="Main Quad",
            business_hours="Mon-Fri 7:30-15:00",
            categories=["food", "coffee"],
        )
        session.add(cafe)
        await session.flush()

        session.add_all([
            Product(vendor_id=cafe.id, name="Iced Latte", price=Decimal("3.50"), category="coffee", tags=["cold"]),
            Product(vendor_id=cafe.id, name="Almond Croissant", price=Decimal("2.75"), category="food", tags=["bakery"]),
        ])
        await session.commit()

        # One customer thread and one peer thread with an opening message each
        thread = await conversation_service.resolve_vendor_conversation(session, alice.id, cafe.id)
        await message_service.write_message(session, thread, alice.id, "Are you open during finals week?")
        peer = await conversation_service.resolve_user_conversation(session, alice.id, bob.id)
        await message_service.write_message(session, peer, bob.id, "Want to grab coffee after class?")

    print("--- Reset and seeding complete (password: password123) ---")

if __name__ == "__main__":
    asyncio.run(reset_database())
