"""
Create Platform Admin

Admins are never created through the API; this script inserts one.
Run from project root: python scripts/create_admin.py admin@foodorder.in "Platform Admin"

Version: 1.0.0
"""

import argparse
import asyncio
import getpass
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from app.core.helpers import hash_password, is_valid_email
from app.database import async_session_maker, engine, init_db
from app.models import AdminUser


async def create_admin(email: str, name: str, password: str) -> bool:
    await init_db()
    try:
        async with async_session_maker() as db:
            existing = await db.execute(select(AdminUser.id).where(AdminUser.email == email))
            if existing.first() is not None:
                print(f"❌ An admin with email {email} already exists")
                return False

            db.add(AdminUser(email=email, name=name, password_hash=hash_password(password)))
            await db.commit()
    finally:
        await engine.dispose()

    print(f"✅ Admin {email} created")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a platform admin")
    parser.add_argument("email", help="Admin login email")
    parser.add_argument("name", help="Display name")
    args = parser.parse_args()

    email = args.email.strip().lower()
    if not is_valid_email(email):
        print("❌ Please enter a valid email address")
        sys.exit(1)

    password = getpass.getpass("Password: ")
    if len(password) < 8:
        print("❌ Password must be at least 8 characters")
        sys.exit(1)

    sys.exit(0 if asyncio.run(create_admin(email, args.name, password)) else 1)
