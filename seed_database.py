#!/usr/bin/env python3
"""Script to reset the database and create the demo accounts.

Run with: python seed_database.py
"""

import asyncio
import logging

from sqlalchemy import delete

from app.db import AsyncSessionLocal, close_db, init_db
from app.models import RefreshToken, User, UserRole

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)-8s | %(message)s")
logger = logging.getLogger("blogsite.seed")

ADMIN = {"name": "Admin User", "email": "admin@blogsite.com", "password": "Admin123!"}
USER_NAMES = ["Alex Johnson", "Sarah Chen", "Mike Rodriguez", "Emma Wilson", "David Park"]
USER_PASSWORD = "User123!"


def make_user(name: str, email: str, password: str, role: UserRole) -> User:
    user = User(name=name, email=email, role=role, is_active=True)
    user.password = password
    return user


async def seed() -> None:
    await init_db()

    async with AsyncSessionLocal() as session:
        await session.execute(delete(RefreshToken))
        await session.execute(delete(User))
        logger.info("Cleared existing data")

        session.add(make_user(ADMIN["name"], ADMIN["email"], ADMIN["password"], UserRole.ADMIN))
        logger.info("Created admin user")

        for i, name in enumerate(USER_NAMES, start=1):
            session.add(make_user(name, f"user{i}@blogsite.com", USER_PASSWORD, UserRole.USER))
        logger.info("Created regular users")

        await session.commit()

    await close_db()

    print("\nDatabase seeded successfully!")
    print("\nLogin credentials:")
    print(f"Admin: {ADMIN['email']} / {ADMIN['password']}")
    print(f"Users: user1@blogsite.com to user{len(USER_NAMES)}@blogsite.com / {USER_PASSWORD}")


if __name__ == "__main__":
    asyncio.run(seed())
