"""
Seed database script.

Creates the tables and one verified account per role.
"""

import asyncio
from helpdesk.config.settings import settings
from helpdesk.db.database import async_session_factory, create_tables
from helpdesk.apps.auth.models import User
from helpdesk.utils.security import hash_password
from helpdesk.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

USERS_TO_SEED = [
    {
        "email": "manager@helpdesk.local",
        "name": "Helpdesk Manager",
        "password": "Password123!",
        "department": "IT",
        "role": "manager",
    },
    {
        "email": "it.staff@helpdesk.local",
        "name": "IT Support",
        "password": "Password123!",
        "department": "IT",
        "role": "it_staff",
    },
    {
        "email": "employee@helpdesk.local",
        "name": "Finance Employee",
        "password": "Password123!",
        "department": "Finance",
        "role": "employee",
    },
]


async def seed_users() -> None:
    await create_tables()
    async with async_session_factory() as session:
        try:
            logger.info("Starting database seed process...")

            for user_data in USERS_TO_SEED:
                if await User.exists(session, email=user_data["email"]):
                    logger.info(f"User {user_data['email']} already exists. Skipping.")
                    continue

                logger.info(f"Creating {user_data['role']}: {user_data['email']}")
                session.add(
                    User(
                        email=user_data["email"],
                        name=user_data["name"],
                        hashed_password=hash_password(user_data["password"]),
                        department=user_data["department"],
                        role=user_data["role"],
                        is_verified=True,  # Auto-verify seed users
                    )
                )

            await session.commit()
            logger.info("Database seeded successfully")

        except Exception as e:
            await session.rollback()
            logger.error(f"Failed to seed database: {e}")
            raise


if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)
    asyncio.run(seed_users())
