"""
Seed script: creates a default admin account only.

Usage:
    python -m checkin_console.db.seed
"""

import asyncio
import logging
import os

from sqlalchemy import select

from checkin_console.core.security import hash_password
from checkin_console.db.models import Employee
from checkin_console.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = "admin@monitoramento.local"


async def create_admin(session, email: str = DEFAULT_ADMIN_EMAIL, password: str | None = None) -> Employee:
    result = await session.execute(select(Employee).where(Employee.email == email))
    admin = result.scalar_one_or_none()
    if admin:
        logger.info("Admin %s already exists, skipping.", email)
        return admin

    admin = Employee(
        username="Administrador",
        email=email,
        password_hash=hash_password(password or os.environ.get("SEED_ADMIN_PASSWORD", "admin123")),
        role="admin",
        status="active",
    )
    session.add(admin)
    await session.flush()
    logger.info("Created admin account: id=%s email=%s", admin.id, admin.email)
    return admin


async def main():
    async with AsyncSessionLocal() as session:
        async with session.begin():
            await create_admin(session)
    logger.info("Seed complete. Admin account only.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
