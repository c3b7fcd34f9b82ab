import asyncio
import os

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from .db import SessionLocal
from .models import Admin, User
from .security import hash_password


async def run(
    email: str | None = None,
    password: str | None = None,
    first_name: str = "System",
    last_name: str = "Admin",
) -> User:
    """Create the bootstrap admin account, or return it if the email is already taken."""
    email = email or os.getenv("ADMIN_EMAIL", "admin@localnest.com")
    password = password or os.getenv("ADMIN_PASSWORD")
    if not password:
        raise SystemExit("ADMIN_PASSWORD is required to create the admin account")

    async with SessionLocal() as db:
        result = await db.execute(select(User).where(User.email == email).options(selectinload(User.admin)))
        user = result.scalar_one_or_none()
        if user:
            if user.admin is None:
                raise SystemExit(f"{email} already exists and is not an admin")
            print(f"[localnest] admin {email} already exists")
            return user

        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=hash_password(password),
            user_type="ADMIN",
        )
        user.admin = Admin()
        db.add(user)
        await db.commit()
        print(f"[localnest] created admin {email}")
        return user


if __name__ == "__main__":
    asyncio.run(
        run(
            first_name=os.getenv("ADMIN_FIRST_NAME", "System"),
            last_name=os.getenv("ADMIN_LAST_NAME", "Admin"),
        )
    )
