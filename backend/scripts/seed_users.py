"""
Create the demo accounts with their roles.

Run locally:
  cd backend && PYTHONPATH=. python scripts/seed_users.py

Uses the same DATABASE_URL as the API. Existing accounts are left untouched.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Tuple

from fastapi_users.password import PasswordHelper
from sqlalchemy import select

from db.database import async_session_maker, create_db_and_tables
from db.users import CREATOR, CUSTOMER, User


@dataclass(frozen=True)
class SeedUser:
    email: str
    password: str
    roles: Tuple[str, ...]


SEED_USERS: list[SeedUser] = [
    SeedUser(email="king@example.com", password="king-password", roles=(CREATOR, CUSTOMER)),
    SeedUser(email="queen@example.com", password="queen-password", roles=(CREATOR,)),
    SeedUser(email="james@example.com", password="james-password", roles=(CUSTOMER,)),
]

password_helper = PasswordHelper()


async def get_or_create_user(session, seed: SeedUser) -> tuple[User, bool]:
    result = await session.execute(select(User).where(User.email == seed.email))
    user = result.scalar_one_or_none()
    if user:
        return user, False

    user = User(
        email=seed.email,
        hashed_password=password_helper.hash(seed.password),
        is_active=True,
        is_superuser=False,
        is_verified=True,
        roles=list(seed.roles),
    )
    session.add(user)
    await session.flush()
    return user, True


async def main() -> None:
    await create_db_and_tables()

    created = 0
    async with async_session_maker() as db:
        for seed in SEED_USERS:
            _, is_new = await get_or_create_user(db, seed)
            if is_new:
                created += 1
                print(f"Created {seed.email} roles={','.join(seed.roles)}")
            else:
                print(f"Skipped {seed.email} (already exists)")
        await db.commit()

    print(f"Done. created={created} total={len(SEED_USERS)}")


if __name__ == "__main__":
    asyncio.run(main())
