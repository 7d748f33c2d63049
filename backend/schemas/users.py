# Pydantic schemas for user-related requests/responses.
# Registration never accepts roles; roles are granted by scripts/seed_users.py.

from typing import List
from uuid import UUID

from fastapi_users import schemas


class UserRead(schemas.BaseUser[UUID]):
    roles: List[str] = []


class UserCreate(schemas.BaseUserCreate):
    pass


class UserUpdate(schemas.BaseUserUpdate):
    pass
