from fastapi_users.db import SQLAlchemyBaseUserTableUUID
from sqlalchemy import JSON, Column

from .database import Base

CREATOR = "creator"
CUSTOMER = "customer"


def _default_roles():
    return [CUSTOMER]


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    # e.g. ["creator"], ["customer"] or both
    roles = Column(JSON, nullable=False, default=_default_roles)

    def has_role(self, *roles: str) -> bool:
        return any(r in (self.roles or []) for r in roles)

    @property
    def to_schema(self):
        """Convert User model to schema dictionary format"""
        return {
            "id": self.id,
            "email": self.email,
            "roles": list(self.roles or []),
        }

