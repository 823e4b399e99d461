from datetime import datetime
from enum import Enum

from sqlmodel import Field

from labo.models.base import TimestampedModel, UUIDModel


class UserRole(str, Enum):
    WORKER = "worker"
    FACTORY = "factory"
    ADMIN = "admin"


class User(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "users"

    email: str = Field(index=True, unique=True)
    full_name: str
    phone_number: str | None = Field(default=None, max_length=32)

    password_hash: str
    role: str = Field(default=UserRole.WORKER.value)
    is_active: bool = Field(default=True)
    last_login_at: datetime | None = Field(default=None)
