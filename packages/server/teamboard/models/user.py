"""Login identity and the application profile attached to it."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class User(UUIDMixin, SQLModel, table=True):
    """Credentials only. Everything the app authorizes on lives in Profile."""

    __tablename__ = "users"

    email: str = Field(nullable=False, unique=True, index=True)
    password_hash: Optional[str] = Field(default=None)  # bcrypt hash
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )


class Profile(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "profiles"

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, unique=True, index=True)
    email: str = Field(nullable=False)
    first_name: str = Field(default="", nullable=False)
    last_name: str = Field(default="", nullable=False)
    role: str = Field(default="developer", nullable=False)  # developer | admin
    is_approved: bool = Field(default=False, nullable=False)
