"""Per-user notification mailbox."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Notification(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "notifications"

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    message: str = Field(nullable=False)
    type: str = Field(default="assignment", nullable=False)  # assignment | mention | system
    related_type: Optional[str] = Field(default="task")
    related_id: Optional[uuid.UUID] = None
    read: bool = Field(default=False, nullable=False)
