"""Comment model. Rows hang off a project, a task, or both."""

from datetime import datetime
from typing import List, Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Message(UUIDMixin, SQLModel, table=True):
    __tablename__ = "messages"

    content: str = Field(nullable=False)
    project_id: Optional[uuid.UUID] = Field(default=None, foreign_key="projects.id", index=True)
    task_id: Optional[uuid.UUID] = Field(default=None, foreign_key="tasks.id", index=True)
    sender_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    # user ids as strings, JSON keeps the column portable across backends
    mentioned_users: List[str] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
