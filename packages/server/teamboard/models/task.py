"""Task, assignment and subtask models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    title: str = Field(nullable=False, max_length=100)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="todo")  # see TaskStatus
    priority: str = Field(nullable=False, default="medium")  # low | medium | high | urgent
    start_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    end_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)


class TaskAssignment(SQLModel, table=True):
    __tablename__ = "task_assignments"

    task_id: uuid.UUID = Field(foreign_key="tasks.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, index=True)
    is_leader: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )


class Subtask(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "subtasks"

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    is_completed: bool = Field(default=False, nullable=False)
    created_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)
