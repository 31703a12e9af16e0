"""Project and project membership models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"

    name: str = Field(nullable=False, max_length=100)
    description: Optional[str] = None
    status: str = Field(default="active", nullable=False)  # active | inactive | completed
    priority: str = Field(default="medium", nullable=False)  # low | medium | high
    start_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    end_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)


class ProjectMember(SQLModel, table=True):
    __tablename__ = "project_members"

    project_id: uuid.UUID = Field(foreign_key="projects.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, index=True)
    is_leader: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
