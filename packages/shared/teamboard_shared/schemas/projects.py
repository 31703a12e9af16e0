from datetime import datetime, timezone
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from .common import ProjectPriority, ProjectStatus


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes (as some backends return them) are taken to be UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_date_range(start: Optional[datetime], end: Optional[datetime]) -> None:
    """Raise ValueError when both dates are set and the end precedes the start."""
    start, end = as_utc(start), as_utc(end)
    if start is not None and end is not None and end < start:
        raise ValueError("end_date must not be earlier than start_date")


class ProjectBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    priority: ProjectPriority = ProjectPriority.MEDIUM
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        check_date_range(self.start_date, self.end_date)
        return self


class ProjectCreate(ProjectBase):
    members: List[UUID] = Field(default_factory=list)
    leaders: List[UUID] = Field(default_factory=list)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    priority: Optional[ProjectPriority] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        check_date_range(self.start_date, self.end_date)
        return self


class ProjectMemberAdd(BaseModel):
    user_id: UUID
    is_leader: bool = False


class ProjectMemberRead(BaseModel):
    user_id: UUID
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    is_leader: bool = False
    created_at: datetime


class ProjectRead(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    status: ProjectStatus
    priority: ProjectPriority
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_by: UUID
    members: List[ProjectMemberRead] = Field(default_factory=list)
    task_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DashboardStats(BaseModel):
    active_tasks: int = 0
    completed_tasks: int = 0
    active_projects: int = 0
    team_members: int = 0
