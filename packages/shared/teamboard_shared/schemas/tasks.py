"""Task-related Pydantic schemas for shared use across server and client."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic import UUID4

from .common import TaskPriority, TaskStatus
from .projects import check_date_range


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskBase(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        check_date_range(self.start_date, self.end_date)
        return self


class TaskCreate(TaskBase):
    project_id: UUID4
    assignee_ids: List[UUID4] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    project_id: Optional[UUID4] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    assignee_ids: Optional[List[UUID4]] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        check_date_range(self.start_date, self.end_date)
        return self


class TaskRead(BaseModel):
    id: UUID4
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    project_id: UUID4
    project_name: Optional[str] = None
    created_by: UUID4
    assignee_ids: List[UUID4] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Status workflow
# ---------------------------------------------------------------------------

class TaskStatusUpdate(BaseModel):
    """Request body for PATCH /tasks/{taskId}/status."""
    status: TaskStatus


class BoardColumn(BaseModel):
    status: TaskStatus
    tasks: List[TaskRead] = Field(default_factory=list)


class TaskBoard(BaseModel):
    columns: List[BoardColumn]


# ---------------------------------------------------------------------------
# Subtasks
# ---------------------------------------------------------------------------

class SubtaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None


class SubtaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    is_completed: Optional[bool] = None


class SubtaskRead(BaseModel):
    id: UUID4
    task_id: UUID4
    title: str
    description: Optional[str] = None
    is_completed: bool
    created_by: UUID4
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
