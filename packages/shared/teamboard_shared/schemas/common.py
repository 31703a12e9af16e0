from enum import Enum
from typing import Optional
from pydantic import BaseModel

class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    TO_MODIFY = "to_modify"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

# Board column order. Any status may be set from any other status.
TASK_STATUS_ORDER: list["TaskStatus"] = [
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.REVIEW,
    TaskStatus.TO_MODIFY,
    TaskStatus.COMPLETED,
    TaskStatus.CANCELLED,
]

ACTIVE_TASK_STATUSES: list["TaskStatus"] = [
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.REVIEW,
    TaskStatus.TO_MODIFY,
]

class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class ProjectStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"

class ProjectPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class Role(str, Enum):
    DEVELOPER = "developer"
    ADMIN = "admin"

class NotificationType(str, Enum):
    ASSIGNMENT = "assignment"
    MENTION = "mention"
    SYSTEM = "system"

class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int

class APIError(BaseModel):
    error: Optional[ErrorBody] = None
