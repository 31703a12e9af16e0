# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User, Profile  # noqa: F401
from .project import Project, ProjectMember  # noqa: F401
from .task import Task, TaskAssignment, Subtask  # noqa: F401
from .message import Message  # noqa: F401
from .notification import Notification  # noqa: F401
