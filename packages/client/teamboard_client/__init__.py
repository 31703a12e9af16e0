"""
Teamboard client library.

Async API client, live change-stream listener, and local board/notification
state that stays consistent with the server.
"""

from .api import TeamboardAPIError, TeamboardClient
from .board import KanbanBoard
from .notifications import NotificationFeed
from .sse_listener import ChangeStreamListener

__version__ = "0.1.0"

__all__ = [
    "ChangeStreamListener",
    "KanbanBoard",
    "NotificationFeed",
    "TeamboardAPIError",
    "TeamboardClient",
]
