"""
Local notification mailbox kept in sync with the server.

Holds at most ``limit`` notifications, newest first. ``unread_count`` is
recomputed after every mutation, whether local (mark read, delete) or remote
(change events from the notification stream).
"""

from __future__ import annotations

from uuid import UUID

import structlog
from pydantic import ValidationError

from teamboard_shared.schemas.changes import ChangeEvent
from teamboard_shared.schemas.common import ChangeType
from teamboard_shared.schemas.notifications import NotificationRead

from .api import TeamboardClient

log = structlog.get_logger()

DEFAULT_FEED_LIMIT = 50


class NotificationFeed:
    def __init__(self, client: TeamboardClient, limit: int = DEFAULT_FEED_LIMIT):
        self._client = client
        self._limit = limit
        self._items: list[NotificationRead] = []
        self._unread_count = 0

    @property
    def items(self) -> list[NotificationRead]:
        return list(self._items)

    @property
    def unread_count(self) -> int:
        return self._unread_count

    def _sync(self) -> None:
        self._items.sort(key=lambda n: n.created_at, reverse=True)
        del self._items[self._limit:]
        self._unread_count = sum(1 for n in self._items if not n.read)

    def _index(self, notification_id: UUID) -> int | None:
        for i, n in enumerate(self._items):
            if n.id == notification_id:
                return i
        return None

    async def refresh(self) -> None:
        listing = await self._client.list_notifications()
        self._items = list(listing.data)
        self._sync()

    async def mark_as_read(self, notification_id: UUID) -> None:
        updated = await self._client.mark_notification_read(notification_id)
        idx = self._index(notification_id)
        if idx is not None:
            self._items[idx] = updated
        self._sync()

    async def mark_all_as_read(self) -> None:
        await self._client.mark_all_notifications_read()
        self._items = [n.model_copy(update={"read": True}) for n in self._items]
        self._sync()

    async def delete(self, notification_id: UUID) -> None:
        await self._client.delete_notification(notification_id)
        self._items = [n for n in self._items if n.id != notification_id]
        self._sync()

    def apply_change(self, event: ChangeEvent) -> None:
        """Apply a remote INSERT/UPDATE/DELETE on the notifications table."""
        if event.table != "notifications":
            return

        if event.type == ChangeType.DELETE:
            deleted_id = event.get("id")
            if deleted_id is not None:
                self._items = [n for n in self._items if str(n.id) != str(deleted_id)]
            self._sync()
            return

        try:
            notification = NotificationRead.model_validate(event.record)
        except ValidationError:
            log.warning("feed.bad_record", type=event.type.value)
            return

        idx = self._index(notification.id)
        if idx is not None:
            self._items[idx] = notification
        elif event.type == ChangeType.INSERT:
            self._items.insert(0, notification)
        self._sync()

    async def handle_event(self, event: ChangeEvent) -> None:
        """Handler signature for :meth:`ChangeStreamListener.on_event`."""
        self.apply_change(event)
