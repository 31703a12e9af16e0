"""
Notification service: application-triggered inserts (assignments, mentions)
and the recipient-only mailbox operations.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamboard.core.config import get_settings
from teamboard.core.realtime import queue_change
from teamboard.models.notification import Notification
from teamboard_shared.schemas.common import ChangeType, NotificationType

log = structlog.get_logger()
settings = get_settings()

ASSIGNMENT_TITLE = "📋 New task assignment"
MENTION_TITLE = "💬 You were mentioned"


# ---------------------------------------------------------------------------
# Creation (never exposed to recipients)
# ---------------------------------------------------------------------------

async def create_notifications(
    session: AsyncSession,
    user_ids: Iterable[uuid.UUID],
    title: str,
    message: str,
    type: NotificationType = NotificationType.ASSIGNMENT,
    related_type: Optional[str] = "task",
    related_id: Optional[uuid.UUID] = None,
) -> list[Notification]:
    """Insert one notification per recipient. Nothing is written for an empty list."""
    recipients = list(dict.fromkeys(user_ids))
    if not recipients:
        return []

    rows = [
        Notification(
            user_id=uid,
            title=title,
            message=message,
            type=type.value,
            related_type=related_type,
            related_id=related_id,
            read=False,
        )
        for uid in recipients
    ]
    session.add_all(rows)
    await session.flush()
    for row in rows:
        queue_change(session, "notifications", ChangeType.INSERT, row)

    log.info("notifications.created", type=type.value, count=len(rows), related_id=str(related_id))
    return rows


async def notify_task_assignment(
    session: AsyncSession,
    task_id: uuid.UUID,
    task_title: str,
    user_ids: Iterable[uuid.UUID],
) -> list[Notification]:
    return await create_notifications(
        session,
        user_ids,
        title=ASSIGNMENT_TITLE,
        message=f'You have been assigned to the task: "{task_title}"',
        type=NotificationType.ASSIGNMENT,
        related_type="task",
        related_id=task_id,
    )


async def notify_mentions(
    session: AsyncSession,
    user_ids: Iterable[uuid.UUID],
    sender_name: str,
    related_type: str,
    related_id: uuid.UUID,
) -> list[Notification]:
    return await create_notifications(
        session,
        user_ids,
        title=MENTION_TITLE,
        message=f"{sender_name} mentioned you in a comment",
        type=NotificationType.MENTION,
        related_type=related_type,
        related_id=related_id,
    )


# ---------------------------------------------------------------------------
# Mailbox
# ---------------------------------------------------------------------------

async def list_notifications(
    session: AsyncSession, user_id: uuid.UUID, limit: Optional[int] = None
) -> list[Notification]:
    """The recipient's most recent notifications, newest first."""
    result = await session.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit or settings.notification_feed_limit)
    )
    return list(result.scalars().all())


def unread_in(rows: Iterable[Notification]) -> int:
    return sum(1 for n in rows if not n.read)


async def count_unread(session: AsyncSession, user_id: uuid.UUID) -> int:
    """Unread notifications among the held feed, not across the whole history."""
    return unread_in(await list_notifications(session, user_id))


async def get_own_notification_or_404(
    session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> Notification:
    notification = await session.get(Notification, notification_id)
    if not notification or notification.user_id != user_id:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


async def mark_as_read(
    session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> Notification:
    """Idempotent: an already-read notification is returned unchanged."""
    notification = await get_own_notification_or_404(session, user_id, notification_id)
    if notification.read:
        return notification

    old = notification.model_dump()
    notification.read = True
    session.add(notification)
    await session.flush()
    queue_change(session, "notifications", ChangeType.UPDATE, notification, old)
    return notification


async def mark_all_as_read(session: AsyncSession, user_id: uuid.UUID) -> int:
    """Mark every unread notification of the user read. Returns how many changed."""
    result = await session.execute(
        select(Notification).where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
    )
    unread = list(result.scalars().all())
    for notification in unread:
        old = notification.model_dump()
        notification.read = True
        session.add(notification)
        queue_change(session, "notifications", ChangeType.UPDATE, notification, old)
    await session.flush()
    if unread:
        log.info("notifications.read_all", user_id=str(user_id), count=len(unread))
    return len(unread)


async def delete_notification(
    session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> None:
    notification = await get_own_notification_or_404(session, user_id, notification_id)
    old = notification.model_dump()
    await session.delete(notification)
    await session.flush()
    queue_change(session, "notifications", ChangeType.DELETE, old_record=old)
