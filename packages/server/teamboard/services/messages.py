"""
Comment threads on projects and tasks.

Messages are append-only. A task comment also records the task's project so
that its visibility follows project membership like everything else.
"""

from __future__ import annotations

import re
import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamboard.core.access import users_with_project_access
from teamboard.core.auth import CurrentUser
from teamboard.core.realtime import queue_change
from teamboard.models.message import Message
from teamboard.models.project import Project
from teamboard.models.task import Task
from teamboard.models.user import Profile
from teamboard.services.notifications import notify_mentions
from teamboard_shared.schemas.common import ChangeType
from teamboard_shared.schemas.messages import MessageCreate, MessageRead

log = structlog.get_logger()

MENTION_PATTERN = re.compile(
    r'@([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})', re.IGNORECASE
)


def parse_mentions(content: str) -> list[uuid.UUID]:
    """Extract user UUIDs from @mentions in message content."""
    return [uuid.UUID(m) for m in MENTION_PATTERN.findall(content)]


async def enrich_messages(
    session: AsyncSession, messages: Sequence[Message]
) -> list[MessageRead]:
    """Attach sender names (batched)."""
    sender_ids = {m.sender_id for m in messages}
    names: dict[uuid.UUID, tuple[str, str]] = {}
    if sender_ids:
        result = await session.execute(
            select(Profile.user_id, Profile.first_name, Profile.last_name).where(
                Profile.user_id.in_(sender_ids)
            )
        )
        names = {uid: (first, last) for uid, first, last in result.all()}

    enriched = []
    for m in messages:
        first, last = names.get(m.sender_id, ("", ""))
        enriched.append(
            MessageRead(
                id=m.id,
                content=m.content,
                project_id=m.project_id,
                task_id=m.task_id,
                sender_id=m.sender_id,
                sender_first_name=first,
                sender_last_name=last,
                mentioned_users=[uuid.UUID(u) for u in m.mentioned_users or []],
                file_url=m.file_url,
                file_name=m.file_name,
                created_at=m.created_at,
            )
        )
    return enriched


async def list_task_messages(session: AsyncSession, task: Task) -> list[Message]:
    result = await session.execute(
        select(Message).where(Message.task_id == task.id).order_by(Message.created_at)
    )
    return list(result.scalars().all())


async def list_project_messages(session: AsyncSession, project: Project) -> list[Message]:
    """Project-level thread only; task comments are listed under their task."""
    result = await session.execute(
        select(Message)
        .where(Message.project_id == project.id, Message.task_id.is_(None))
        .order_by(Message.created_at)
    )
    return list(result.scalars().all())


async def post_message(
    session: AsyncSession,
    auth: CurrentUser,
    body: MessageCreate,
    project: Project,
    task: Optional[Task] = None,
) -> Message:
    """Append a comment to a project thread, or to a task thread when ``task`` is set.

    Mentions are the union of the explicit list and ``@<uuid>`` tokens in the
    content, restricted to users who can see the thread. Mentioned users other
    than the sender get a notification.
    """
    candidates = list(dict.fromkeys([*body.mentioned_users, *parse_mentions(body.content)]))
    allowed = await users_with_project_access(session, project.id, candidates)
    mentioned = [uid for uid in candidates if uid in allowed]

    message = Message(
        content=body.content,
        project_id=project.id,
        task_id=task.id if task else None,
        sender_id=auth.user_id,
        mentioned_users=[str(uid) for uid in mentioned],
        file_url=body.file_url,
        file_name=body.file_name,
    )
    session.add(message)
    await session.flush()
    queue_change(session, "messages", ChangeType.INSERT, message)

    recipients = [uid for uid in mentioned if uid != auth.user_id]
    if recipients:
        sender = auth.profile
        sender_name = (
            f"{sender.first_name} {sender.last_name}".strip() if sender else ""
        ) or auth.email
        await notify_mentions(
            session,
            recipients,
            sender_name=sender_name,
            related_type="task" if task else "project",
            related_id=task.id if task else project.id,
        )

    log.info(
        "message.posted",
        message_id=str(message.id),
        project_id=str(project.id),
        task_id=str(task.id) if task else None,
        mentions=len(mentioned),
        has_file=bool(body.file_url),
    )
    return message
