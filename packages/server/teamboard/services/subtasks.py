"""Subtask service: checklist items under a task."""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamboard.core.auth import CurrentUser
from teamboard.core.realtime import queue_change
from teamboard.models.task import Subtask, Task
from teamboard_shared.schemas.common import ChangeType
from teamboard_shared.schemas.tasks import SubtaskCreate, SubtaskUpdate

log = structlog.get_logger()


async def list_subtasks(session: AsyncSession, task: Task) -> list[Subtask]:
    """Oldest first."""
    result = await session.execute(
        select(Subtask).where(Subtask.task_id == task.id).order_by(Subtask.created_at)
    )
    return list(result.scalars().all())


async def create_subtask(
    session: AsyncSession, auth: CurrentUser, task: Task, body: SubtaskCreate
) -> Subtask:
    subtask = Subtask(
        task_id=task.id,
        title=body.title,
        description=body.description,
        is_completed=False,
        created_by=auth.user_id,
    )
    session.add(subtask)
    await session.flush()
    queue_change(session, "subtasks", ChangeType.INSERT, subtask)
    log.info("subtask.created", subtask_id=str(subtask.id), task_id=str(task.id))
    return subtask


async def update_subtask(
    session: AsyncSession, subtask: Subtask, body: SubtaskUpdate
) -> Subtask:
    data = body.model_dump(exclude_unset=True)
    old = subtask.model_dump()
    for key, value in data.items():
        if value is None and key in ("title", "is_completed"):
            continue
        setattr(subtask, key, value)
    session.add(subtask)
    await session.flush()
    queue_change(session, "subtasks", ChangeType.UPDATE, subtask, old)
    return subtask


async def toggle_subtask(session: AsyncSession, subtask: Subtask) -> Subtask:
    """Flip the completion flag."""
    old = subtask.model_dump()
    subtask.is_completed = not subtask.is_completed
    session.add(subtask)
    await session.flush()
    queue_change(session, "subtasks", ChangeType.UPDATE, subtask, old)
    log.info(
        "subtask.toggled",
        subtask_id=str(subtask.id),
        is_completed=subtask.is_completed,
    )
    return subtask


async def delete_subtask(session: AsyncSession, subtask: Subtask) -> None:
    old = subtask.model_dump()
    await session.delete(subtask)
    await session.flush()
    queue_change(session, "subtasks", ChangeType.DELETE, old_record=old)
    log.info("subtask.deleted", subtask_id=str(old["id"]))
