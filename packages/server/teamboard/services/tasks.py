"""
Task service layer: business logic for tasks and their assignments.

Handles:
- Task CRUD with multi-user assignment
- Assignment replacement that notifies only newly added assignees
- Status changes (any status is reachable from any other)
- Board grouping and enrichment of task rows for API responses
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Iterable, Optional, Sequence

import sqlalchemy as sa
import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamboard.core.access import project_visibility_clause
from teamboard.core.auth import CurrentUser
from teamboard.core.realtime import queue_change
from teamboard.models.message import Message
from teamboard.models.project import Project
from teamboard.models.task import Subtask, Task, TaskAssignment
from teamboard.services.notifications import notify_task_assignment
from teamboard.services.projects import ensure_profiles_exist, validate_dates
from teamboard_shared.schemas.common import (
    TASK_STATUS_ORDER,
    ChangeType,
    TaskPriority,
    TaskStatus,
)
from teamboard_shared.schemas.tasks import (
    BoardColumn,
    TaskBoard,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------

async def _assignees_by_task(
    session: AsyncSession, task_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, list[uuid.UUID]]:
    assignees: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
    if not task_ids:
        return assignees
    result = await session.execute(
        select(TaskAssignment.task_id, TaskAssignment.user_id)
        .where(TaskAssignment.task_id.in_(task_ids))
        .order_by(TaskAssignment.created_at)
    )
    for task_id, user_id in result.all():
        assignees[task_id].append(user_id)
    return assignees


async def _project_names(
    session: AsyncSession, project_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, str]:
    ids = set(project_ids)
    if not ids:
        return {}
    result = await session.execute(select(Project.id, Project.name).where(Project.id.in_(ids)))
    return {pid: name for pid, name in result.all()}


async def enrich_tasks(session: AsyncSession, tasks: Sequence[Task]) -> list[TaskRead]:
    """Convert Task rows to TaskRead with project name and assignee ids (batched)."""
    assignees = await _assignees_by_task(session, [t.id for t in tasks])
    names = await _project_names(session, (t.project_id for t in tasks))
    return [
        TaskRead(
            id=t.id,
            title=t.title,
            description=t.description,
            status=t.status,
            priority=t.priority,
            project_id=t.project_id,
            project_name=names.get(t.project_id),
            created_by=t.created_by,
            assignee_ids=assignees.get(t.id, []),
            start_date=t.start_date,
            end_date=t.end_date,
            created_at=t.created_at,
            updated_at=t.updated_at,
        )
        for t in tasks
    ]


async def enrich_task(session: AsyncSession, task: Task) -> TaskRead:
    return (await enrich_tasks(session, [task]))[0]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def list_tasks(
    session: AsyncSession,
    auth: CurrentUser,
    project_id: Optional[uuid.UUID] = None,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    assignee_id: Optional[uuid.UUID] = None,
    q: Optional[str] = None,
) -> list[Task]:
    """Tasks whose project is visible to ``auth``, newest first."""
    stmt = select(Task).where(project_visibility_clause(auth, Task.project_id))

    if project_id:
        stmt = stmt.where(Task.project_id == project_id)
    if status:
        stmt = stmt.where(Task.status == status.value)
    if priority:
        stmt = stmt.where(Task.priority == priority.value)
    if assignee_id:
        stmt = stmt.where(
            Task.id.in_(
                select(TaskAssignment.task_id).where(TaskAssignment.user_id == assignee_id)
            )
        )
    if q:
        pattern = f"%{q.lower()}%"
        stmt = stmt.where(
            sa.or_(
                sa.func.lower(Task.title).like(pattern),
                sa.func.lower(sa.func.coalesce(Task.description, "")).like(pattern),
            )
        )

    stmt = stmt.order_by(Task.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def build_board(
    session: AsyncSession,
    auth: CurrentUser,
    project_id: Optional[uuid.UUID] = None,
) -> TaskBoard:
    """Visible tasks grouped into one column per status, in workflow order."""
    tasks = await list_tasks(session, auth, project_id=project_id)
    enriched = await enrich_tasks(session, tasks)
    by_status: dict[str, list[TaskRead]] = defaultdict(list)
    for task in enriched:
        by_status[task.status.value].append(task)
    return TaskBoard(
        columns=[
            BoardColumn(status=status, tasks=by_status.get(status.value, []))
            for status in TASK_STATUS_ORDER
        ]
    )


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------

async def replace_assignments(
    session: AsyncSession, task: Task, user_ids: Sequence[uuid.UUID]
) -> list[uuid.UUID]:
    """Make ``user_ids`` the exact assignee set of ``task``.

    Runs inside the caller's transaction, so the delete and the insert commit
    together. Returns only the user ids that were not assigned before.
    """
    wanted = list(dict.fromkeys(user_ids))
    await ensure_profiles_exist(session, wanted)

    result = await session.execute(
        select(TaskAssignment).where(TaskAssignment.task_id == task.id)
    )
    existing = {a.user_id: a for a in result.scalars().all()}

    for uid, assignment in existing.items():
        if uid not in wanted:
            old = assignment.model_dump()
            await session.delete(assignment)
            queue_change(session, "task_assignments", ChangeType.DELETE, old_record=old)

    added = [uid for uid in wanted if uid not in existing]
    for uid in added:
        assignment = TaskAssignment(task_id=task.id, user_id=uid)
        session.add(assignment)
        queue_change(session, "task_assignments", ChangeType.INSERT, assignment)

    await session.flush()
    return added


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def _ensure_project(session: AsyncSession, project_id: uuid.UUID) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def create_task(
    session: AsyncSession, auth: CurrentUser, task_in: TaskCreate
) -> Task:
    """Create a task in ``todo`` and notify every assignee."""
    await _ensure_project(session, task_in.project_id)

    task = Task(
        project_id=task_in.project_id,
        title=task_in.title,
        description=task_in.description,
        priority=task_in.priority.value,
        status=TaskStatus.TODO.value,
        start_date=task_in.start_date,
        end_date=task_in.end_date,
        created_by=auth.user_id,
    )
    session.add(task)
    await session.flush()
    queue_change(session, "tasks", ChangeType.INSERT, task)

    added = await replace_assignments(session, task, task_in.assignee_ids)
    await notify_task_assignment(session, task.id, task.title, added)

    log.info(
        "task.created",
        task_id=str(task.id),
        project_id=str(task.project_id),
        assignees=len(added),
    )
    return task


async def update_task(
    session: AsyncSession, task: Task, task_in: TaskUpdate
) -> tuple[Task, list[uuid.UUID]]:
    """Update task fields and, when given, the assignee set.

    Returns the task and the newly added assignees (who have been notified).
    """
    data = task_in.model_dump(exclude_unset=True)
    assignee_ids = data.pop("assignee_ids", None)

    validate_dates(
        data.get("start_date", task.start_date),
        data.get("end_date", task.end_date),
    )
    if data.get("project_id") is not None:
        await _ensure_project(session, data["project_id"])

    old = task.model_dump()
    for key, value in data.items():
        if value is None and key in ("title", "priority", "project_id"):
            continue
        if key == "priority":
            value = value.value
        setattr(task, key, value)
    session.add(task)
    await session.flush()
    queue_change(session, "tasks", ChangeType.UPDATE, task, old)

    added: list[uuid.UUID] = []
    if assignee_ids is not None:
        added = await replace_assignments(session, task, assignee_ids)
        await notify_task_assignment(session, task.id, task.title, added)

    log.info(
        "task.updated",
        task_id=str(task.id),
        fields=sorted(data),
        new_assignees=[str(a) for a in added],
    )
    return task, added


async def set_status(
    session: AsyncSession, auth: CurrentUser, task: Task, status: TaskStatus
) -> Task:
    """Set the task status. No transition graph; setting the current status is a no-op."""
    if task.status == status.value:
        return task

    old = task.model_dump()
    task.status = status.value
    session.add(task)
    await session.flush()
    queue_change(session, "tasks", ChangeType.UPDATE, task, old)
    log.info(
        "task.status_changed",
        task_id=str(task.id),
        from_status=old["status"],
        to_status=status.value,
        by=str(auth.user_id),
    )
    return task


async def delete_task(session: AsyncSession, task: Task) -> None:
    """Delete a task with its subtasks, assignments and comments."""
    await session.execute(sa.delete(Subtask).where(Subtask.task_id == task.id))
    await session.execute(sa.delete(TaskAssignment).where(TaskAssignment.task_id == task.id))
    await session.execute(sa.delete(Message).where(Message.task_id == task.id))

    old = task.model_dump()
    await session.delete(task)
    await session.flush()
    queue_change(session, "tasks", ChangeType.DELETE, old_record=old)
    log.info("task.deleted", task_id=str(old["id"]))
