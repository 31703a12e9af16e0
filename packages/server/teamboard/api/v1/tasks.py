"""
Task endpoints: CRUD, board, status changes, subtasks, comments and the
per-task change stream.

Status columns: todo | in_progress | review | to_modify | completed | cancelled
- Any status may be set from any other; setting the current status is a no-op.
- Anyone who can see a task may change its status; other edits are admin-only.
- Replacing assignees notifies only users who were not assigned before.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from teamboard.core.access import get_project_or_404, get_task_or_404
from teamboard.core.auth import CurrentUser, require_admin, require_approved
from teamboard.core.database import get_session
from teamboard.core.realtime import ChangeFilter, commit_and_publish, stream_response
from teamboard.models.project import Project
from teamboard.services.messages import enrich_messages, list_task_messages, post_message
from teamboard.services.subtasks import create_subtask, list_subtasks
from teamboard.services.tasks import (
    build_board,
    create_task,
    delete_task,
    enrich_task,
    enrich_tasks,
    list_tasks,
    set_status,
    update_task,
)
from teamboard_shared.schemas.common import TaskPriority, TaskStatus
from teamboard_shared.schemas.messages import MessageCreate, MessageRead
from teamboard_shared.schemas.tasks import (
    SubtaskCreate,
    SubtaskRead,
    TaskBoard,
    TaskCreate,
    TaskRead,
    TaskStatusUpdate,
    TaskUpdate,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[TaskRead])
async def list_tasks_endpoint(
    project_id: Optional[uuid.UUID] = None,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    assignee_id: Optional[uuid.UUID] = None,
    q: Optional[str] = None,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    """List visible tasks with optional filters by project, status, priority, assignee, text."""
    tasks = await list_tasks(
        session,
        auth,
        project_id=project_id,
        status=status,
        priority=priority,
        assignee_id=assignee_id,
        q=q,
    )
    return await enrich_tasks(session, tasks)


@router.get("/board", response_model=TaskBoard)
async def board_endpoint(
    project_id: Optional[uuid.UUID] = None,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    """Visible tasks grouped into status columns."""
    if project_id:
        await get_project_or_404(session, auth, project_id)
    return await build_board(session, auth, project_id=project_id)


@router.post("/", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    task_in: TaskCreate,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Create a task in ``todo``; every assignee is notified."""
    task = await create_task(session, auth, task_in)
    await commit_and_publish(session)
    return await enrich_task(session, task)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    task_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, auth, task_id)
    return await enrich_task(session, task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task_endpoint(
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, auth, task_id)
    task, _added = await update_task(session, task, task_in)
    await commit_and_publish(session)
    return await enrich_task(session, task)


@router.delete("/{task_id}", status_code=204)
async def delete_task_endpoint(
    task_id: uuid.UUID,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, auth, task_id)
    await delete_task(session, task)
    await commit_and_publish(session)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


@router.patch("/{task_id}/status", response_model=TaskRead)
async def set_status_endpoint(
    task_id: uuid.UUID,
    body: TaskStatusUpdate,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    """Move a task to any column."""
    task = await get_task_or_404(session, auth, task_id)
    task = await set_status(session, auth, task, body.status)
    await commit_and_publish(session)
    return await enrich_task(session, task)


# ---------------------------------------------------------------------------
# Subtasks
# ---------------------------------------------------------------------------


@router.get("/{task_id}/subtasks", response_model=List[SubtaskRead])
async def list_subtasks_endpoint(
    task_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, auth, task_id)
    return [SubtaskRead.model_validate(s) for s in await list_subtasks(session, task)]


@router.post("/{task_id}/subtasks", response_model=SubtaskRead, status_code=201)
async def create_subtask_endpoint(
    task_id: uuid.UUID,
    body: SubtaskCreate,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, auth, task_id)
    subtask = await create_subtask(session, auth, task, body)
    await commit_and_publish(session)
    return SubtaskRead.model_validate(subtask)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


@router.get("/{task_id}/messages", response_model=List[MessageRead])
async def list_task_messages_endpoint(
    task_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, auth, task_id)
    messages = await list_task_messages(session, task)
    return await enrich_messages(session, messages)


@router.post("/{task_id}/messages", response_model=MessageRead, status_code=201)
async def post_task_message_endpoint(
    task_id: uuid.UUID,
    body: MessageCreate,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, auth, task_id)
    project = await session.get(Project, task.project_id)
    message = await post_message(session, auth, body, project, task=task)
    await commit_and_publish(session)
    return (await enrich_messages(session, [message]))[0]


# ---------------------------------------------------------------------------
# Live updates
# ---------------------------------------------------------------------------


@router.get("/{task_id}/stream")
async def stream_task_endpoint(
    request: Request,
    task_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    """SSE stream of comment, subtask and task changes for one task.

    Clients fetch the current state first and then apply the stream on top.
    """
    task = await get_task_or_404(session, auth, task_id)
    filters = [
        ChangeFilter(table="messages", column="task_id", value=task.id),
        ChangeFilter(table="subtasks", column="task_id", value=task.id),
        ChangeFilter(table="tasks", column="id", value=task.id),
    ]
    return await stream_response(request, session, filters, jti=auth.jti)
