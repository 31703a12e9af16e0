"""
Subtask endpoints addressed by subtask id.

Visibility follows the parent task; writes need the subtask creator, an
assignee of the parent task, or an admin.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamboard.core.access import get_editable_subtask, get_subtask_or_404
from teamboard.core.auth import CurrentUser, require_approved
from teamboard.core.database import get_session
from teamboard.core.realtime import commit_and_publish
from teamboard.services.subtasks import delete_subtask, toggle_subtask, update_subtask
from teamboard_shared.schemas.tasks import SubtaskRead, SubtaskUpdate

router = APIRouter()


@router.get("/{subtask_id}", response_model=SubtaskRead)
async def get_subtask_endpoint(
    subtask_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    subtask = await get_subtask_or_404(session, auth, subtask_id)
    return SubtaskRead.model_validate(subtask)


@router.patch("/{subtask_id}", response_model=SubtaskRead)
async def update_subtask_endpoint(
    subtask_id: uuid.UUID,
    body: SubtaskUpdate,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    subtask = await get_editable_subtask(session, auth, subtask_id)
    subtask = await update_subtask(session, subtask, body)
    await commit_and_publish(session)
    return SubtaskRead.model_validate(subtask)


@router.post("/{subtask_id}/toggle", response_model=SubtaskRead)
async def toggle_subtask_endpoint(
    subtask_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    """Flip the completion flag."""
    subtask = await get_editable_subtask(session, auth, subtask_id)
    subtask = await toggle_subtask(session, subtask)
    await commit_and_publish(session)
    return SubtaskRead.model_validate(subtask)


@router.delete("/{subtask_id}", status_code=204)
async def delete_subtask_endpoint(
    subtask_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    subtask = await get_editable_subtask(session, auth, subtask_id)
    await delete_subtask(session, subtask)
    await commit_and_publish(session)
