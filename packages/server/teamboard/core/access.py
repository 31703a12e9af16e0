"""
Access policy.

Every read and write on project data goes through these predicates:

- admin := role is admin AND profile approved; admins bypass membership
- can_access_project(user, project) := admin OR (approved AND a
  project_members row exists for the pair)
- tasks, subtasks and messages inherit visibility from their project

Rows the caller cannot see are reported as 404 so their existence does not
leak. Rows the caller can see but not write are reported as 403.

The same rules are expressed as PostgreSQL row-level security policies in
the initial migration.
"""

from __future__ import annotations

import uuid
from typing import Iterable

import sqlalchemy as sa
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamboard.core.auth import CurrentUser
from teamboard.models.project import Project, ProjectMember
from teamboard.models.task import Subtask, Task, TaskAssignment
from teamboard.models.user import Profile
from teamboard_shared.schemas.common import Role


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def member_project_ids_subquery(user_id: uuid.UUID):
    return select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)


def project_visibility_clause(auth: CurrentUser, project_id_column=Project.id):
    """WHERE clause restricting ``project_id_column`` to projects visible to ``auth``."""
    if auth.is_admin:
        return sa.true()
    if not auth.is_approved:
        return sa.false()
    return project_id_column.in_(member_project_ids_subquery(auth.user_id))


async def can_access_project(
    session: AsyncSession, auth: CurrentUser, project_id: uuid.UUID
) -> bool:
    if auth.is_admin:
        return True
    if not auth.is_approved:
        return False
    result = await session.execute(
        select(ProjectMember.project_id).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == auth.user_id,
        )
    )
    return result.first() is not None


async def users_with_project_access(
    session: AsyncSession, project_id: uuid.UUID, user_ids: Iterable[uuid.UUID]
) -> set[uuid.UUID]:
    """The subset of ``user_ids`` for whom ``can_access_project`` holds."""
    ids = set(user_ids)
    if not ids:
        return set()
    members = select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)
    result = await session.execute(
        select(Profile.user_id).where(
            Profile.user_id.in_(ids),
            Profile.is_approved.is_(True),
            sa.or_(Profile.role == Role.ADMIN.value, Profile.user_id.in_(members)),
        )
    )
    return {row[0] for row in result.all()}


async def is_task_assignee(
    session: AsyncSession, task_id: uuid.UUID, user_id: uuid.UUID
) -> bool:
    result = await session.execute(
        select(TaskAssignment.task_id).where(
            TaskAssignment.task_id == task_id,
            TaskAssignment.user_id == user_id,
        )
    )
    return result.first() is not None


async def can_edit_subtask(
    session: AsyncSession, auth: CurrentUser, subtask: Subtask
) -> bool:
    """Creator of the subtask, any assignee of the parent task, or an admin."""
    if auth.is_admin:
        return True
    if not auth.is_approved:
        return False
    if subtask.created_by == auth.user_id:
        return True
    return await is_task_assignee(session, subtask.task_id, auth.user_id)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_project_or_404(
    session: AsyncSession, auth: CurrentUser, project_id: uuid.UUID
) -> Project:
    project = await session.get(Project, project_id)
    if not project or not await can_access_project(session, auth, project.id):
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def get_task_or_404(
    session: AsyncSession, auth: CurrentUser, task_id: uuid.UUID
) -> Task:
    task = await session.get(Task, task_id)
    if not task or not await can_access_project(session, auth, task.project_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return task


async def get_subtask_or_404(
    session: AsyncSession, auth: CurrentUser, subtask_id: uuid.UUID
) -> Subtask:
    subtask = await session.get(Subtask, subtask_id)
    if not subtask:
        raise HTTPException(status_code=404, detail="Subtask not found")
    task = await session.get(Task, subtask.task_id)
    if not task or not await can_access_project(session, auth, task.project_id):
        raise HTTPException(status_code=404, detail="Subtask not found")
    return subtask


async def get_editable_subtask(
    session: AsyncSession, auth: CurrentUser, subtask_id: uuid.UUID
) -> Subtask:
    subtask = await get_subtask_or_404(session, auth, subtask_id)
    if not await can_edit_subtask(session, auth, subtask):
        raise HTTPException(
            status_code=403,
            detail="Only the subtask creator, a task assignee or an admin can modify this subtask",
        )
    return subtask
