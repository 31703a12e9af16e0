"""Dashboard counters over the caller's visible data."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamboard.core.access import project_visibility_clause
from teamboard.core.auth import CurrentUser
from teamboard.models.project import Project
from teamboard.models.task import Task
from teamboard.models.user import Profile
from teamboard_shared.schemas.common import ACTIVE_TASK_STATUSES, ProjectStatus, TaskStatus
from teamboard_shared.schemas.projects import DashboardStats


async def _count(session: AsyncSession, stmt) -> int:
    result = await session.execute(stmt)
    return result.scalar_one()


async def get_stats(session: AsyncSession, auth: CurrentUser) -> DashboardStats:
    visible_tasks = project_visibility_clause(auth, Task.project_id)
    active_tasks = await _count(
        session,
        select(sa.func.count(Task.id)).where(
            visible_tasks,
            Task.status.in_([s.value for s in ACTIVE_TASK_STATUSES]),
        ),
    )
    completed_tasks = await _count(
        session,
        select(sa.func.count(Task.id)).where(
            visible_tasks, Task.status == TaskStatus.COMPLETED.value
        ),
    )
    active_projects = await _count(
        session,
        select(sa.func.count(Project.id)).where(
            project_visibility_clause(auth),
            Project.status == ProjectStatus.ACTIVE.value,
        ),
    )
    team_members = await _count(
        session,
        select(sa.func.count(Profile.id)).where(Profile.is_approved.is_(True)),
    )
    return DashboardStats(
        active_tasks=active_tasks,
        completed_tasks=completed_tasks,
        active_projects=active_projects,
        team_members=team_members,
    )
