"""
Project service: CRUD, membership with leader flags, and enrichment of
project rows for API responses.
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
from teamboard.models.project import Project, ProjectMember
from teamboard.models.task import Subtask, Task, TaskAssignment
from teamboard.models.user import Profile
from teamboard_shared.schemas.common import ChangeType, ProjectStatus
from teamboard_shared.schemas.projects import (
    ProjectCreate,
    ProjectMemberAdd,
    ProjectMemberRead,
    ProjectRead,
    ProjectUpdate,
    check_date_range,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def validate_dates(start, end) -> None:
    try:
        check_date_range(start, end)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


async def ensure_profiles_exist(session: AsyncSession, user_ids: Iterable[uuid.UUID]) -> None:
    wanted = set(user_ids)
    if not wanted:
        return
    result = await session.execute(select(Profile.user_id).where(Profile.user_id.in_(wanted)))
    missing = wanted - {row[0] for row in result.all()}
    if missing:
        raise HTTPException(
            status_code=422,
            detail=f"Unknown user(s): {', '.join(sorted(str(m) for m in missing))}",
        )


async def _members_by_project(
    session: AsyncSession, project_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, list[ProjectMemberRead]]:
    members: dict[uuid.UUID, list[ProjectMemberRead]] = defaultdict(list)
    if not project_ids:
        return members
    result = await session.execute(
        select(ProjectMember, Profile)
        .outerjoin(Profile, Profile.user_id == ProjectMember.user_id)
        .where(ProjectMember.project_id.in_(project_ids))
        .order_by(ProjectMember.is_leader.desc(), ProjectMember.created_at)
    )
    for pm, profile in result.all():
        members[pm.project_id].append(
            ProjectMemberRead(
                user_id=pm.user_id,
                first_name=profile.first_name if profile else "",
                last_name=profile.last_name if profile else "",
                email=profile.email if profile else None,
                is_leader=pm.is_leader,
                created_at=pm.created_at,
            )
        )
    return members


async def _task_counts(
    session: AsyncSession, project_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, int]:
    if not project_ids:
        return {}
    result = await session.execute(
        select(Task.project_id, sa.func.count(Task.id))
        .where(Task.project_id.in_(project_ids))
        .group_by(Task.project_id)
    )
    return {pid: count for pid, count in result.all()}


async def enrich_projects(
    session: AsyncSession, projects: Sequence[Project]
) -> list[ProjectRead]:
    """Convert Project rows to ProjectRead with members and task counts (batched)."""
    ids = [p.id for p in projects]
    members = await _members_by_project(session, ids)
    counts = await _task_counts(session, ids)
    return [
        ProjectRead(
            id=p.id,
            name=p.name,
            description=p.description,
            status=p.status,
            priority=p.priority,
            start_date=p.start_date,
            end_date=p.end_date,
            created_by=p.created_by,
            members=members.get(p.id, []),
            task_count=counts.get(p.id, 0),
            created_at=p.created_at,
            updated_at=p.updated_at,
        )
        for p in projects
    ]


async def enrich_project(session: AsyncSession, project: Project) -> ProjectRead:
    return (await enrich_projects(session, [project]))[0]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def list_projects(
    session: AsyncSession,
    auth: CurrentUser,
    status: Optional[ProjectStatus] = None,
) -> list[Project]:
    """Projects visible to ``auth``, newest first."""
    stmt = select(Project).where(project_visibility_clause(auth))
    if status:
        stmt = stmt.where(Project.status == status.value)
    stmt = stmt.order_by(Project.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def create_project(
    session: AsyncSession, auth: CurrentUser, project_in: ProjectCreate
) -> Project:
    """Create a project. Leaders missing from ``members`` are added as leader members."""
    leaders = set(project_in.leaders)
    member_ids = list(dict.fromkeys([*project_in.members, *project_in.leaders]))
    await ensure_profiles_exist(session, member_ids)

    project = Project(
        name=project_in.name,
        description=project_in.description,
        status=project_in.status.value,
        priority=project_in.priority.value,
        start_date=project_in.start_date,
        end_date=project_in.end_date,
        created_by=auth.user_id,
    )
    session.add(project)
    await session.flush()

    for uid in member_ids:
        member = ProjectMember(project_id=project.id, user_id=uid, is_leader=uid in leaders)
        session.add(member)
        queue_change(session, "project_members", ChangeType.INSERT, member)

    await session.flush()
    queue_change(session, "projects", ChangeType.INSERT, project)
    log.info(
        "project.created",
        project_id=str(project.id),
        members=len(member_ids),
        leaders=len(leaders),
    )
    return project


async def update_project(
    session: AsyncSession, project: Project, project_in: ProjectUpdate
) -> Project:
    data = project_in.model_dump(exclude_unset=True)
    validate_dates(
        data.get("start_date", project.start_date),
        data.get("end_date", project.end_date),
    )

    old = project.model_dump()
    for key, value in data.items():
        if key in ("status", "priority"):
            if value is None:
                continue
            value = value.value
        if key == "name" and value is None:
            continue
        setattr(project, key, value)

    session.add(project)
    await session.flush()
    queue_change(session, "projects", ChangeType.UPDATE, project, old)
    log.info("project.updated", project_id=str(project.id), fields=sorted(data))
    return project


async def delete_project(session: AsyncSession, project: Project) -> None:
    """Delete a project with its members, tasks (and their children) and messages."""
    task_ids = (
        await session.execute(select(Task.id).where(Task.project_id == project.id))
    ).scalars().all()

    if task_ids:
        await session.execute(sa.delete(Subtask).where(Subtask.task_id.in_(task_ids)))
        await session.execute(sa.delete(TaskAssignment).where(TaskAssignment.task_id.in_(task_ids)))
        await session.execute(sa.delete(Message).where(Message.task_id.in_(task_ids)))
        await session.execute(sa.delete(Task).where(Task.id.in_(task_ids)))
    await session.execute(sa.delete(Message).where(Message.project_id == project.id))
    await session.execute(sa.delete(ProjectMember).where(ProjectMember.project_id == project.id))

    old = project.model_dump()
    await session.delete(project)
    await session.flush()
    queue_change(session, "projects", ChangeType.DELETE, old_record=old)
    log.info("project.deleted", project_id=str(old["id"]), tasks=len(task_ids))


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------

async def list_members(session: AsyncSession, project: Project) -> list[ProjectMemberRead]:
    members = await _members_by_project(session, [project.id])
    return members.get(project.id, [])


async def add_member(
    session: AsyncSession, project: Project, body: ProjectMemberAdd
) -> ProjectMember:
    """Add a member, or update the leader flag of an existing one."""
    await ensure_profiles_exist(session, [body.user_id])
    member = await session.get(ProjectMember, (project.id, body.user_id))
    if member:
        old = member.model_dump()
        member.is_leader = body.is_leader
        session.add(member)
        queue_change(session, "project_members", ChangeType.UPDATE, member, old)
    else:
        member = ProjectMember(project_id=project.id, user_id=body.user_id, is_leader=body.is_leader)
        session.add(member)
        queue_change(session, "project_members", ChangeType.INSERT, member)
    await session.flush()
    log.info(
        "project.member_added",
        project_id=str(project.id),
        user_id=str(body.user_id),
        is_leader=body.is_leader,
    )
    return member


async def remove_member(
    session: AsyncSession, project: Project, user_id: uuid.UUID
) -> None:
    member = await session.get(ProjectMember, (project.id, user_id))
    if not member:
        raise HTTPException(status_code=404, detail="User is not a member of this project")
    old = member.model_dump()
    await session.delete(member)
    await session.flush()
    queue_change(session, "project_members", ChangeType.DELETE, old_record=old)
    log.info("project.member_removed", project_id=str(project.id), user_id=str(user_id))
