"""
Project endpoints: CRUD, membership with leader flags, and the project
comment thread.

Reads are filtered by membership (admins see all); writes are admin-only.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamboard.core.access import get_project_or_404
from teamboard.core.auth import CurrentUser, require_admin, require_approved
from teamboard.core.database import get_session
from teamboard.core.realtime import commit_and_publish
from teamboard.services.messages import enrich_messages, list_project_messages, post_message
from teamboard.services.projects import (
    add_member,
    create_project,
    delete_project,
    enrich_project,
    enrich_projects,
    list_members,
    list_projects,
    remove_member,
    update_project,
)
from teamboard_shared.schemas.common import ProjectStatus
from teamboard_shared.schemas.messages import MessageCreate, MessageRead
from teamboard_shared.schemas.projects import (
    ProjectCreate,
    ProjectMemberAdd,
    ProjectMemberRead,
    ProjectRead,
    ProjectUpdate,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

@router.get("/", response_model=List[ProjectRead])
async def list_projects_endpoint(
    status: Optional[ProjectStatus] = None,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    """Projects the caller is a member of (all projects for admins), newest first."""
    projects = await list_projects(session, auth, status=status)
    return await enrich_projects(session, projects)


@router.post("/", response_model=ProjectRead, status_code=201)
async def create_project_endpoint(
    body: ProjectCreate,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    project = await create_project(session, auth, body)
    await commit_and_publish(session)
    return await enrich_project(session, project)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project_endpoint(
    project_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    project = await get_project_or_404(session, auth, project_id)
    return await enrich_project(session, project)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project_endpoint(
    project_id: uuid.UUID,
    body: ProjectUpdate,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    project = await get_project_or_404(session, auth, project_id)
    project = await update_project(session, project, body)
    await commit_and_publish(session)
    return await enrich_project(session, project)


@router.delete("/{project_id}", status_code=204)
async def delete_project_endpoint(
    project_id: uuid.UUID,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    project = await get_project_or_404(session, auth, project_id)
    await delete_project(session, project)
    await commit_and_publish(session)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get("/{project_id}/members", response_model=List[ProjectMemberRead])
async def list_members_endpoint(
    project_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    project = await get_project_or_404(session, auth, project_id)
    return await list_members(session, project)


@router.post("/{project_id}/members", response_model=List[ProjectMemberRead], status_code=201)
async def add_member_endpoint(
    project_id: uuid.UUID,
    body: ProjectMemberAdd,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Add a member, or change an existing member's leader flag."""
    project = await get_project_or_404(session, auth, project_id)
    await add_member(session, project, body)
    await commit_and_publish(session)
    return await list_members(session, project)


@router.delete("/{project_id}/members/{user_id}", status_code=204)
async def remove_member_endpoint(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    project = await get_project_or_404(session, auth, project_id)
    await remove_member(session, project, user_id)
    await commit_and_publish(session)


# ---------------------------------------------------------------------------
# Project thread
# ---------------------------------------------------------------------------

@router.get("/{project_id}/messages", response_model=List[MessageRead])
async def list_project_messages_endpoint(
    project_id: uuid.UUID,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    project = await get_project_or_404(session, auth, project_id)
    messages = await list_project_messages(session, project)
    return await enrich_messages(session, messages)


@router.post("/{project_id}/messages", response_model=MessageRead, status_code=201)
async def post_project_message_endpoint(
    project_id: uuid.UUID,
    body: MessageCreate,
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    project = await get_project_or_404(session, auth, project_id)
    message = await post_message(session, auth, body, project)
    await commit_and_publish(session)
    return (await enrich_messages(session, [message]))[0]
