"""
Profile endpoints: own profile, team list, approval and role management.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from teamboard.core.auth import CurrentUser, get_current_user, require_admin
from teamboard.core.database import get_session
from teamboard.core.realtime import commit_and_publish
from teamboard.services.profiles import (
    delete_profile,
    get_profile_by_user_id,
    get_profile_or_404,
    list_profiles,
    set_approval,
    update_profile,
)
from teamboard_shared.schemas.users import ProfileListResponse, ProfileRead, ProfileUpdate

router = APIRouter()


@router.get("/me", response_model=ProfileRead)
async def get_my_profile(
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Own profile. Available to unapproved accounts so they can see their status."""
    profile = await get_profile_by_user_id(session, auth.user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return ProfileRead.model_validate(profile)


@router.patch("/me", response_model=ProfileRead)
async def update_my_profile(
    body: ProfileUpdate,
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    profile = await update_profile(session, auth, auth.user_id, body)
    await commit_and_publish(session)
    return ProfileRead.model_validate(profile)


@router.get("/", response_model=ProfileListResponse)
async def list_profiles_endpoint(
    approved: Optional[bool] = None,
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Admins see every profile; others see approved profiles and their own."""
    profiles = await list_profiles(session, auth, approved=approved)
    return ProfileListResponse(data=[ProfileRead.model_validate(p) for p in profiles])


@router.get("/{user_id}", response_model=ProfileRead)
async def get_profile_endpoint(
    user_id: uuid.UUID,
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    profile = await get_profile_or_404(session, auth, user_id)
    return ProfileRead.model_validate(profile)


@router.patch("/{user_id}", response_model=ProfileRead)
async def update_profile_endpoint(
    user_id: uuid.UUID,
    body: ProfileUpdate,
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Names: owner or admin. Role and approval: admin only (403 otherwise)."""
    profile = await update_profile(session, auth, user_id, body)
    await commit_and_publish(session)
    return ProfileRead.model_validate(profile)


@router.post("/{user_id}/approve", response_model=ProfileRead)
async def approve_profile_endpoint(
    user_id: uuid.UUID,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    profile = await set_approval(session, auth, user_id, True)
    await commit_and_publish(session)
    return ProfileRead.model_validate(profile)


@router.post("/{user_id}/revoke", response_model=ProfileRead)
async def revoke_profile_endpoint(
    user_id: uuid.UUID,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    profile = await set_approval(session, auth, user_id, False)
    await commit_and_publish(session)
    return ProfileRead.model_validate(profile)


@router.delete("/{user_id}", status_code=204)
async def delete_profile_endpoint(
    user_id: uuid.UUID,
    auth: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    await delete_profile(session, auth, user_id)
    await commit_and_publish(session)
