"""
Profile service: account creation, the approval gate, role changes and
profile removal.
"""

from __future__ import annotations

import uuid
from typing import Optional

import sqlalchemy as sa
import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamboard.core.auth import CurrentUser, hash_password
from teamboard.core.realtime import queue_change
from teamboard.models.notification import Notification
from teamboard.models.project import ProjectMember
from teamboard.models.task import TaskAssignment
from teamboard.models.user import Profile, User
from teamboard_shared.schemas.common import ChangeType, Role
from teamboard_shared.schemas.users import ProfileUpdate

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

async def create_account(
    session: AsyncSession,
    email: str,
    password: str,
    first_name: str = "",
    last_name: str = "",
) -> tuple[User, Profile]:
    """Create an identity and its profile in one transaction.

    Every new profile starts as an unapproved developer.
    """
    email = email.lower()
    result = await session.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(email=email, password_hash=hash_password(password))
    session.add(user)
    await session.flush()

    profile = Profile(
        user_id=user.id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=Role.DEVELOPER.value,
        is_approved=False,
    )
    session.add(profile)
    await session.flush()
    queue_change(session, "profiles", ChangeType.INSERT, profile)

    log.info("profile.created", user_id=str(user.id))
    return user, profile


async def get_profile_by_user_id(
    session: AsyncSession, user_id: uuid.UUID
) -> Optional[Profile]:
    result = await session.execute(select(Profile).where(Profile.user_id == user_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------

def _profile_visibility_clause(auth: CurrentUser):
    """Admins see everyone; approved users see approved profiles and their own."""
    if auth.is_admin:
        return sa.true()
    if auth.is_approved:
        return sa.or_(Profile.is_approved.is_(True), Profile.user_id == auth.user_id)
    return Profile.user_id == auth.user_id


async def list_profiles(
    session: AsyncSession,
    auth: CurrentUser,
    approved: Optional[bool] = None,
) -> list[Profile]:
    stmt = select(Profile).where(_profile_visibility_clause(auth))
    if approved is not None:
        stmt = stmt.where(Profile.is_approved.is_(approved))
    stmt = stmt.order_by(Profile.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_profile_or_404(
    session: AsyncSession, auth: CurrentUser, user_id: uuid.UUID
) -> Profile:
    result = await session.execute(
        select(Profile).where(
            Profile.user_id == user_id, _profile_visibility_clause(auth)
        )
    )
    profile = result.scalar_one_or_none()
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def update_profile(
    session: AsyncSession,
    auth: CurrentUser,
    user_id: uuid.UUID,
    req: ProfileUpdate,
) -> Profile:
    """Names: self or admin. Role and approval: admin only."""
    is_self = user_id == auth.user_id
    if is_self:
        profile = await get_profile_by_user_id(session, user_id)
        if not profile:
            raise HTTPException(status_code=404, detail="Profile not found")
    else:
        profile = await get_profile_or_404(session, auth, user_id)
        if not auth.is_admin:
            raise HTTPException(
                status_code=403,
                detail="Only the profile owner or an admin can change this profile",
            )

    data = req.model_dump(exclude_unset=True)
    privileged = {k for k in ("role", "is_approved") if data.get(k) is not None}

    if privileged and not auth.is_admin:
        log.warning(
            "profile.escalation_rejected",
            user_id=str(auth.user_id),
            target=str(user_id),
            fields=sorted(privileged),
        )
        raise HTTPException(status_code=403, detail="Only admins can change role or approval")

    if privileged and is_self:
        demotes = data.get("role") not in (None, Role.ADMIN) or data.get("is_approved") is False
        if demotes:
            raise HTTPException(status_code=400, detail="Admins cannot revoke their own access")

    old = profile.model_dump()
    for key in ("first_name", "last_name"):
        if data.get(key) is not None:
            setattr(profile, key, data[key])
    if data.get("role") is not None:
        profile.role = Role(data["role"]).value
    if data.get("is_approved") is not None:
        profile.is_approved = data["is_approved"]

    session.add(profile)
    await session.flush()
    queue_change(session, "profiles", ChangeType.UPDATE, profile, old)

    log.info(
        "profile.updated",
        user_id=str(user_id),
        by=str(auth.user_id),
        fields=sorted(k for k, v in data.items() if v is not None),
    )
    return profile


async def set_approval(
    session: AsyncSession, auth: CurrentUser, user_id: uuid.UUID, approved: bool
) -> Profile:
    profile = await update_profile(
        session, auth, user_id, ProfileUpdate(is_approved=approved)
    )
    log.info(
        "profile.approved" if approved else "profile.approval_revoked",
        user_id=str(user_id),
        by=str(auth.user_id),
    )
    return profile


async def delete_profile(
    session: AsyncSession, auth: CurrentUser, user_id: uuid.UUID
) -> None:
    """Remove a profile with its memberships, assignments and notifications.

    The login identity stays, but without a profile it has no access.
    """
    if user_id == auth.user_id:
        raise HTTPException(status_code=400, detail="Admins cannot delete their own profile")

    profile = await get_profile_by_user_id(session, user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")

    for model in (ProjectMember, TaskAssignment, Notification):
        await session.execute(sa.delete(model).where(model.user_id == user_id))

    old = profile.model_dump()
    await session.delete(profile)
    await session.flush()
    queue_change(session, "profiles", ChangeType.DELETE, old_record=old)

    log.info("profile.deleted", user_id=str(user_id), by=str(auth.user_id))
