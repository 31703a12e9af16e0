"""
Notification endpoints. Every operation is scoped to the caller's own
mailbox; other users' notifications are reported as not found.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from teamboard.core.auth import CurrentUser, get_current_user
from teamboard.core.database import get_session
from teamboard.core.realtime import ChangeFilter, commit_and_publish, stream_response
from teamboard.services.notifications import (
    count_unread,
    delete_notification,
    list_notifications,
    mark_all_as_read,
    mark_as_read,
    unread_in,
)
from teamboard_shared.schemas.notifications import (
    NotificationList,
    NotificationRead,
    UnreadCount,
)

router = APIRouter()


@router.get("/", response_model=NotificationList)
async def list_notifications_endpoint(
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Latest notifications, newest first, with the unread count."""
    rows = await list_notifications(session, auth.user_id)
    return NotificationList(
        data=[NotificationRead.model_validate(n) for n in rows],
        unread_count=unread_in(rows),
    )


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count_endpoint(
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return UnreadCount(unread_count=await count_unread(session, auth.user_id))


@router.get("/stream")
async def stream_notifications_endpoint(
    request: Request,
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """SSE stream of INSERT/UPDATE/DELETE changes on the caller's notifications."""
    filters = [ChangeFilter(table="notifications", column="user_id", value=auth.user_id)]
    return await stream_response(request, session, filters, jti=auth.jti)


@router.post("/read-all", response_model=UnreadCount)
async def mark_all_read_endpoint(
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await mark_all_as_read(session, auth.user_id)
    await commit_and_publish(session)
    return UnreadCount(unread_count=await count_unread(session, auth.user_id))


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_read_endpoint(
    notification_id: uuid.UUID,
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Idempotent."""
    notification = await mark_as_read(session, auth.user_id, notification_id)
    await commit_and_publish(session)
    return NotificationRead.model_validate(notification)


@router.delete("/{notification_id}", status_code=204)
async def delete_notification_endpoint(
    notification_id: uuid.UUID,
    auth: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await delete_notification(session, auth.user_id, notification_id)
    await commit_and_publish(session)
