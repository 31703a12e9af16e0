"""Dashboard endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamboard.core.auth import CurrentUser, require_approved
from teamboard.core.database import get_session
from teamboard.services.dashboard import get_stats
from teamboard_shared.schemas.projects import DashboardStats

router = APIRouter()


@router.get("/stats", response_model=DashboardStats)
async def dashboard_stats_endpoint(
    auth: CurrentUser = Depends(require_approved),
    session: AsyncSession = Depends(get_session),
):
    return await get_stats(session, auth)
