"""
API v1 Router
"""

from fastapi import APIRouter
from . import dashboard, notifications, profiles, projects, subtasks, tasks

router = APIRouter()

router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(subtasks.router, prefix="/subtasks", tags=["Subtasks"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/profiles",
            "/projects",
            "/tasks",
            "/tasks/board",
            "/subtasks",
            "/notifications",
            "/dashboard/stats",
        ],
    }
