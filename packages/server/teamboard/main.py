"""
Teamboard API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from teamboard.core.config import get_settings
from teamboard.core.database import engine
from teamboard.core.errors import register_exception_handlers
from teamboard.core.logging import configure_logging
from teamboard.core.middleware import (
    CSRFMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
)
from teamboard.core.redis import close_redis, ping_redis
from teamboard.api.v1 import router as api_v1_router
from teamboard.api.v1.auth import router as auth_router

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Teamboard",
        description="Team, project and task management with approval-gated access.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (the last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token", "X-Request-ID"],
    )

    register_exception_handlers(app)

    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and Redis must both answer."""
        checks = {"database": True, "redis": await ping_redis()}
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            log.warning("ready.database_unavailable", error=str(exc))
            checks["database"] = False

        if all(checks.values()):
            return {"status": "ready"}
        return JSONResponse(status_code=503, content={"status": "unavailable", "checks": checks})

    @app.on_event("startup")
    async def on_startup():
        log.info("teamboard.starting", debug=settings.debug)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("teamboard.shutting_down")
        await close_redis()

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run("teamboard.main:app", host=settings.host, port=settings.port)
