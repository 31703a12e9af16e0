"""
Database connection and session management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from teamboard.core.config import get_settings
from teamboard.core.realtime import discard_pending

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

RLS_USER_KEY = "rls_user_id"


# ---------------------------------------------------------------------------
# Row-level security identity
# ---------------------------------------------------------------------------

def apply_rls_user(connection: Connection, user_id: uuid.UUID) -> None:
    """Set ``app.current_user_id`` for the current transaction (PostgreSQL only)."""
    if connection.dialect.name != "postgresql":
        return
    connection.execute(
        text("SELECT set_config('app.current_user_id', :uid, true)"),
        {"uid": str(user_id)},
    )


@event.listens_for(Session, "after_begin")
def _rebind_rls_user(session: Session, transaction, connection: Connection) -> None:
    # set_config(..., true) ends with the transaction; every new one needs it again
    user_id = session.info.get(RLS_USER_KEY)
    if user_id is not None:
        apply_rls_user(connection, user_id)


async def bind_rls_user(session: AsyncSession, user_id: uuid.UUID) -> None:
    """Expose ``user_id`` to the row-level security policies for the whole session."""
    session.info[RLS_USER_KEY] = user_id
    if session.in_transaction():
        connection = await session.connection()
        await connection.run_sync(apply_rls_user, user_id)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    One session per request; the whole request is one transaction, committed
    when the endpoint returns and rolled back if it raises. Change events
    queued by a rolled-back request are dropped unpublished.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            discard_pending(session)
            raise


@asynccontextmanager
async def get_session_context():
    """Context manager for use outside of the FastAPI request lifecycle."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            discard_pending(session)
            raise
