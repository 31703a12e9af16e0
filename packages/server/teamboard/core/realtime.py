"""
Row change feed over Redis Pub/Sub, delivered to clients as SSE.

Writes queue their change events on the database session; once the request
transaction commits, the queued events are published. Subscribers receive an
ordered stream of INSERT/UPDATE/DELETE events for one table filtered by an
equality on one column. There is no replay: a client that reconnects refetches
authoritative state and then follows the live stream.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Iterable, Optional

import structlog
from fastapi import Request
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel
from sse_starlette.sse import EventSourceResponse

from teamboard.core.config import get_settings
from teamboard.core.redis import get_redis
from teamboard_shared.schemas.changes import ChangeEvent
from teamboard_shared.schemas.common import ChangeType

log = structlog.get_logger()
settings = get_settings()

REDIS_CHANGES_CHANNEL = "tb:changes"
PENDING_CHANGES_KEY = "pending_changes"
REVOCATION_CHECK_SECONDS = 10.0


def row_to_dict(row: SQLModel | dict | None) -> dict[str, Any]:
    if row is None:
        return {}
    if isinstance(row, dict):
        return row
    return row.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------

def queue_change(
    session: AsyncSession,
    table: str,
    change_type: ChangeType,
    record: SQLModel | dict | None = None,
    old_record: SQLModel | dict | None = None,
) -> None:
    """Snapshot a row change now; it is published by ``commit_and_publish``."""
    pending = session.info.setdefault(PENDING_CHANGES_KEY, [])
    pending.append(
        ChangeEvent(
            table=table,
            type=change_type,
            record=row_to_dict(record),
            old_record=row_to_dict(old_record),
            commit_timestamp=datetime.now(timezone.utc),
        )
    )


async def publish_change(event: ChangeEvent) -> None:
    redis = await get_redis()
    await redis.publish(REDIS_CHANGES_CHANNEL, event.model_dump_json())


async def commit_and_publish(session: AsyncSession) -> int:
    """Commit the transaction, then publish every change queued on the session.

    A publish failure is logged and does not undo the committed write; clients
    recover by refetching. Returns the number of events published.
    """
    await session.commit()
    pending: list[ChangeEvent] = session.info.pop(PENDING_CHANGES_KEY, [])
    published = 0
    for event in pending:
        try:
            await publish_change(event)
            published += 1
        except RedisError as exc:
            log.warning(
                "realtime.publish_failed",
                table=event.table,
                change=event.type.value,
                error=str(exc),
            )
    return published


def discard_pending(session: AsyncSession) -> None:
    session.info.pop(PENDING_CHANGES_KEY, None)


# ---------------------------------------------------------------------------
# Subscribing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChangeFilter:
    """Match events on ``table`` whose ``column`` equals ``value``.

    ``column=None`` matches every row of the table; ``types=None`` matches all
    change types. For DELETE events the old row is inspected.
    """

    table: str
    column: Optional[str] = None
    value: Any = None
    types: Optional[frozenset[ChangeType]] = None

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.types is not None and event.type not in self.types:
            return False
        if self.column is None:
            return True
        actual = event.get(self.column)
        return actual is not None and str(actual) == str(self.value)


def matches_any(event: ChangeEvent, filters: Iterable[ChangeFilter]) -> bool:
    return any(f.matches(event) for f in filters)


async def _session_revoked(jti: Optional[str]) -> bool:
    if not jti:
        return False
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


async def change_stream(
    request: Request,
    filters: list[ChangeFilter],
    *,
    jti: Optional[str] = None,
    heartbeat_seconds: Optional[float] = None,
    poll_seconds: float = 1.0,
) -> AsyncGenerator[dict, None]:
    """
    SSE generator for one subscription:
    - yields ``{"event": "change", "data": <ChangeEvent json>}`` per match
    - heartbeat comment when nothing was sent for ``heartbeat_seconds``
    - ends when the client disconnects or its session is revoked
    - always unsubscribes on exit
    """
    heartbeat = heartbeat_seconds or settings.sse_heartbeat_seconds
    redis = await get_redis()
    pubsub = redis.pubsub()
    await pubsub.subscribe(REDIS_CHANGES_CHANNEL)
    log.info("realtime.subscribed", tables=sorted({f.table for f in filters}))

    last_sent = time.monotonic()
    last_revocation_check = last_sent
    try:
        while True:
            if await request.is_disconnected():
                break

            now = time.monotonic()
            if jti and now - last_revocation_check >= REVOCATION_CHECK_SECONDS:
                last_revocation_check = now
                if await _session_revoked(jti):
                    yield {
                        "event": "session.revoked",
                        "data": json.dumps({"reason": "credential_revoked"}),
                    }
                    break

            message = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=poll_seconds
            )

            if message is None or message.get("type") != "message":
                if time.monotonic() - last_sent >= heartbeat:
                    last_sent = time.monotonic()
                    yield {"comment": "heartbeat"}
                continue

            try:
                event = ChangeEvent.model_validate_json(message["data"])
            except ValueError:
                log.warning("realtime.bad_payload")
                continue

            if matches_any(event, filters):
                last_sent = time.monotonic()
                yield {"event": "change", "data": event.model_dump_json()}

    except asyncio.CancelledError:
        log.info("realtime.stream_cancelled")
        raise
    finally:
        await pubsub.unsubscribe(REDIS_CHANGES_CHANNEL)
        await pubsub.aclose()
        log.info("realtime.unsubscribed")


async def stream_response(
    request: Request,
    session: AsyncSession,
    filters: list[ChangeFilter],
    jti: Optional[str] = None,
) -> EventSourceResponse:
    """Open an SSE response for ``filters``.

    The request transaction is committed first and its connection returned to
    the pool: the stream itself never touches the database and may stay open
    for hours.
    """
    await session.commit()
    return EventSourceResponse(change_stream(request, filters, jti=jti))
