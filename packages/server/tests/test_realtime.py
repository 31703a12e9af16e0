"""
Tests for the row change feed.

Tests cover:
- Change filters (table, column equality, DELETE old rows, change types)
- Publishing only after commit, and publish failures not undoing writes
- The SSE generator: matching, heartbeats, disconnect cleanup and
  revoked sessions
- Per-resource stream endpoints rejecting callers who cannot see the resource
  and giving their database session back before streaming
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import text
from sse_starlette.sse import EventSourceResponse
from structlog.testing import capture_logs

import teamboard.core.realtime as realtime
from teamboard.core.database import get_session
from teamboard.core.realtime import (
    REDIS_CHANGES_CHANNEL,
    ChangeFilter,
    change_stream,
    commit_and_publish,
    publish_change,
    queue_change,
    stream_response,
)
from teamboard_shared.schemas.changes import ChangeEvent
from teamboard_shared.schemas.common import ChangeType


def _event(table="tasks", type=ChangeType.INSERT, record=None, old_record=None) -> ChangeEvent:
    return ChangeEvent(
        table=table,
        type=type,
        record=record or {},
        old_record=old_record or {},
        commit_timestamp=datetime.now(timezone.utc),
    )


class FakeRequest:
    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


async def _wait_for_subscriber(fake_redis):
    for _ in range(200):
        if fake_redis.subscribers:
            return fake_redis.subscribers[0]
        await asyncio.sleep(0.005)
    raise AssertionError("stream never subscribed")


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class TestChangeFilter:
    def test_table_only(self):
        f = ChangeFilter(table="tasks")
        assert f.matches(_event("tasks", record={"id": "1"})) is True
        assert f.matches(_event("projects", record={"id": "1"})) is False

    def test_column_equality_compares_as_strings(self):
        user_id = uuid.uuid4()
        f = ChangeFilter(table="notifications", column="user_id", value=user_id)
        assert f.matches(_event("notifications", record={"user_id": str(user_id)})) is True
        assert f.matches(_event("notifications", record={"user_id": str(uuid.uuid4())})) is False
        assert f.matches(_event("notifications", record={})) is False

    def test_delete_uses_old_record(self):
        task_id = str(uuid.uuid4())
        f = ChangeFilter(table="subtasks", column="task_id", value=task_id)
        deleted = _event("subtasks", ChangeType.DELETE, old_record={"task_id": task_id})
        assert f.matches(deleted) is True

    def test_types(self):
        f = ChangeFilter(table="tasks", types=frozenset({ChangeType.UPDATE}))
        assert f.matches(_event("tasks", ChangeType.UPDATE, record={"id": "1"})) is True
        assert f.matches(_event("tasks", ChangeType.INSERT, record={"id": "1"})) is False


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class TestPublishing:
    async def test_nothing_published_before_commit(self, session, fake_redis):
        queue_change(session, "tasks", ChangeType.INSERT, {"id": "t1"})
        assert fake_redis.published == []

        assert await commit_and_publish(session) == 1
        channel, data = fake_redis.published[0]
        assert channel == REDIS_CHANGES_CHANNEL
        assert json.loads(data)["record"] == {"id": "t1"}

    async def test_events_keep_queue_order(self, session, fake_redis):
        queue_change(session, "tasks", ChangeType.INSERT, {"id": "t1"})
        queue_change(session, "tasks", ChangeType.UPDATE, {"id": "t1"}, {"id": "t1"})
        queue_change(session, "tasks", ChangeType.DELETE, old_record={"id": "t1"})

        await commit_and_publish(session)
        assert [e.type for e in fake_redis.events()] == [ChangeType.INSERT, ChangeType.UPDATE, ChangeType.DELETE]

    async def test_publish_failure_is_logged_not_raised(self, session, fake_redis):
        fake_redis.fail_publish = True
        queue_change(session, "tasks", ChangeType.INSERT, {"id": "t1"})

        with capture_logs() as logs:
            assert await commit_and_publish(session) == 0

        assert any(entry["event"] == "realtime.publish_failed" for entry in logs)

    async def test_failed_publish_keeps_committed_write(self, client, seed, fake_redis):
        admin = await seed.admin()
        fake_redis.fail_publish = True

        resp = await client.post("/api/v1/projects/", json={"name": "Offline"}, headers=admin.headers)
        assert resp.status_code == 201
        listed = await client.get("/api/v1/projects/", headers=admin.headers)
        assert [p["name"] for p in listed.json()] == ["Offline"]


# ---------------------------------------------------------------------------
# SSE generator
# ---------------------------------------------------------------------------


class TestChangeStream:
    async def test_yields_matching_events_only(self, fake_redis):
        project_id = str(uuid.uuid4())
        stream = change_stream(
            FakeRequest(), [ChangeFilter(table="tasks", column="project_id", value=project_id)], poll_seconds=0.01
        )
        pending = asyncio.ensure_future(stream.__anext__())
        await _wait_for_subscriber(fake_redis)

        await publish_change(_event("tasks", record={"project_id": str(uuid.uuid4())}))
        await publish_change(_event("projects", record={"id": project_id}))
        await publish_change(_event("tasks", record={"project_id": project_id, "title": "mine"}))

        item = await asyncio.wait_for(pending, timeout=2)
        assert item["event"] == "change"
        assert json.loads(item["data"])["record"]["title"] == "mine"
        await stream.aclose()

    async def test_heartbeat_when_idle(self, fake_redis):
        stream = change_stream(
            FakeRequest(), [ChangeFilter(table="tasks")], heartbeat_seconds=0.02, poll_seconds=0.01
        )
        item = await asyncio.wait_for(stream.__anext__(), timeout=2)
        assert item == {"comment": "heartbeat"}
        await stream.aclose()

    async def test_disconnect_ends_stream_and_unsubscribes(self, fake_redis):
        request = FakeRequest()
        stream = change_stream(request, [ChangeFilter(table="tasks")], heartbeat_seconds=0.02, poll_seconds=0.01)
        await asyncio.wait_for(stream.__anext__(), timeout=2)
        pubsub = fake_redis.subscribers[0]

        request.disconnected = True
        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(stream.__anext__(), timeout=2)

        assert pubsub.closed is True
        assert fake_redis.subscribers == []

    async def test_revoked_session_ends_stream(self, fake_redis, monkeypatch):
        monkeypatch.setattr(realtime, "REVOCATION_CHECK_SECONDS", 0)
        jti = uuid.uuid4().hex
        fake_redis.store[f"jwt:revoked:{jti}"] = "1"

        stream = change_stream(FakeRequest(), [ChangeFilter(table="tasks")], jti=jti, poll_seconds=0.01)
        item = await asyncio.wait_for(stream.__anext__(), timeout=2)
        assert item["event"] == "session.revoked"

        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert fake_redis.subscribers == []

    async def test_live_session_is_not_revoked(self, fake_redis, monkeypatch):
        monkeypatch.setattr(realtime, "REVOCATION_CHECK_SECONDS", 0)
        stream = change_stream(
            FakeRequest(), [ChangeFilter(table="tasks")], jti="still-valid", heartbeat_seconds=0.02, poll_seconds=0.01
        )
        item = await asyncio.wait_for(stream.__anext__(), timeout=2)
        assert item == {"comment": "heartbeat"}
        await stream.aclose()

    async def test_bad_payload_is_skipped(self, fake_redis):
        stream = change_stream(FakeRequest(), [ChangeFilter(table="tasks")], poll_seconds=0.01)
        pending = asyncio.ensure_future(stream.__anext__())
        await _wait_for_subscriber(fake_redis)

        await fake_redis.publish(REDIS_CHANGES_CHANNEL, "not json")
        await publish_change(_event("tasks", record={"id": "ok"}))

        item = await asyncio.wait_for(pending, timeout=2)
        assert json.loads(item["data"])["record"] == {"id": "ok"}
        await stream.aclose()


# ---------------------------------------------------------------------------
# Stream endpoints
# ---------------------------------------------------------------------------


class TestStreamEndpoints:
    async def test_task_stream_hidden_from_outsider(self, client, seed):
        admin = await seed.admin()
        outsider = await seed.user("Outsider")
        project = await seed.project(admin)
        task = await seed.task(admin, project)

        resp = await client.get(f"/api/v1/tasks/{task['id']}/stream", headers=outsider.headers)
        assert resp.status_code == 404

    async def test_stream_requires_authentication(self, client):
        resp = await client.get("/api/v1/notifications/stream")
        assert resp.status_code == 401

    async def test_stream_response_releases_the_session(self, session):
        await session.execute(text("SELECT 1"))
        assert session.in_transaction()

        response = await stream_response(FakeRequest(), session, [ChangeFilter(table="tasks")])

        assert isinstance(response, EventSourceResponse)
        assert not session.in_transaction()

    async def test_task_stream_holds_no_transaction_while_streaming(
        self, app, client, seed, session_factory, monkeypatch
    ):
        admin = await seed.admin()
        project = await seed.project(admin)
        task = await seed.task(admin, project)

        sessions = []

        async def _tracked_session():
            async with session_factory() as s:
                sessions.append(s)
                yield s
                await s.commit()

        observed = []

        async def _one_event(request, filters, *, jti=None, **kwargs):
            observed.append([s.in_transaction() for s in sessions])
            yield {"event": "change", "data": json.dumps({"table": filters[0].table})}

        app.dependency_overrides[get_session] = _tracked_session
        monkeypatch.setattr(realtime, "change_stream", _one_event)

        resp = await client.get(f"/api/v1/tasks/{task['id']}/stream", headers=admin.headers)

        assert resp.status_code == 200
        assert "event: change" in resp.text
        assert observed == [[False]]
