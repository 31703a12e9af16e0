"""
Shared fixtures for client tests.

The API is stood in for by an ``httpx.MockTransport`` whose handler tests can
swap per case; no network or server process is involved.
"""

import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from teamboard_client.api import TeamboardClient

BASE_URL = "http://teamboard.local"
NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_task(status="todo", **overrides):
    data = {
        "id": str(uuid.uuid4()),
        "title": "Write docs",
        "description": None,
        "status": status,
        "priority": "medium",
        "project_id": str(uuid.uuid4()),
        "project_name": "Docs",
        "created_by": str(uuid.uuid4()),
        "assignee_ids": [],
        "start_date": None,
        "end_date": None,
        "created_at": NOW.isoformat(),
        "updated_at": NOW.isoformat(),
    }
    data.update(overrides)
    return data


def make_notification(minutes_ago=0, read=False, **overrides):
    created = (NOW - timedelta(minutes=minutes_ago)).isoformat()
    data = {
        "id": str(uuid.uuid4()),
        "user_id": str(uuid.uuid4()),
        "title": "📋 New task assignment",
        "message": 'You have been assigned to the task: "Write docs"',
        "type": "assignment",
        "related_type": "task",
        "related_id": str(uuid.uuid4()),
        "read": read,
        "created_at": created,
        "updated_at": created,
    }
    data.update(overrides)
    return data


def board_payload(tasks):
    order = ["todo", "in_progress", "review", "to_modify", "completed", "cancelled"]
    return {
        "columns": [
            {"status": s, "tasks": [t for t in tasks if t["status"] == s]} for s in order
        ]
    }


class MockAPI:
    """Routes requests to a per-test handler and records what was sent."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.handler = lambda request: httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": "Not found", "status": 404}})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def mock_api():
    return MockAPI()


@pytest.fixture
async def client(mock_api):
    c = TeamboardClient(BASE_URL, transport=mock_api.transport())
    yield c
    await c.close()


@pytest.fixture
def task_factory():
    return make_task


@pytest.fixture
def notification_factory():
    return make_notification


@pytest.fixture
def board_factory():
    return board_payload
