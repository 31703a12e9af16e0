"""
Shared fixtures for server tests.

- SQLite in-memory database (aiosqlite, one shared connection) with the
  ``get_session`` dependency overridden
- An in-process stand-in for Redis covering the revocation list and pub/sub
- Helpers to create users at a given approval/role and seed projects/tasks
  through the API
"""

import asyncio
import os
import uuid
from dataclasses import dataclass, field

os.environ["TEAMBOARD_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("TEAMBOARD_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

import bcrypt
import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import teamboard.models  # noqa: F401
from teamboard.core.database import get_session
from teamboard.core.realtime import discard_pending
from teamboard.main import app as fastapi_app
from teamboard.models.user import Profile
from teamboard_shared.schemas.changes import ChangeEvent


# ---------------------------------------------------------------------------
# Redis stand-in
# ---------------------------------------------------------------------------

class FakePubSub:
    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self.channels: set[str] = set()
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def subscribe(self, *channels: str) -> None:
        self.channels.update(channels)
        if self not in self._redis.subscribers:
            self._redis.subscribers.append(self)

    async def unsubscribe(self, *channels: str) -> None:
        self.channels.difference_update(channels)
        if not self.channels and self in self._redis.subscribers:
            self._redis.subscribers.remove(self)

    async def get_message(self, ignore_subscribe_messages: bool = False, timeout: float = 0.0):
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def aclose(self) -> None:
        self.closed = True


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.published: list[tuple[str, str]] = []
        self.subscribers: list[FakePubSub] = []
        self.fail_publish = False
        self.healthy = True

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self.store[key] = value

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if key in self.store)

    async def publish(self, channel: str, data: str) -> int:
        if self.fail_publish:
            raise RedisConnectionError("redis unavailable")
        self.published.append((channel, data))
        receivers = [s for s in self.subscribers if channel in s.channels]
        for sub in receivers:
            sub.queue.put_nowait({"type": "message", "channel": channel, "data": data})
        return len(receivers)

    def pubsub(self) -> FakePubSub:
        return FakePubSub(self)

    async def ping(self) -> bool:
        if not self.healthy:
            raise RedisConnectionError("redis unavailable")
        return True

    def events(self, table: str | None = None) -> list[ChangeEvent]:
        """Change events published so far, optionally for one table."""
        events = [ChangeEvent.model_validate_json(data) for _channel, data in self.published]
        return [e for e in events if table is None or e.table == table]


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()

    async def _get_redis():
        return fake

    monkeypatch.setattr("teamboard.core.redis.get_redis", _get_redis)
    monkeypatch.setattr("teamboard.core.auth.get_redis", _get_redis)
    monkeypatch.setattr("teamboard.core.realtime.get_redis", _get_redis)
    return fake


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """bcrypt at cost 12 is too slow for a suite that registers many users."""
    real_gensalt = bcrypt.gensalt
    monkeypatch.setattr(bcrypt, "gensalt", lambda rounds=12, prefix=b"2b": real_gensalt(rounds=4, prefix=prefix))


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def app(session_factory):
    async def _test_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                discard_pending(s)
                raise

    fastapi_app.dependency_overrides[get_session] = _test_session
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Actors and seed data
# ---------------------------------------------------------------------------

@dataclass
class Actor:
    id: uuid.UUID
    email: str
    token: str
    first_name: str = ""
    last_name: str = ""
    extra: dict = field(default_factory=dict)

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


class Seeder:
    """Creates users (via /auth/register) and seeds projects/tasks as an admin."""

    def __init__(self, client: AsyncClient, session_factory):
        self.client = client
        self.session_factory = session_factory
        self._counter = 0

    async def user(
        self,
        name: str | None = None,
        *,
        approved: bool = True,
        admin: bool = False,
        password: str = "password123",
    ) -> Actor:
        self._counter += 1
        name = name or f"user{self._counter}"
        email = f"{name.lower()}-{uuid.uuid4().hex[:6]}@example.com"
        resp = await self.client.post(
            "/auth/register",
            json={"email": email, "password": password, "first_name": name, "last_name": "Tester"},
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        actor = Actor(
            id=uuid.UUID(data["user_id"]),
            email=email,
            token=data["access_token"],
            first_name=name,
            last_name="Tester",
        )
        if approved or admin:
            await self.set_profile(actor.id, is_approved=approved, role="admin" if admin else "developer")
        return actor

    async def admin(self, name: str = "Admin") -> Actor:
        return await self.user(name, admin=True)

    async def set_profile(self, user_id: uuid.UUID, **values) -> None:
        async with self.session_factory() as s:
            await s.execute(update(Profile).where(Profile.user_id == user_id).values(**values))
            await s.commit()

    async def project(self, admin: Actor, *, members=(), leaders=(), name: str = "Apollo", **extra) -> dict:
        body = {
            "name": name,
            "members": [str(m.id) for m in members],
            "leaders": [str(m.id) for m in leaders],
            **extra,
        }
        resp = await self.client.post("/api/v1/projects/", json=body, headers=admin.headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    async def task(self, admin: Actor, project: dict, *, assignees=(), title: str = "Draft release notes", **extra) -> dict:
        body = {
            "title": title,
            "project_id": project["id"],
            "assignee_ids": [str(a.id) for a in assignees],
            **extra,
        }
        resp = await self.client.post("/api/v1/tasks/", json=body, headers=admin.headers)
        assert resp.status_code == 201, resp.text
        return resp.json()


@pytest.fixture
def seed(client, session_factory):
    return Seeder(client, session_factory)
