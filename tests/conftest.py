# tests/conftest.py

from types import SimpleNamespace

import pytest
from fastapi import BackgroundTasks
from redis.asyncio import RedisError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app import models  # noqa: F401
from app.cache.layer import CacheLayer
from app.core.auth import Actor
from app.core.config import Settings
from app.database import build_engine, build_session_factory
from app.models import Project, Section, Team, TeamMember, User
from app.services.effects import SideEffects


class FakeRedis:
    """
    In-memory stand-in for redis.asyncio.Redis covering the calls CacheLayer makes.

    TTLs are recorded but not enforced; tests assert on them directly.
    Set ``fail = True`` to make every call raise RedisError.
    """

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.deleted: list[tuple[str, ...]] = []
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RedisError("redis unavailable")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        self.deleted.append(keys)
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

    async def aclose(self):
        return None


class FakeCalendar:
    """Records calendar calls made by the services."""

    def __init__(self) -> None:
        self.synced: list[tuple[str, list[str]]] = []
        self.updated: list[tuple[str, list[str]]] = []
        self.removed: list[tuple[str, str, list[str]]] = []

    async def sync_task(self, session, task_id, assignee_ids):
        self.synced.append((task_id, list(assignee_ids)))

    async def update_task_events(self, session, task_id, assignee_ids):
        self.updated.append((task_id, list(assignee_ids)))

    async def remove_task_from_calendars(self, session, task_id, event_id, assignee_ids, clear_reference=True):
        self.removed.append((task_id, event_id, list(assignee_ids)))
        return len(assignee_ids)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        cache_namespace="test:",
        l1_ttl_seconds=5,
        app_url="http://testserver",
    )


@pytest.fixture()
async def session_factory():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def cache(settings, fake_redis) -> CacheLayer:
    return CacheLayer(settings=settings, redis=fake_redis)


@pytest.fixture()
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture()
def effects(session_factory, cache, calendar) -> SideEffects:
    return SideEffects(BackgroundTasks(), session_factory, cache=cache, calendar=calendar)


@pytest.fixture()
async def seed(db) -> SimpleNamespace:
    """
    Three users in one team, one project with the default board columns.

    alice created the project; bob and carol are members.
    """
    alice = User(name="Alice", email="alice@example.com")
    bob = User(name="Bob", email="bob@example.com")
    carol = User(name="Carol", email="carol@example.com")
    team = Team(name="Core")
    db.add_all([alice, bob, carol, team])
    await db.flush()
    for user in (alice, bob, carol):
        db.add(TeamMember(user_id=user.id, team_id=team.id, role="owner" if user is alice else "member"))

    project = Project(name="Launch", team_id=team.id, creator_id=alice.id)
    todo = Section(name="To Do", order=0, project_id=project.id)
    doing = Section(name="In Progress", order=1, project_id=project.id)
    done = Section(name="Done", order=2, project_id=project.id)
    db.add(project)
    await db.flush()
    db.add_all([todo, doing, done])
    await db.commit()

    return SimpleNamespace(
        alice=alice,
        bob=bob,
        carol=carol,
        team=team,
        project=project,
        todo=todo,
        doing=doing,
        done=done,
        as_alice=Actor(id=alice.id, name="Alice"),
        as_bob=Actor(id=bob.id, name="Bob"),
    )
