"""Shared test fixtures.

Every test gets its own SQLite database file (aiosqlite) built from the ORM
metadata, so tests never need a running PostgreSQL or Redis.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Awaitable, Callable
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yup.config import get_settings
from yup.database import close_db, get_engine, get_session_factory, init_db
from yup.db.base import Base
from yup.db.models import User
from yup.main import create_app
from yup.progression.catalog import CatalogSnapshot, ComponentCatalog, parse_components_file
from yup.progression.seed import COMPONENTS_FILE, seed_components, seed_quest_tree
from yup.progression.tasks import BackgroundTaskRunner
from yup.progression.video_events import VideoLifecycle

# ollie (20) + fs180 (35) + boardslide (50); approach and grab left empty.
SCENARIO_PAYLOAD = {
    "approach": "none",
    "entry": "ollie",
    "spins": "fs180",
    "grabs": "none",
    "base_moves": "boardslide",
    "modifiers": [],
}


@pytest.fixture
def snapshot() -> CatalogSnapshot:
    """Catalog snapshot built from the bundled kicker components file."""
    with open(COMPONENTS_FILE, encoding="utf-8") as fh:
        return CatalogSnapshot.from_definitions(parse_components_file(json.load(fh)))


@pytest.fixture
def scenario_payload() -> dict:
    return json.loads(json.dumps(SCENARIO_PAYLOAD))


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Stand-in Redis client; assertions read ``publish.await_args_list``."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema in a per-test SQLite file."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'progression.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield get_session_factory()
    await close_db()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for arranging data and assertions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Session over a database holding the kicker catalog and quest tree."""
    await seed_components(db_session)
    await seed_quest_tree(db_session)
    return db_session


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[int]]:
    """Insert a user row and return its id."""

    async def _make_user(username: str, profile_image_url: str | None = None) -> int:
        user = User(username=username, profile_image_url=profile_image_url)
        db_session.add(user)
        await db_session.commit()
        return user.id

    return _make_user


@pytest.fixture
def catalog(session_factory) -> ComponentCatalog:
    return ComponentCatalog(session_factory, ttl_seconds=300, data_file=str(COMPONENTS_FILE))


@pytest.fixture
def tasks() -> BackgroundTaskRunner:
    return BackgroundTaskRunner(shutdown_timeout=5.0)


@pytest.fixture
def lifecycle(session_factory, catalog, mock_redis, tasks) -> VideoLifecycle:
    return VideoLifecycle(session_factory, catalog, mock_redis, tasks, get_settings())


@pytest_asyncio.fixture
async def client(seeded_db, catalog, tasks, lifecycle) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app wired to the per-test database.

    ASGITransport does not run the lifespan, so the state it would build is
    attached here.
    """
    app = create_app()
    app.state.catalog = catalog
    app.state.tasks = tasks
    app.state.lifecycle = lifecycle

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await tasks.shutdown()
