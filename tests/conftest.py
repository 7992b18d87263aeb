"""Shared test fixtures.

Storage runs on in-memory SQLite (aiosqlite + StaticPool) and fan-out on the
in-process publisher, so the suite needs neither PostgreSQL nor Redis.
"""

from __future__ import annotations

import os

os.environ["UNIHUB_FANOUT_BACKEND"] = "memory"
os.environ["UNIHUB_SEED_BADGES_ON_STARTUP"] = "false"
os.environ["UNIHUB_LOG_FORMAT"] = "console"

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import BigInteger  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402

from unihub.config import get_settings  # noqa: E402
from unihub.database import build_engine, build_session_factory  # noqa: E402
from unihub.db.base import Base  # noqa: E402
from unihub.db.models import University, User  # noqa: E402
from unihub.gamification.engine import GamificationEngine  # noqa: E402
from unihub.gamification.fanout import FanoutDispatcher  # noqa: E402
from unihub.gamification.seed import seed_badge_tiers  # noqa: E402
from unihub.ws.publisher import InMemoryPublisher  # noqa: E402

get_settings.cache_clear()

TEST_DATABASE_URL = "sqlite+aiosqlite://"


# BIGINT primary keys only autoincrement on SQLite when rendered as INTEGER
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with every table created."""
    engine = build_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for arranging data and asserting on it."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def publisher() -> InMemoryPublisher:
    return InMemoryPublisher()


@pytest.fixture
def dispatcher(publisher: InMemoryPublisher) -> FanoutDispatcher:
    return FanoutDispatcher(publisher)


@pytest.fixture
def gamification(
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: FanoutDispatcher,
) -> GamificationEngine:
    return GamificationEngine(session_factory, dispatcher, retry_backoff_ms=0)


@pytest_asyncio.fixture
async def seeded(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Seed the seven default tiers. Returns how many were inserted."""
    async with session_factory() as session:
        return await seed_badge_tiers(session)


async def _create_user(
    session_factory: async_sessionmaker[AsyncSession],
    name: str = "Alice",
    *,
    points: int = 0,
    university_id: int | None = None,
    current_badge_id: int | None = None,
) -> User:
    """Insert a member directly, bypassing the engine."""
    async with session_factory() as session:
        user = User(
            name=name,
            email=f"{name.lower().replace(' ', '.')}@example.edu",
            points=points,
            university_id=university_id,
            current_badge_id=current_badge_id,
        )
        session.add(user)
        await session.commit()
        return user


async def _create_university(
    session_factory: async_sessionmaker[AsyncSession],
    name: str = "State University",
) -> University:
    async with session_factory() as session:
        university = University(name=name)
        session.add(university)
        await session.commit()
        return university


@pytest_asyncio.fixture
async def user(session_factory: async_sessionmaker[AsyncSession], seeded: int) -> User:
    """A member with zero points on the seeded ladder."""
    return await _create_user(session_factory)


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    gamification: GamificationEngine,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the test database.

    ASGITransport does not run the lifespan, so the app state and the session
    dependency are wired here.
    """
    from unihub.dependencies import get_db
    from unihub.main import create_app

    app = create_app()
    app.state.gamification = gamification

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await gamification.dispatcher.drain()


@pytest.fixture
def make_user(session_factory: async_sessionmaker[AsyncSession]):
    """Factory fixture: ``await make_user("Bob", points=250)``."""

    async def _make(name: str = "Alice", **kwargs) -> User:
        return await _create_user(session_factory, name, **kwargs)

    return _make


@pytest.fixture
def make_university(session_factory: async_sessionmaker[AsyncSession]):
    async def _make(name: str = "State University") -> University:
        return await _create_university(session_factory, name)

    return _make
