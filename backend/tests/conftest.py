"""
DreamWeaver Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared fixtures: a real in-memory SQLite database, service-level
       sessions, an HTTP client wired to that database, and bearer tokens.
How:   Every test gets a fresh database (create_all on a new engine).
       StaticPool keeps the single in-memory connection alive across the
       sessions a test opens; without it each connection would see an empty
       database.

Fixture Hierarchy:
    engine ─┬─ session_factory ─┬─ db_session     (service tests)
            │                   └─ client         (HTTP tests, get_db_session overridden)
            └─ bedroom / other_bedroom            (rows owned by USER_ID / OTHER_USER_ID)
"""

import os

# Must be set before dreamweaver.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-that-is-at-least-32-characters-long"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

from typing import AsyncGenerator, Dict  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from dreamweaver.database import Base, get_db_session  # noqa: E402
from dreamweaver.models import Bedroom  # noqa: E402

from tests.helpers import OTHER_USER_ID, USER_ID, auth_headers  # noqa: E402


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


async def _insert_bedroom(session_factory, owner_id: str, name: str) -> Bedroom:
    async with session_factory() as session:
        bedroom = Bedroom(owner_id=owner_id, bedroom_name=name)
        session.add(bedroom)
        await session.commit()
        return bedroom


@pytest_asyncio.fixture
async def bedroom(session_factory) -> Bedroom:
    """A bedroom owned by USER_ID."""
    return await _insert_bedroom(session_factory, USER_ID, "Main Bedroom")


@pytest_asyncio.fixture
async def other_bedroom(session_factory) -> Bedroom:
    """A bedroom owned by OTHER_USER_ID."""
    return await _insert_bedroom(session_factory, OTHER_USER_ID, "Guest Room")


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTPX client against the real app, with get_db_session pointed at the
    test database. Lifespan is not run, so no startup database wait happens.
    """
    from dreamweaver.main import app

    async def override_get_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def alice_headers() -> Dict[str, str]:
    return auth_headers(USER_ID)


@pytest.fixture
def bob_headers() -> Dict[str, str]:
    return auth_headers(OTHER_USER_ID)
