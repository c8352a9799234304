"""
DreamWeaver Backend — Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory, portable column types and
       the FastAPI session dependency.
Why:   Centralizes all database connection logic in one place.
How:   Creates an async engine with connection pooling, provides a session
       dependency that auto-commits on success and auto-rolls-back on error.
Who:   Used by route handlers via FastAPI's dependency injection system.
When:  Engine is created at module import; sessions are created per-request.

Portability:
    Production runs on PostgreSQL (asyncpg). The test suite runs the very same
    models on SQLite (aiosqlite), so models only use portable types:
    - Uuid instead of postgresql.UUID
    - UTCDateTime (below) instead of TIMESTAMP WITH TIME ZONE, because SQLite
      drops tzinfo on the way back
    - JSON with a JSONB variant on PostgreSQL
"""

import logging
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy import DateTime, text
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential_jitter,
)

from dreamweaver.config import settings

logger = logging.getLogger(__name__)


# ── Engine Configuration ──────────────────────────────────────────────────
def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite engines pick their
    own pool class and reject pool_size/max_overflow.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=settings.log_level == "DEBUG")

    return create_async_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=3600,
        echo=settings.log_level == "DEBUG",
    )


engine = build_engine(settings.database_url)

# expire_on_commit=False: attributes stay readable after commit, which the
# services rely on when building responses after an explicit commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for all DreamWeaver ORM models (shared metadata for Alembic)."""
    pass


# ── Portable Types ────────────────────────────────────────────────────────
# Width of the user_id / owner_id columns; auth refuses longer token subjects
USER_ID_LENGTH = 64


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp on every backend.

    Incoming values are normalized to UTC (naive values are taken as UTC);
    outgoing values always carry tzinfo=UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect: Dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime (never use naive datetimes)."""
    return datetime.now(timezone.utc)


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back the transaction
        5. Always: closes the session (returns connection to pool)

    Lifecycle operations commit inside their per-user lock before returning;
    the commit here is then a no-op for them.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def ping_database(target: Optional[AsyncEngine] = None) -> None:
    """Run SELECT 1 against the database; raises on any connection failure."""
    async with (target or engine).connect() as conn:
        await conn.execute(text("SELECT 1"))


async def wait_for_database(target: Optional[AsyncEngine] = None) -> None:
    """
    Block startup until the database answers, with exponential backoff.

    Container orchestration often starts the API before PostgreSQL accepts
    connections. Retries are bounded by db_connect_max_attempts; the final
    failure propagates so the lifespan handler can report it.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(settings.db_connect_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            await ping_database(target)
    logger.info("Database connection established")


async def dispose_engine() -> None:
    """Close all pooled connections during application shutdown."""
    await engine.dispose()
