"""Database connection and session management for takeoff imports.

Provides async SQLAlchemy session management with connection pooling.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from takeoff.config import get_config
from takeoff.db.models import Base

# Global engine instance
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

SQLITE_BUSY_TIMEOUT_MS = 30_000

# Serialization failure, deadlock, lock not available
PG_LOCK_CONFLICT_CODES = {"40001", "40P01", "55P03"}


def configure_sqlite(engine: AsyncEngine, busy_timeout_ms: int = SQLITE_BUSY_TIMEOUT_MS) -> None:
    """Make SAVEPOINT work on pysqlite/aiosqlite and enforce foreign keys.

    The driver's own transaction handling swallows BEGIN, which breaks
    ``session.begin_nested()``; emit BEGIN ourselves instead. Transactions
    start IMMEDIATE so concurrent writers wait on the busy timeout instead
    of failing when a read lock cannot be upgraded.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def is_lock_conflict(error: DBAPIError) -> bool:
    """True when ``error`` is a lock timeout or deadlock that a retry may clear."""
    orig = error.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in PG_LOCK_CONFLICT_CODES:
        return True
    message = str(orig).lower()
    return "database is locked" in message or "deadlock detected" in message


def create_engine_for_url(url: str, echo: bool = False, **pool_kwargs) -> AsyncEngine:
    """Create an async engine, applying SQLite fixes when needed."""
    engine_kwargs = {"echo": echo}

    # SQLite doesn't support connection pooling parameters
    if "sqlite" not in url.lower():
        engine_kwargs.update(pool_kwargs)

    engine = create_async_engine(url, **engine_kwargs)
    if "sqlite" in url.lower():
        configure_sqlite(engine)
    return engine


def get_engine() -> AsyncEngine:
    """Get or create singleton async engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine

    Raises:
        KeyError: If database URL is not configured
    """
    global _engine

    if _engine is None:
        db_config = get_config().db
        _engine = create_engine_for_url(
            db_config.url,
            echo=db_config.echo,
            pool_size=db_config.pool_size,
            max_overflow=db_config.pool_max_overflow,
            pool_timeout=db_config.pool_timeout,
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=3600,  # Recycle connections after 1 hour
        )

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create session factory.

    Returns:
        async_sessionmaker: Factory for creating AsyncSession instances
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,  # Don't expire objects after commit
        )

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session (context manager).

    Usage:
        async with get_session() as session:
            result = await session.execute(query)

    Commits on clean exit, rolls back on error.
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db(drop: bool = False) -> None:
    """Create all tables (optionally dropping them first).

    Note: For production, manage schema with migrations instead.
    """
    engine = get_engine()

    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database engine and dispose connections.

    Call this on application shutdown.
    """
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session."""
    async with get_session() as session:
        yield session
