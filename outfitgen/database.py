"""Database connection and session management.

Async SQLAlchemy setup for SQLite (dev) and PostgreSQL (prod), backing the
durable outfit cache.

Examples:
    >>> from outfitgen.database import get_session_factory, init_db
    >>> await init_db()  # Create tables
    >>> store = SqlOutfitStore(get_session_factory(), backend, config)

Tests:
    - tests/unit/test_storage/test_store.py
"""

from __future__ import annotations

import logging

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from outfitgen.config import get_settings

logger = logging.getLogger(__name__)

# Global engine and session factory (initialized lazily)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for a database URL.

    Note:
        For SQLite, enables WAL mode and a busy timeout.
        For PostgreSQL, configures connection pooling.
    """
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Get or create the application's async database engine."""
    global _engine

    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for_url(settings.DATABASE_URL, echo=settings.DEBUG)
        logger.info(f"Database engine created: {settings.DATABASE_URL.split('@')[-1]}")

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the application's async session factory."""
    global _async_session_factory

    if _async_session_factory is None:
        _async_session_factory = create_session_factory(get_engine())

    return _async_session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables on the given engine."""
    from outfitgen.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Initialize database - create all tables.

    Should be called once at application startup.
    """
    await create_tables(get_engine())
    logger.info("Database tables created")


async def check_db_connection() -> bool:
    """Check if database is accessible.

    Returns:
        bool: True if database is healthy.
    """
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


async def close_db() -> None:
    """Close database connections.

    Should be called at application shutdown.
    """
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connections closed")
