"""
Engines and sessions for the job store.

Queues take an engine explicitly; the global engine here serves runner
processes configured from Settings.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from docqueue.config import get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Return the settings-driven engine, creating it on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        kwargs: dict[str, Any] = {
            "echo": settings.log_level == "DEBUG",
            "pool_pre_ping": True,
        }
        if not settings.database_url.startswith("sqlite"):
            kwargs["pool_size"] = settings.database_pool_size
            kwargs["max_overflow"] = settings.database_max_overflow
        _engine = create_async_engine(settings.database_url, **kwargs)
        logger.info("Database engine created")
    return _engine


def get_test_engine(database_url: str) -> AsyncEngine:
    """
    Create an engine that opens a fresh connection per checkout.

    Every concurrent session gets its own connection, which lets tests drive
    real contention on the claim statement.
    """
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        # Concurrent writers wait on the database lock instead of failing.
        connect_args["timeout"] = 30
    return create_async_engine(
        database_url,
        poolclass=NullPool,
        echo=False,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create a session factory bound to an engine.

    Args:
        engine: The engine sessions connect through.

    Returns:
        async_sessionmaker: Factory for short-lived sessions.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def close_db() -> None:
    """Dispose the global engine; runners call this on shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database engine disposed")


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """
    Context manager for one unit of work.
    Commits on success and rolls back on any exception, which is re-raised.

    Args:
        factory: Session factory to open the session from.

    Yields:
        AsyncSession: An async database session.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
