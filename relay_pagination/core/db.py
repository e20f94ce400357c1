"""
Database connection and session management.

Provides the async SQLAlchemy engine and session factory used by
`make_connection_from_query` when the caller supplies neither an ambient
transaction nor its own sessionmaker.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from relay_pagination.core.config import settings

logger = logging.getLogger(__name__)

_async_engine: AsyncEngine | None = None
_async_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def get_async_engine() -> AsyncEngine:
    """
    Create and configure the async SQLAlchemy engine.

    Uses the asyncpg driver for PostgreSQL URLs. Pool settings only apply to
    pooled backends; other URLs (e.g. sqlite+aiosqlite) get SQLAlchemy defaults.

    Returns:
        Configured async SQLAlchemy engine
    """
    global _async_engine

    if _async_engine is not None:
        return _async_engine

    url = settings.async_url
    if not url:
        raise RuntimeError("DATABASE_URL_APP is required")

    if url.startswith("postgresql"):
        _async_engine = create_async_engine(
            url,
            pool_size=20,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
            echo=False,
            connect_args={"server_settings": {"timezone": "UTC"}, "timeout": 30},
        )
    else:
        _async_engine = create_async_engine(url, echo=False)

    logger.debug("Created async engine", extra={"dialect": _async_engine.dialect.name})

    return _async_engine


def get_async_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async sessionmaker.

    Returns:
        Async sessionmaker factory
    """
    global _async_sessionmaker
    if _async_sessionmaker is not None:
        return _async_sessionmaker

    engine = get_async_engine()
    _async_sessionmaker = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    return _async_sessionmaker


async def reset_async_engine() -> None:
    """Reset the async database engine and sessionmaker.

    Useful for tests to ensure fresh connections on new event loops.
    """
    global _async_engine, _async_sessionmaker

    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_sessionmaker = None


@asynccontextmanager
async def get_async_db_session() -> AsyncIterator[AsyncSession]:
    """Async database session for callers that want an ambient transaction.

    Usage:
        async with get_async_db_session() as db:
            connection = await make_connection_from_query(
                stmt, args, DBOptions(transaction=db)
            )

    Yields:
        Async database session

    Ensures:
        Session is committed on success, rolled back on error, and closed
    """
    session_maker = get_async_sessionmaker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
