"""
Pytest configuration and shared fixtures for the pagination tests.

Provides:
- AnyIO backend selection for async tests
- A throwaway SQLite database (aiosqlite driver) per test

Async SQLAlchemy Fixtures:
- async_engine: Function-scoped async engine bound to a temporary file DB
- session_factory: async_sessionmaker over async_engine
- seeded_items: Five items {id: 1..5, name: "a".."e"}
"""

from __future__ import annotations

import sys
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]

# Add the project root to path for imports
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402 (import after path setup)
from sqlalchemy.ext.asyncio import (  # noqa: E402 (import after path setup)
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tests.models import Base, seed_items  # noqa: E402 (import after path setup)

# =============================================================================
# AnyIO Backend Configuration
# =============================================================================
# Per AnyIO testing docs: https://anyio.readthedocs.io/en/stable/testing.html
# Async tests are marked with @pytest.mark.anyio and run on asyncio only,
# which is what aiosqlite and SQLAlchemy's asyncio extension require.
@pytest.fixture
def anyio_backend():
    return "asyncio"


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Async engine on a temporary SQLite file.

    A file (not :memory:) database lets the page and count queries use two
    pooled connections that see the same data.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pagination.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def seeded_items(session_factory: async_sessionmaker[AsyncSession]) -> list[dict[str, Any]]:
    rows = [{"id": i, "name": name} for i, name in enumerate("abcde", start=1)]
    await seed_items(session_factory, rows)
    return rows
