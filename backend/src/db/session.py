"""
Async database engine and session factory.

Uses SQLAlchemy 2.x async engine: asyncpg for PostgreSQL in production,
aiosqlite for local development and tests. Provides module-level engine and
session factory singletons, plus an async generator for FastAPI dependency
injection.

CHANGELOG:
- 2026-10-18: Add STORE_ERRORS for unreachable-server handling (STORY-112)
- 2026-10-18: Initial creation (STORY-106)
"""

import os
from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# asyncpg surfaces an unreachable server as a raw OSError
# (ConnectionRefusedError, socket.gaierror); SQLAlchemy does not wrap it.
STORE_ERRORS: tuple[type[Exception], ...] = (SQLAlchemyError, OSError)

# Module-level singletons, initialized lazily via init_engine().
async_engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _get_database_url() -> str:
    """Read DATABASE_URL from environment.

    Returns:
        str: The database connection URL.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL environment variable is required")
    return url


def create_engine(url: str | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Args:
        url: Database URL; defaults to the DATABASE_URL environment variable.

    Returns:
        AsyncEngine: Configured async engine.
    """
    return create_async_engine(url or _get_database_url(), echo=False, pool_pre_ping=True)


def create_session_factory(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory.

    Args:
        engine: Optional async engine. If not provided, creates one from config.

    Returns:
        async_sessionmaker: Factory for creating AsyncSession instances.
    """
    if engine is None:
        engine = create_engine()
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def init_engine(url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Initialize the module-level async engine and session factory.

    Call this at application startup (e.g., in a FastAPI lifespan event).
    Safe to call multiple times; subsequent calls are no-ops.

    Returns:
        async_sessionmaker: The module-level session factory.
    """
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is None:
        async_engine = create_engine(url)
        async_session_factory = create_session_factory(async_engine)
    assert async_session_factory is not None, "Session factory not initialized"
    return async_session_factory


async def dispose_engine() -> None:
    """Dispose the module-level engine and forget the singletons."""
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is not None:
        await async_engine.dispose()
    async_engine = None
    async_session_factory = None


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for FastAPI dependency injection.

    Initializes the engine on first call if not already done.
    The session is automatically closed after the request completes.

    Yields:
        AsyncSession: An async SQLAlchemy session.
    """
    factory = init_engine()
    async with factory() as session:
        yield session
