"""
Shared test fixtures for the backend ingestion service.

Environment variables are cleaned before each test and the working
directory is moved to tmp_path so no .env file is picked up. Persistence
tests run against a file-backed SQLite database (aiosqlite) so the unique
constraint and concurrent upserts behave as they do in production.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-104)

TODO:
- None
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from backend.src.db.models import Base

_ALL_BACKEND_ENV_VARS = (
    "MQTT_BROKER_URL",
    "MQTT_USERNAME",
    "MQTT_PASSWORD",
    "DATABASE_URL",
    "INGEST_ENABLED",
    "TOPIC_ROOT",
    "MQTT_KEEPALIVE_S",
    "MQTT_CONNECT_TIMEOUT_S",
    "MQTT_RECONNECT_PERIOD_S",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_backend_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all backend env vars and isolate from .env files before each test."""
    for var in _ALL_BACKEND_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    """URL of a fresh, schema-initialized SQLite database file."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'registry.db'}"

    async def _create() -> None:
        engine = create_async_engine(url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(_create())
    return url


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch, database_url: str) -> dict[str, str]:
    """Set only the required environment variables."""
    env = {
        "MQTT_BROKER_URL": "mqtt://broker.local:1883",
        "DATABASE_URL": database_url,
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest_asyncio.fixture()
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Async engine bound to the test database."""
    engine = create_async_engine(database_url)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
