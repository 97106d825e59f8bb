"""Shared test fixtures.

Tests run against a file-backed SQLite database (one per test) and an
in-process fake Redis, so no external services are needed.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from t4g.config import get_settings
from t4g.database import close_db, get_engine, get_session_factory, init_db
from t4g.db.base import Base
from t4g.redis_client import set_redis
from tests.factories import Seeder


@pytest.fixture(autouse=True)
def _test_settings(tmp_path, monkeypatch):
    """Point settings at a throwaway database and enable the dev identity headers."""
    monkeypatch.setenv("T4G_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 't4g_test.db'}")
    monkeypatch.setenv("T4G_ENVIRONMENT", "development")
    monkeypatch.setenv("T4G_DEV_AUTH_BYPASS", "true")
    monkeypatch.setenv("T4G_JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
    monkeypatch.setenv("T4G_TRANSACTION_RETRY_BACKOFF_SECONDS", "0")
    monkeypatch.setenv("T4G_LOG_FORMAT", "console")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Create the schema in a fresh database."""
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
    """Fake Redis installed as the application's client; private server per test."""
    client = fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    set_redis(client)
    yield client
    set_redis(None)
    await client.aclose()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """A direct session for seeding and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession) -> Seeder:
    return Seeder(db_session)


@pytest_asyncio.fixture
async def client(database, redis_client) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the ASGI app; DB and Redis come from the fixtures above."""
    from t4g.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
