"""Async SQLAlchemy engine, session management and the unit-of-work helper."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import TypeVar

from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from t4g.config import get_settings
from t4g.errors import TransientFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _install_sqlite_locking(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite's deferred BEGIN lets two readers both try to upgrade and one
    fails immediately; BEGIN IMMEDIATE makes writers queue on the busy timeout.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN IMMEDIATE")


async def init_db(url: str) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    if url.startswith("sqlite"):
        _engine = create_async_engine(url, echo=False, connect_args={"timeout": 30})
        _install_sqlite_locking(_engine)
    else:
        _engine = create_async_engine(
            url,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
            connect_args={"statement_cache_size": 0},
        )
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory (for workers and tests that need several sessions)."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    async with get_session_factory()() as session:
        yield session


async def run_in_transaction(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    max_retries: int | None = None,
) -> T:
    """Run ``work`` as one unit of work on ``db`` and commit it.

    Any exception rolls the whole unit back. Lock conflicts and store
    timeouts are retried from scratch; ``work`` must therefore reload
    whatever it needs instead of relying on objects loaded beforehand.
    After the last attempt the failure surfaces as ``TransientFailure``.
    """
    settings = get_settings()
    attempts = max_retries if max_retries is not None else settings.transaction_max_retries
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            result = await work()
            await db.commit()
            return result
        except (OperationalError, TimeoutError) as exc:
            await db.rollback()
            if attempt == attempts:
                logger.error("Transaction failed after %d attempts: %s", attempt, exc)
                raise TransientFailure() from exc
            logger.warning("Transaction conflict (attempt %d/%d): %s", attempt, attempts, exc)
            await asyncio.sleep(settings.transaction_retry_backoff_seconds * attempt)
        except BaseException:
            await db.rollback()
            raise

    raise TransientFailure()  # pragma: no cover
