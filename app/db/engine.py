"""Async SQLAlchemy engine and session factory.

When DATABASE_URL is configured, provides:
- an async engine (asyncpg for PostgreSQL)
- an async session factory for request-scoped sessions
- a lifespan hook for startup/shutdown

Without DATABASE_URL the exports are None and any endpoint that needs a
session fails with a RuntimeError. Tests override ``get_async_session``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


# --- Engine and session factory (None when no DATABASE_URL) ---

if SETTINGS.database_url:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,  # log SQL in dev only
        pool_size=20,
        max_overflow=10,
    )
    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
else:
    engine = None
    async_session_factory = None


_AFTER_COMMIT = "after_commit"
_AFTER_ROLLBACK = "after_rollback"

Callback = Callable[[], Awaitable[None]]


def after_commit(session: AsyncSession, callback: Callback) -> None:
    """Run *callback* once the request transaction on *session* has committed.

    Side effects outside the database (cache invalidation, file removal)
    go here so a rollback never leaves them half-applied. Registering the
    same callback twice runs it once.
    """
    callbacks = session.info.setdefault(_AFTER_COMMIT, [])
    if callback not in callbacks:
        callbacks.append(callback)


def after_rollback(session: AsyncSession, callback: Callback) -> None:
    """Run *callback* if the request transaction on *session* is rolled back."""
    session.info.setdefault(_AFTER_ROLLBACK, []).append(callback)


async def _run(session: AsyncSession, key: str) -> None:
    for callback in session.info.pop(key, []):
        try:
            await callback()
        except Exception:
            logger.exception("Post-transaction callback %r failed", callback)


@asynccontextmanager
async def transaction(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Open a session that commits on success and rolls back on exception.

    Callbacks registered with ``after_commit`` run only after a successful
    commit; ``after_rollback`` callbacks run only after a rollback,
    including a commit that fails.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            session.info.pop(_AFTER_COMMIT, None)
            await session.rollback()
            await _run(session, _AFTER_ROLLBACK)
            raise
        session.info.pop(_AFTER_ROLLBACK, None)
        await _run(session, _AFTER_COMMIT)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a request-scoped async session.

    Commits on success, rolls back on exception. One request is one
    transaction, so multi-step writes either land together or not at all.
    """
    if async_session_factory is None:
        raise RuntimeError(
            "DATABASE_URL is not configured; cannot create database session"
        )
    async with transaction(async_session_factory) as session:
        yield session


async def ping_database() -> bool:
    """Return True when a trivial query succeeds on the configured engine."""
    if engine is None:
        return False
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database ping failed")
        return False
    return True


@asynccontextmanager
async def lifespan_db():
    """Startup/shutdown hook for the database engine."""
    if engine is None:
        logger.warning("No DATABASE_URL configured; database endpoints unavailable")
        yield
        return

    logger.info("Database engine created: %s", engine.url)
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
