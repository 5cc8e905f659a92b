"""Async SQLAlchemy engine and sessions for the audit run store.

SQLite (aiosqlite) is the default; a postgres:// DATABASE_URL is served
through asyncpg. Background runs and request handlers both open short
sessions from the same factory, one commit per unit of work.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import sqlalchemy
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

_ASYNC_DRIVERS = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def to_async_url(url: str) -> str:
    """Rewrite a plain database URL to the async driver the service ships with."""
    for prefix, driver in _ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return driver + url[len(prefix):]
    return url


DATABASE_URL = to_async_url(os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./design_audit.db"))

engine: AsyncEngine = create_async_engine(DATABASE_URL)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for the run, result and inconsistency tables."""
    pass


@asynccontextmanager
async def get_session_ctx() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on exit and rolls back when the block raises."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping get_session_ctx()."""
    async with get_session_ctx() as session:
        yield session


async def init_db():
    """Create the audit tables. Use for development/testing only."""
    import app.models.db  # noqa: F401  (register models with Base.metadata)

    async with engine.begin() as conn:
        # WAL lets GET /api/runs read while a background run writes
        if conn.dialect.name == "sqlite":
            await conn.execute(sqlalchemy.text("PRAGMA journal_mode=WAL"))
            await conn.execute(sqlalchemy.text("PRAGMA busy_timeout=5000"))
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    await engine.dispose()
