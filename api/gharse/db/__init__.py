"""Async database engine and session helpers.

The DSN comes from ``Settings.database_url``, for example::

    postgresql+asyncpg://u:p@host:5432/gharse

Use :func:`get_engine` for the process-wide :class:`AsyncEngine`,
:func:`get_session` as a FastAPI dependency and :func:`init_models` to create
the schema in development and tests (production uses Alembic).
"""

from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config import get_settings

from ..models import Base
from ..obs import add_query_logger

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the shared :class:`AsyncEngine`, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_settings().database_url)
        add_query_logger(_engine, "orders")
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(
            get_engine(), expire_on_commit=False, class_=AsyncSession
        )
    return _sessionmaker


def configure(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Bind the module to ``engine``; used by tests and scripts."""
    global _engine, _sessionmaker
    _engine = engine
    _sessionmaker = async_sessionmaker(
        engine, expire_on_commit=False, class_=AsyncSession
    )
    return _sessionmaker


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession`` for a single request."""

    async with get_sessionmaker()() as session:
        yield session


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create all tables on ``engine`` (defaults to the shared engine)."""

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose() -> None:
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None


__all__ = [
    "get_engine",
    "get_sessionmaker",
    "configure",
    "get_session",
    "init_models",
    "dispose",
]
