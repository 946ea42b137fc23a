"""Async engine and sessions for the project document tables.

``init_db()`` builds one engine per process from ``Settings.database``;
``get_session()`` hands out transactional sessions on it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from storyboard.config import get_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


@dataclass
class _Database:
    engine: AsyncEngine | None = None
    sessions: async_sessionmaker[AsyncSession] | None = None


_db = _Database()


def get_database_url() -> str:
    """Return ``DATABASE__URL`` or raise ValueError when it is unset."""
    url = get_settings().database.url
    if not url:
        msg = "DATABASE__URL is not configured"
        raise ValueError(msg)
    return url


def driver_url(url: str, *, database: str | None = None) -> str:
    """Rewrite a SQLAlchemy URL into a plain ``postgresql://`` DSN.

    psycopg and raw asyncpg connections do not understand the
    ``+asyncpg`` dialect suffix. ``database`` swaps the database name.
    """
    parsed = make_url(url).set(drivername="postgresql")
    if database is not None:
        parsed = parsed.set(database=database)
    return parsed.render_as_string(hide_password=False)


def get_engine() -> AsyncEngine | None:
    return _db.engine


async def init_db() -> None:
    """Create the engine and session factory. Call once at startup."""
    config = get_settings().database
    _db.engine = create_async_engine(
        get_database_url(),
        echo=get_settings().dev.database_echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_pre_ping=True,
        pool_recycle=config.pool_recycle,
        connect_args={
            "timeout": config.connect_timeout,
            "command_timeout": config.command_timeout,
        },
    )
    _db.sessions = async_sessionmaker(
        _db.engine, class_=AsyncSession, expire_on_commit=False
    )
    logger.info("Database engine ready (pool_size=%d)", config.pool_size)


async def close_db() -> None:
    engine, _db.engine, _db.sessions = _db.engine, None, None
    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a session inside one transaction.

    The transaction commits when the block exits normally and rolls back
    when it raises. The engine is created on first use if ``init_db()`` has
    not run yet, so it binds to the running event loop.
    """
    if _db.sessions is None:
        await init_db()
    assert _db.sessions is not None

    async with _db.sessions() as session:
        try:
            async with session.begin():
                yield session
        except SQLAlchemyError:
            logger.exception("Database transaction rolled back")
            raise
