"""Schema bootstrap: create the database, migrate it, check it.

Alembic owns the schema. Nothing here calls ``create_all``.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import psycopg
from alembic import command
from alembic.config import Config
from alembic.util import CommandError
from psycopg import sql
from sqlalchemy import inspect
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel

from storyboard.config import PROJECT_ROOT, get_settings
from storyboard.db.engine import driver_url

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

ALEMBIC_INI = PROJECT_ROOT / "alembic.ini"

_DATABASE_NAME = re.compile(r"^[A-Za-z0-9_]+$")


def ensure_database_exists(url: str) -> bool:
    """Create the database named in ``url`` on its server if it is missing.

    Returns True when the database was created.
    """
    name = make_url(url).database
    if not name:
        return False
    if not _DATABASE_NAME.match(name):
        msg = f"Invalid database name: {name!r}"
        raise ValueError(msg)

    # CREATE DATABASE refuses to run inside a transaction
    maintenance = driver_url(url, database="postgres")
    with psycopg.connect(maintenance, autocommit=True) as conn:
        found = conn.execute(
            "SELECT 1 FROM pg_database WHERE datname = %s", (name,)
        ).fetchone()
        if found is not None:
            return False
        conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(name)))
    logger.info("Created database %s", name)
    return True


def run_alembic_upgrade() -> None:
    """Create the database if needed and migrate it to the latest revision.

    Raises:
        RuntimeError: If DATABASE__URL is unset or a migration fails.
    """
    url = get_settings().database.url
    if not url:
        msg = "DATABASE__URL not configured; cannot run migrations"
        raise RuntimeError(msg)

    config = Config(str(ALEMBIC_INI))
    # Leave the host process's logging configuration alone
    config.attributes["configure_logger"] = False
    try:
        ensure_database_exists(url)
        command.upgrade(config, "head")
    except (CommandError, SQLAlchemyError, psycopg.Error, OSError) as exc:
        msg = f"Alembic migrations failed: {exc}"
        raise RuntimeError(msg) from exc
    logger.info("Database schema is at head")


def get_expected_tables() -> set[str]:
    """Table names the models declare."""
    import storyboard.db.models  # noqa: F401, PLC0415

    return set(SQLModel.metadata.tables)


async def verify_schema(engine: AsyncEngine | None) -> None:
    """Fail fast when a declared table is missing from the database.

    Raises:
        RuntimeError: If ``engine`` is None or tables are missing.
    """
    if engine is None:
        msg = "Database engine is not initialized"
        raise RuntimeError(msg)

    async with engine.connect() as connection:
        existing = await connection.run_sync(
            lambda sync_conn: set(inspect(sync_conn).get_table_names())
        )

    missing = get_expected_tables() - existing
    if missing:
        msg = (
            f"Database schema is missing tables: {', '.join(sorted(missing))}. "
            "Run: alembic upgrade head"
        )
        raise RuntimeError(msg)
