"""Database module for Storyboard Sync.

Provides async SQLModel operations with PostgreSQL.
"""

from __future__ import annotations

from storyboard.db.bootstrap import (
    run_alembic_upgrade,
    verify_schema,
)
from storyboard.db.engine import close_db, get_engine, get_session, init_db
from storyboard.db.models import ProjectDocument

__all__ = [
    "ProjectDocument",
    "close_db",
    "get_engine",
    "get_session",
    "init_db",
    "run_alembic_upgrade",
    "verify_schema",
]
