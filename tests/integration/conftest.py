"""Integration test configuration.

Points Settings at TEST_DATABASE_URL and migrates the schema with Alembic
once per session. Every test gets a fresh engine in its own event loop.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from storyboard.config import get_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


@pytest.fixture(scope="session")
def db_schema_guard() -> Iterator[None]:
    """Set DATABASE__URL from TEST_DATABASE_URL and run migrations once."""
    test_url = os.environ.get("TEST_DATABASE_URL")
    if not test_url:
        pytest.skip("TEST_DATABASE_URL not set - skipping database integration tests")

    os.environ["DATABASE__URL"] = test_url
    get_settings.cache_clear()

    from storyboard.db import run_alembic_upgrade

    try:
        run_alembic_upgrade()
    except RuntimeError as e:
        pytest.fail(str(e))

    yield


@pytest.fixture
async def db_engine(db_schema_guard: None) -> AsyncIterator[None]:  # noqa: ARG001
    """Initialize the database engine for each test."""
    from storyboard.db.engine import close_db, init_db

    await init_db()
    yield
    await close_db()
