"""Shared pytest fixtures for Storyboard Sync tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from dotenv import load_dotenv

from storyboard.store.factory import clear_store_cache
from tests.helpers.documents import TickingClock, TimedStore, project_document

load_dotenv()


@pytest.fixture(autouse=True)
def _isolate_caches() -> Iterator[None]:
    """Reset cached settings and store between tests."""
    clear_store_cache()
    yield
    clear_store_cache()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store(clock: TickingClock) -> TimedStore:
    return TimedStore(clock=clock)


@pytest.fixture
async def project_id(store: TimedStore) -> str:
    """Id of a seeded project in ``store``."""
    return await store.create(project_document(), project_id="proj-1")
