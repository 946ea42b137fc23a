"""Tests for the document store factory."""

from __future__ import annotations

import pytest

from storyboard.store.factory import clear_store_cache, get_document_store
from storyboard.store.memory import InMemoryDocumentStore


class TestGetDocumentStore:
    def test_memory_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE__BACKEND", "memory")

        assert isinstance(get_document_store(), InMemoryDocumentStore)

    def test_instance_is_shared(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE__BACKEND", "memory")

        assert get_document_store() is get_document_store()

    def test_clear_store_cache(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE__BACKEND", "memory")
        first = get_document_store()

        clear_store_cache()

        assert get_document_store() is not first

    def test_sql_requires_database_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE__BACKEND", "sql")
        monkeypatch.setenv("DATABASE__URL", "")

        with pytest.raises(ValueError, match="DATABASE__URL"):
            get_document_store()

    def test_sql_backend(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from storyboard.store.sql import SqlDocumentStore

        monkeypatch.setenv("STORE__BACKEND", "sql")
        monkeypatch.setenv("DATABASE__URL", "postgresql+asyncpg://u:p@localhost/db")

        assert isinstance(get_document_store(), SqlDocumentStore)
