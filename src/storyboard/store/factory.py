"""Document store factory.

Provides a factory function to get the document store selected by
configuration (in-memory for single-process runs, or PostgreSQL).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from storyboard.config import get_settings

if TYPE_CHECKING:
    from storyboard.store.protocol import DocumentStore


# Cached store instance so every controller in the process shares listeners
_store_instance: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    """Get the document store for the configured backend.

    ``STORE__BACKEND=memory`` (default) returns an InMemoryDocumentStore;
    ``STORE__BACKEND=sql`` returns a SqlDocumentStore over DATABASE__URL.

    Raises:
        ValueError: If the SQL backend is selected without DATABASE__URL.
    """
    global _store_instance  # noqa: PLW0603
    if _store_instance is not None:
        return _store_instance

    settings = get_settings()
    if settings.store.backend == "sql":
        if not settings.database.url:
            msg = (
                "DATABASE__URL is required when STORE__BACKEND=sql. "
                "Set it in your .env file or as an environment variable."
            )
            raise ValueError(msg)
        from storyboard.store.sql import SqlDocumentStore

        _store_instance = SqlDocumentStore()
    else:
        from storyboard.store.memory import InMemoryDocumentStore

        _store_instance = InMemoryDocumentStore()
    return _store_instance


def clear_store_cache() -> None:
    """Clear the configuration and store caches (for test isolation)."""
    global _store_instance  # noqa: PLW0603
    get_settings.cache_clear()
    _store_instance = None
