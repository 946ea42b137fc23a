"""Document stores holding storyboard projects."""

from storyboard.store.errors import (
    AlreadyExistsError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    StoreUnavailableError,
)
from storyboard.store.factory import get_document_store
from storyboard.store.memory import InMemoryDocumentStore
from storyboard.store.protocol import (
    SERVER_TIMESTAMP,
    DocumentStore,
    ListenerRegistration,
    Snapshot,
)

__all__ = [
    "SERVER_TIMESTAMP",
    "AlreadyExistsError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "ListenerRegistration",
    "NotFoundError",
    "PermissionDeniedError",
    "Snapshot",
    "StoreError",
    "StoreUnavailableError",
    "get_document_store",
]
