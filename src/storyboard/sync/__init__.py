"""Live document sync and debounced autosave."""

from storyboard.sync.controller import (
    PROTECTED_KEYS,
    DocumentSyncController,
    ErrorKind,
    SyncStatus,
)
from storyboard.sync.debounce import DebouncedWriter, SaveResult

__all__ = [
    "PROTECTED_KEYS",
    "DebouncedWriter",
    "DocumentSyncController",
    "ErrorKind",
    "SaveResult",
    "SyncStatus",
]
