"""Protocol defining the document store interface.

Both InMemoryDocumentStore and SqlDocumentStore implement this protocol,
allowing them to be used interchangeably by the sync controller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from storyboard.store.errors import StoreError


class _ServerTimestamp:
    """Sentinel replaced by the store's clock when a write is committed."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Snapshot:
    """Full state of one project document at a point in time.

    Attributes:
        id: The store key of the document.
        data: Document body, or None if the document does not exist.
    """

    id: str
    data: dict[str, Any] | None

    @property
    def exists(self) -> bool:
        return self.data is not None


class ListenerRegistration(Protocol):
    """Handle returned by ``DocumentStore.listen``."""

    def remove(self) -> None:
        """Detach the listener. Safe to call more than once."""
        ...


class DocumentStore(Protocol):
    """Protocol for project document stores.

    Snapshots are always full documents. Listeners receive them in the order
    the store committed the corresponding writes.
    """

    async def get(self, project_id: str) -> Snapshot:
        """Read a document once.

        Raises:
            PermissionDeniedError: If store rules refuse the read.
            StoreUnavailableError: On transient failure.
        """
        ...

    def listen(
        self,
        project_id: str,
        on_snapshot: Callable[[Snapshot], None],
        on_error: Callable[[StoreError], None],
    ) -> ListenerRegistration:
        """Subscribe to live snapshots of a document.

        ``on_snapshot`` is called with the current state shortly after
        attaching, then after every committed change. A failure is passed to
        ``on_error`` and ends the feed.
        """
        ...

    async def merge(self, project_id: str, patch: Mapping[str, Any]) -> None:
        """Replace only the top-level keys named in ``patch``.

        ``SERVER_TIMESTAMP`` values are replaced by the commit time.

        Raises:
            NotFoundError: If the document does not exist.
            PermissionDeniedError: If store rules refuse the write.
            StoreUnavailableError: On transient failure.
        """
        ...

    async def create(
        self, data: Mapping[str, Any], project_id: str | None = None
    ) -> str:
        """Create a document if the id is free, returning its id.

        Raises:
            AlreadyExistsError: If ``project_id`` is already taken.
        """
        ...

    async def find_by_owner(self, owner_id: str) -> list[Snapshot]:
        """Return snapshots of every document whose ``ownerId`` matches."""
        ...

    async def close(self) -> None:
        """Release connections held for live feeds."""
        ...
