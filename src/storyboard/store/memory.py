"""In-memory document store.

A process-local implementation of DocumentStore used by tests and
single-process runs. Behaves like the hosted store from the controller's
point of view: every write yields to the event loop, listeners get full
snapshots in commit order, and store-side access rules and transient
failures can be simulated.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from storyboard.ids import new_document_id
from storyboard.store.errors import (
    AlreadyExistsError,
    NotFoundError,
    PermissionDeniedError,
    StoreUnavailableError,
)
from storyboard.store.fanout import ListenerHub, Registration, resolve_server_timestamps
from storyboard.store.protocol import Snapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from storyboard.store.errors import StoreError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class WriteRecord:
    """A committed write, as the store resolved it."""

    kind: Literal["create", "merge"]
    project_id: str
    values: dict[str, Any] = field(default_factory=dict)


class InMemoryDocumentStore:
    """Dictionary-backed document store with live listeners.

    Attributes:
        latency: Seconds each read or write waits before touching state.
        write_log: Every committed create/merge in commit order.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        latency: float = 0.0,
    ) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._hub = ListenerHub()
        self._denied: set[str] = set()
        self._failures_remaining = 0
        self._clock = clock or _utcnow
        self.latency = latency
        self.write_log: list[WriteRecord] = []

    # --- Simulation controls ---

    def deny_access(self, project_id: str) -> None:
        """Make store rules refuse every read and write of ``project_id``.

        Live listeners on the project receive a PermissionDeniedError.
        """
        self._denied.add(project_id)
        self._hub.fail_all(project_id, PermissionDeniedError(project_id))

    def allow_access(self, project_id: str) -> None:
        self._denied.discard(project_id)

    def fail_next_writes(self, count: int = 1) -> None:
        """Make the next ``count`` writes raise StoreUnavailableError."""
        self._failures_remaining = count

    def listener_count(self, project_id: str) -> int:
        return self._hub.count(project_id)

    def merges_for(self, project_id: str) -> list[dict[str, Any]]:
        """Resolved payloads of every merge committed for ``project_id``."""
        return [
            record.values
            for record in self.write_log
            if record.kind == "merge" and record.project_id == project_id
        ]

    def document(self, project_id: str) -> dict[str, Any] | None:
        """Return a copy of the stored document body, for assertions."""
        return copy.deepcopy(self._documents.get(project_id))

    # --- DocumentStore protocol ---

    async def get(self, project_id: str) -> Snapshot:
        await self._network()
        self._check_access(project_id)
        return self._snapshot(project_id)

    def listen(
        self,
        project_id: str,
        on_snapshot: Callable[[Snapshot], None],
        on_error: Callable[[StoreError], None],
    ) -> Registration:
        registration = self._hub.add(project_id, on_snapshot, on_error)
        if project_id in self._denied:
            self._hub.fail(registration, PermissionDeniedError(project_id))
        else:
            self._hub.deliver(registration, self._snapshot(project_id))
        return registration

    async def merge(self, project_id: str, patch: Mapping[str, Any]) -> None:
        await self._network()
        self._check_access(project_id)
        self._maybe_fail(project_id)
        document = self._documents.get(project_id)
        if document is None:
            raise NotFoundError(project_id)

        values = resolve_server_timestamps(patch, self._clock())
        document.update(copy.deepcopy(values))
        self.write_log.append(WriteRecord("merge", project_id, values))
        logger.debug("Merged %s into %s", sorted(values), project_id)
        self._hub.publish(self._snapshot(project_id))

    async def create(
        self, data: Mapping[str, Any], project_id: str | None = None
    ) -> str:
        await self._network()
        project_id = project_id or new_document_id()
        self._check_access(project_id)
        if project_id in self._documents:
            raise AlreadyExistsError(project_id)
        self._maybe_fail(project_id)

        values = resolve_server_timestamps(data, self._clock())
        self._documents[project_id] = copy.deepcopy(values)
        self.write_log.append(WriteRecord("create", project_id, values))
        logger.debug("Created document %s", project_id)
        self._hub.publish(self._snapshot(project_id))
        return project_id

    async def find_by_owner(self, owner_id: str) -> list[Snapshot]:
        await self._network()
        return [
            self._snapshot(project_id)
            for project_id, data in self._documents.items()
            if data.get("ownerId") == owner_id and project_id not in self._denied
        ]

    async def close(self) -> None:
        """Nothing to release; listeners stay attached."""

    # --- Internals ---

    async def _network(self) -> None:
        # Always yield, even with zero latency, like a real round-trip.
        await asyncio.sleep(self.latency)

    def _snapshot(self, project_id: str) -> Snapshot:
        data = copy.deepcopy(self._documents.get(project_id))
        return Snapshot(id=project_id, data=data)

    def _check_access(self, project_id: str) -> None:
        if project_id in self._denied:
            raise PermissionDeniedError(project_id)

    def _maybe_fail(self, project_id: str) -> None:
        if self._failures_remaining > 0:
            self._failures_remaining -= 1
            raise StoreUnavailableError(project_id, "Simulated transient write failure")
