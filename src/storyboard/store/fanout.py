"""In-process fan-out of document snapshots to live listeners.

Deliveries are queued on the running event loop with ``call_soon`` so that
listeners see snapshots in commit order and never re-enter the writer.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from storyboard.store.protocol import SERVER_TIMESTAMP, Snapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from storyboard.store.errors import StoreError

logger = logging.getLogger(__name__)


class Registration:
    """A live listener on one project. Returned by ``listen()``."""

    def __init__(
        self,
        hub: ListenerHub,
        project_id: str,
        on_snapshot: Callable[[Snapshot], None],
        on_error: Callable[[StoreError], None],
    ) -> None:
        self.project_id = project_id
        self.active = True
        self._hub = hub
        self._on_snapshot = on_snapshot
        self._on_error = on_error

    def remove(self) -> None:
        """Detach the listener. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        self._hub.discard(self)

    def _deliver(self, snapshot: Snapshot) -> None:
        if not self.active:
            return
        try:
            self._on_snapshot(snapshot)
        except Exception:
            logger.exception("Snapshot listener for %s raised", self.project_id)

    def _fail(self, error: StoreError) -> None:
        if not self.active:
            return
        self.remove()
        try:
            self._on_error(error)
        except Exception:
            logger.exception("Error listener for %s raised", self.project_id)


class ListenerHub:
    """Tracks listeners per project id and schedules their callbacks."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Registration]] = {}

    def add(
        self,
        project_id: str,
        on_snapshot: Callable[[Snapshot], None],
        on_error: Callable[[StoreError], None],
    ) -> Registration:
        registration = Registration(self, project_id, on_snapshot, on_error)
        self._listeners.setdefault(project_id, []).append(registration)
        logger.debug(
            "Listener attached to %s (%d live)", project_id, self.count(project_id)
        )
        return registration

    def discard(self, registration: Registration) -> None:
        listeners = self._listeners.get(registration.project_id, [])
        if registration in listeners:
            listeners.remove(registration)
        if not listeners:
            self._listeners.pop(registration.project_id, None)
        logger.debug("Listener detached from %s", registration.project_id)

    def count(self, project_id: str) -> int:
        return len(self._listeners.get(project_id, ()))

    def project_ids(self) -> list[str]:
        """Projects that currently have at least one listener."""
        return list(self._listeners)

    def deliver(self, registration: Registration, snapshot: Snapshot) -> None:
        """Queue one snapshot for one listener."""
        loop = asyncio.get_running_loop()
        loop.call_soon(registration._deliver, _copy_snapshot(snapshot))

    def fail(self, registration: Registration, error: StoreError) -> None:
        """Queue an error for one listener; the listener is then detached."""
        loop = asyncio.get_running_loop()
        loop.call_soon(registration._fail, error)

    def publish(self, snapshot: Snapshot) -> None:
        """Queue a snapshot for every listener on its project."""
        for registration in list(self._listeners.get(snapshot.id, ())):
            self.deliver(registration, snapshot)

    def fail_all(self, project_id: str, error: StoreError) -> None:
        for registration in list(self._listeners.get(project_id, ())):
            self.fail(registration, error)


def _copy_snapshot(snapshot: Snapshot) -> Snapshot:
    return Snapshot(id=snapshot.id, data=copy.deepcopy(snapshot.data))


def resolve_server_timestamps(
    values: Mapping[str, Any], now: datetime
) -> dict[str, Any]:
    """Return a copy of ``values`` with every ``SERVER_TIMESTAMP`` set to ``now``."""
    resolved: dict[str, Any] = {}
    for key, value in values.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = now
        elif isinstance(value, dict):
            resolved[key] = resolve_server_timestamps(value, now)
        else:
            resolved[key] = copy.deepcopy(value)
    return resolved
