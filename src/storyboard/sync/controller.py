"""Document sync controller.

Owns the local copy of one project document. The store's live feed is the
only thing that replaces the local copy; local edits go out as merge-patch
writes through a DebouncedWriter and come back through the feed.

Status transitions:
    idle -> loading            subscribe()
    loading -> idle            first snapshot received
    loading -> error           document missing, access denied, feed failure
    any -> saving -> idle      request_manual_save(), whatever the outcome
    loading -> idle            unsubscribe() before the first snapshot

Entering idle clears any recorded error. Autosave never changes status.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from functools import partial
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from storyboard.config import get_settings
from storyboard.models import Project
from storyboard.store.errors import NotFoundError, PermissionDeniedError
from storyboard.store.protocol import SERVER_TIMESTAMP
from storyboard.sync.debounce import DebouncedWriter, SaveResult

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from storyboard.store.errors import StoreError
    from storyboard.store.protocol import DocumentStore, ListenerRegistration, Snapshot

logger = logging.getLogger(__name__)

# Keys owned by the store; never taken from a client patch
PROTECTED_KEYS = frozenset({"id", "ownerId", "createdAt", "lastEdited"})


class SyncStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    SAVING = "saving"
    ERROR = "error"


class ErrorKind(StrEnum):
    """Why a subscription ended up in the error state."""

    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    INVALID_DOCUMENT = "invalid_document"


class DocumentSyncController:
    """Keeps one project document in sync with a DocumentStore.

    Attributes:
        status: Current SyncStatus.
        document: Last snapshot received from the store, or None.
        project_id: Project of the current (or last) subscription.
        error: Human-readable message when status is ERROR.
        error_kind: Machine-readable reason when status is ERROR.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        debounce_seconds: float | None = None,
        on_write_error: Callable[[str, Exception], None] | None = None,
    ) -> None:
        if debounce_seconds is None:
            debounce_seconds = get_settings().sync.debounce_seconds
        self._store = store
        self._writer = DebouncedWriter(
            self._write, debounce_seconds, on_error=on_write_error
        )
        self.status = SyncStatus.IDLE
        self.document: Project | None = None
        self.project_id: str | None = None
        self.error: str | None = None
        self.error_kind: ErrorKind | None = None
        self._registration: ListenerRegistration | None = None
        # Bumped on every subscribe/unsubscribe; callbacks from an older
        # subscription carry a stale value and are ignored.
        self._generation = 0
        self._first_snapshot: asyncio.Future[None] | None = None
        self._saves_in_flight = 0
        self._listeners: list[Callable[[DocumentSyncController], None]] = []

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def debounce_seconds(self) -> float:
        return self._writer.delay

    @property
    def subscribed(self) -> bool:
        return self._registration is not None

    # --- Subscription ---

    async def subscribe(self, project_id: str) -> Project | None:
        """Attach to the live feed of ``project_id``.

        Returns once the first snapshot (or a subscription error) has been
        applied. Any previous subscription is detached first.
        """
        self.unsubscribe()
        self._generation += 1
        generation = self._generation
        self.project_id = project_id
        self.document = None
        self._clear_error()
        self._set_status(SyncStatus.LOADING)
        logger.info("Subscribing to project %s", project_id)

        first = asyncio.get_running_loop().create_future()
        self._first_snapshot = first
        self._registration = self._store.listen(
            project_id,
            partial(self._on_snapshot, generation),
            partial(self._on_feed_error, generation),
        )
        await first
        return self.document

    def unsubscribe(self) -> None:
        """Detach from the live feed. Safe to call any number of times.

        Pending and in-flight writes are left alone.
        """
        registration, self._registration = self._registration, None
        self._generation += 1
        if registration is not None:
            registration.remove()
            logger.info("Unsubscribed from project %s", self.project_id)
        if self.status is SyncStatus.LOADING:
            self._set_status(SyncStatus.IDLE)
        self._resolve_first_snapshot()

    def _on_snapshot(self, generation: int, snapshot: Snapshot) -> None:
        if generation != self._generation:
            return
        if not snapshot.exists:
            self.document = None
            self._fail(ErrorKind.NOT_FOUND, f"Project {snapshot.id} not found")
            self._detach()
            return
        try:
            document = Project.from_snapshot(snapshot)
        except ValidationError as exc:
            logger.exception("Project %s failed validation", snapshot.id)
            self._fail(
                ErrorKind.INVALID_DOCUMENT, f"Project {snapshot.id} is invalid: {exc}"
            )
            return

        self.document = document
        self._clear_error()
        if self._saves_in_flight == 0:
            self.status = SyncStatus.IDLE
        logger.debug("Applied snapshot of %s", snapshot.id)
        self._notify()
        self._resolve_first_snapshot()

    def _on_feed_error(self, generation: int, exc: StoreError) -> None:
        if generation != self._generation:
            return
        # The store ends the feed after reporting an error
        self._registration = None
        if isinstance(exc, PermissionDeniedError):
            self.document = None
            self._fail(
                ErrorKind.PERMISSION_DENIED,
                f"Access denied to project {exc.project_id}",
            )
        elif isinstance(exc, NotFoundError):
            self.document = None
            self._fail(ErrorKind.NOT_FOUND, f"Project {exc.project_id} not found")
        else:
            self._fail(ErrorKind.UNAVAILABLE, str(exc))
        logger.warning("Live feed for %s failed: %s", self.project_id, exc)

    def _fail(self, kind: ErrorKind, message: str) -> None:
        self.error_kind = kind
        self.error = message
        self.status = SyncStatus.ERROR
        self._notify()
        self._resolve_first_snapshot()

    def _detach(self) -> None:
        registration, self._registration = self._registration, None
        if registration is not None:
            registration.remove()

    def _clear_error(self) -> None:
        self.error = None
        self.error_kind = None

    def _resolve_first_snapshot(self) -> None:
        first, self._first_snapshot = self._first_snapshot, None
        if first is not None and not first.done():
            first.set_result(None)

    # --- Writes ---

    def request_autosave(self, project_id: str, patch: Mapping[str, Any]) -> None:
        """Queue a debounced merge-patch write. Never blocks, never changes status."""
        payload = self._prepare(patch)
        if payload:
            self._writer.schedule(project_id, payload)

    async def request_manual_save(
        self, project_id: str, patch: Mapping[str, Any] | None = None
    ) -> SaveResult:
        """Write ``patch`` plus anything pending for the project right now.

        Status goes to SAVING for the duration and back to IDLE whatever the
        outcome; the returned SaveResult says whether the write landed.
        """
        self._saves_in_flight += 1
        self._set_status(SyncStatus.SAVING)
        try:
            result = await self._writer.flush(project_id, self._prepare(patch or {}))
        finally:
            self._saves_in_flight -= 1
            if self._saves_in_flight == 0 and self.status is SyncStatus.SAVING:
                self._set_status(SyncStatus.IDLE)
        return result

    def has_pending_write(self, project_id: str) -> bool:
        return self._writer.is_pending(project_id)

    async def flush_all(self) -> list[SaveResult]:
        """Write every pending payload now."""
        return await self._writer.flush_all()

    async def close(self) -> None:
        """Unsubscribe and flush outstanding writes."""
        self.unsubscribe()
        await self.flush_all()

    async def _write(self, project_id: str, payload: dict[str, Any]) -> None:
        await self._store.merge(project_id, {**payload, "lastEdited": SERVER_TIMESTAMP})

    def _prepare(self, patch: Mapping[str, Any]) -> dict[str, Any]:
        stripped = PROTECTED_KEYS.intersection(patch)
        if stripped:
            logger.warning(
                "Ignoring store-owned keys %s in patch for %s",
                sorted(stripped),
                self.project_id,
            )
        return {key: value for key, value in patch.items() if key not in PROTECTED_KEYS}

    # --- Change notification ---

    def add_listener(
        self, callback: Callable[[DocumentSyncController], None]
    ) -> Callable[[], None]:
        """Call ``callback(controller)`` after every status or document change.

        Returns a function that removes the callback.
        """
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _set_status(self, status: SyncStatus) -> None:
        self.status = status
        if status is SyncStatus.IDLE:
            self._clear_error()
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                logger.exception("Sync listener %r failed", callback)
