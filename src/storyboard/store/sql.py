"""PostgreSQL-backed document store.

Stores each project as one ``project_document`` row. Every committed write
is announced with ``pg_notify`` on ``NOTIFY_CHANNEL``; each store instance
keeps one asyncpg connection LISTENing on that channel and re-reads a
project when another process changes it. Writes made through the same
instance reach its listeners directly.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import asyncpg
from pydantic_core import to_jsonable_python
from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlmodel import col, select

from storyboard.db.engine import driver_url, get_database_url, get_session
from storyboard.db.models import ProjectDocument
from storyboard.ids import new_document_id
from storyboard.store.errors import (
    AlreadyExistsError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
)
from storyboard.store.fanout import ListenerHub, Registration, resolve_server_timestamps
from storyboard.store.protocol import Snapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Mapping

    from sqlmodel.ext.asyncio.session import AsyncSession

logger = logging.getLogger(__name__)

# Document keys kept in their own columns rather than in the JSON body
_TIMESTAMP_COLUMNS = {"createdAt": "created_at", "lastEdited": "last_edited"}

# Payload is "<origin>:<project id>"; origin names the writing store instance
NOTIFY_CHANNEL = "project_document_changed"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _to_snapshot(project_id: str, record: ProjectDocument | None) -> Snapshot:
    if record is None:
        return Snapshot(id=project_id, data=None)
    data = dict(record.data)
    data["createdAt"] = record.created_at
    data["lastEdited"] = record.last_edited
    return Snapshot(id=project_id, data=data)


class SqlDocumentStore:
    """Document store over the ``project_document`` table.

    Call ``close()`` on shutdown to drop the notification connection.
    """

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._hub = ListenerHub()
        self._clock = clock or _utcnow
        # Tags this instance's pg_notify payloads so it skips its own writes
        self._origin = uuid4().hex
        # Bumped on every publish; lets a read detect a racing write
        self._versions: dict[str, int] = {}
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._notifications: asyncpg.Connection | None = None
        self._notifications_lock = asyncio.Lock()
        self._refreshing: set[str] = set()
        self._changed_again: set[str] = set()

    async def get(self, project_id: str) -> Snapshot:
        try:
            async with get_session() as session:
                record = await session.get(ProjectDocument, project_id)
        except DBAPIError as exc:
            raise StoreUnavailableError(project_id, str(exc)) from exc
        return _to_snapshot(project_id, record)

    def listen(
        self,
        project_id: str,
        on_snapshot: Callable[[Snapshot], None],
        on_error: Callable[[StoreError], None],
    ) -> Registration:
        registration = self._hub.add(project_id, on_snapshot, on_error)
        self._spawn(self._deliver_initial(registration))
        return registration

    async def _deliver_initial(self, registration: Registration) -> None:
        project_id = registration.project_id
        try:
            await self._ensure_notifications()
        except (OSError, asyncpg.PostgresError, ValueError) as exc:
            logger.warning("Cannot listen for changes to %s: %s", project_id, exc)
            self._hub.fail(registration, StoreUnavailableError(project_id, str(exc)))
            return
        while registration.active:
            version = self._versions.get(project_id, 0)
            try:
                snapshot = await self.get(project_id)
            except StoreError as exc:
                self._hub.fail(registration, exc)
                return
            # A write committed during the read has already been queued
            # for this listener; re-read so the newest state lands last.
            if self._versions.get(project_id, 0) == version:
                self._hub.deliver(registration, snapshot)
                return

    async def merge(self, project_id: str, patch: Mapping[str, Any]) -> None:
        values = resolve_server_timestamps(patch, self._clock())
        try:
            async with get_session() as session:
                record = await session.get(
                    ProjectDocument, project_id, with_for_update=True
                )
                if record is None:
                    raise NotFoundError(project_id)
                data = dict(record.data)
                for key, value in values.items():
                    column = _TIMESTAMP_COLUMNS.get(key)
                    if column and isinstance(value, datetime):
                        setattr(record, column, value)
                    else:
                        data[key] = to_jsonable_python(value)
                if "ownerId" in values:
                    record.owner_id = str(values["ownerId"])
                # Reassign so SQLAlchemy sees the JSON column as changed
                record.data = data
                session.add(record)
                await self._announce(session, project_id)
        except DBAPIError as exc:
            raise StoreUnavailableError(project_id, str(exc)) from exc

        logger.debug("Merged %s into %s", sorted(values), project_id)
        self._publish(_to_snapshot(project_id, record))

    async def create(
        self, data: Mapping[str, Any], project_id: str | None = None
    ) -> str:
        project_id = project_id or new_document_id()
        now = self._clock()
        values = resolve_server_timestamps(data, now)
        created_at = values.pop("createdAt", now)
        last_edited = values.pop("lastEdited", now)
        record = ProjectDocument(
            id=project_id,
            owner_id=str(values.get("ownerId", "")),
            data=to_jsonable_python(values),
            created_at=created_at if isinstance(created_at, datetime) else now,
            last_edited=last_edited if isinstance(last_edited, datetime) else now,
        )
        try:
            async with get_session() as session:
                session.add(record)
                await session.flush()
                await self._announce(session, project_id)
        except IntegrityError as exc:
            raise AlreadyExistsError(project_id) from exc
        except DBAPIError as exc:
            raise StoreUnavailableError(project_id, str(exc)) from exc

        logger.info("Created project document %s", project_id)
        self._publish(_to_snapshot(project_id, record))
        return project_id

    async def find_by_owner(self, owner_id: str) -> list[Snapshot]:
        try:
            async with get_session() as session:
                result = await session.exec(
                    select(ProjectDocument).where(
                        col(ProjectDocument.owner_id) == owner_id
                    )
                )
                records = result.all()
        except DBAPIError as exc:
            raise StoreUnavailableError(None, str(exc)) from exc
        return [_to_snapshot(record.id, record) for record in records]

    async def close(self) -> None:
        """Stop listening for changes and cancel background reads."""
        connection, self._notifications = self._notifications, None
        if connection is not None and not connection.is_closed():
            connection.remove_termination_listener(self._on_notifications_lost)
            await connection.close()
        for task in list(self._background_tasks):
            task.cancel()

    # --- Change notifications ---

    async def _announce(self, session: AsyncSession, project_id: str) -> None:
        # Delivered by PostgreSQL only if the transaction commits
        payload = f"{self._origin}:{project_id}"
        await session.exec(select(func.pg_notify(NOTIFY_CHANNEL, payload)))

    async def _ensure_notifications(self) -> None:
        async with self._notifications_lock:
            if self._notifications is not None and not self._notifications.is_closed():
                return
            connection = await asyncpg.connect(driver_url(get_database_url()))
            connection.add_termination_listener(self._on_notifications_lost)
            await connection.add_listener(NOTIFY_CHANNEL, self._on_notification)
            self._notifications = connection
            logger.info("Listening for project changes on %s", NOTIFY_CHANNEL)

    def _on_notification(
        self, _connection: object, _pid: int, _channel: str, payload: str
    ) -> None:
        origin, _, project_id = payload.partition(":")
        if origin == self._origin or not self._hub.count(project_id):
            return
        if project_id in self._refreshing:
            self._changed_again.add(project_id)
            return
        self._refreshing.add(project_id)
        self._spawn(self._refresh(project_id))

    async def _refresh(self, project_id: str) -> None:
        """Re-read a project changed by another process and publish it."""
        try:
            while True:
                self._changed_again.discard(project_id)
                version = self._versions.get(project_id, 0)
                snapshot = await self.get(project_id)
                if (
                    project_id not in self._changed_again
                    and self._versions.get(project_id, 0) == version
                ):
                    break
        except StoreError as exc:
            self._hub.fail_all(project_id, exc)
            return
        finally:
            self._refreshing.discard(project_id)
        logger.debug("Picked up remote change to %s", project_id)
        self._publish(snapshot)

    def _on_notifications_lost(self, _connection: object) -> None:
        self._notifications = None
        logger.warning("Change notification connection lost")
        for project_id in self._hub.project_ids():
            self._hub.fail_all(
                project_id,
                StoreUnavailableError(project_id, "Change feed connection lost"),
            )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _publish(self, snapshot: Snapshot) -> None:
        self._versions[snapshot.id] = self._versions.get(snapshot.id, 0) + 1
        self._hub.publish(snapshot)
