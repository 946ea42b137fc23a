"""Debounced merge-patch writes.

Coalesces rapid edits to a project into one write: every ``schedule()``
merges its payload into the pending one and restarts the quiescence timer,
so only the last call of a burst reaches the store, ``delay`` seconds after
the burst ends. ``flush()`` skips the wait.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveResult:
    """Outcome of a flushed write.

    Attributes:
        success: True if the store accepted the write (or nothing was pending).
        error: Description of the failure if the write was rejected.
    """

    success: bool
    error: str | None = None


class DebouncedWriter:
    """Per-key pending payloads and timers for debounced writes.

    Attributes:
        delay: Quiescence window in seconds.
        _pending_payloads: key -> shallow union of payloads not yet written.
        _timers: key -> asyncio.Task sleeping out the window.
        _locks: key -> lock serialising writes so they land in issue order.
    """

    def __init__(
        self,
        write: Callable[[str, dict[str, Any]], Awaitable[None]],
        delay: float,
        *,
        on_error: Callable[[str, Exception], None] | None = None,
    ) -> None:
        self.delay = delay
        self._write = write
        self._on_error = on_error
        self._pending_payloads: dict[str, dict[str, Any]] = {}
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._in_flight: set[asyncio.Task[None]] = set()

    def schedule(self, key: str, payload: Mapping[str, Any]) -> None:
        """Merge ``payload`` into the pending write and restart the timer."""
        self._pending_payloads.setdefault(key, {}).update(payload)
        self._cancel_timer(key)
        timer = asyncio.create_task(self._write_after_delay(key))
        self._timers[key] = timer
        logger.debug(
            "Scheduled write for %s in %.3fs (keys=%s)",
            key,
            self.delay,
            sorted(self._pending_payloads[key]),
        )

    async def flush(
        self, key: str, payload: Mapping[str, Any] | None = None
    ) -> SaveResult:
        """Write the pending payload for ``key`` now, merged with ``payload``."""
        self._cancel_timer(key)
        if payload:
            self._pending_payloads.setdefault(key, {}).update(payload)
        return await self._write_pending(key)

    async def flush_all(self) -> list[SaveResult]:
        """Write every pending payload immediately (e.g. on shutdown)."""
        results = [await self.flush(key) for key in list(self._pending_payloads)]
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        return results

    def is_pending(self, key: str) -> bool:
        return key in self._pending_payloads

    def pending_payload(self, key: str) -> dict[str, Any]:
        return dict(self._pending_payloads.get(key, {}))

    def _cancel_timer(self, key: str) -> None:
        """Cancel a pending timer if it has not fired yet."""
        timer = self._timers.pop(key, None)
        if timer and not timer.done():
            timer.cancel()

    async def _write_after_delay(self, key: str) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            return  # Superseded by a newer schedule() or a flush()
        # From here on the write belongs to no timer and cannot be cancelled
        # by a later schedule(); it only runs to completion.
        self._timers.pop(key, None)
        task = asyncio.current_task()
        if task is not None:
            self._in_flight.add(task)
        try:
            await self._write_pending(key)
        finally:
            if task is not None:
                self._in_flight.discard(task)

    async def _write_pending(self, key: str) -> SaveResult:
        payload = self._pending_payloads.pop(key, None)
        if not payload:
            return SaveResult(success=True)

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            try:
                await self._write(key, payload)
            except Exception as exc:
                logger.exception("Failed to write %s (keys=%s)", key, sorted(payload))
                if self._on_error is not None:
                    self._on_error(key, exc)
                return SaveResult(success=False, error=str(exc))

        logger.info("Persisted %s (keys=%s)", key, sorted(payload))
        return SaveResult(success=True)
