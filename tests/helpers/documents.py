"""Test doubles and sample documents shared across test suites."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from storyboard.store.memory import InMemoryDocumentStore
from storyboard.store.protocol import SERVER_TIMESTAMP

OWNER_ID = "user-owner"
EDITOR_ID = "user-editor"


class TickingClock:
    """Deterministic store clock: each call is one second after the last."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class TimedStore(InMemoryDocumentStore):
    """InMemoryDocumentStore that also records the loop time of each merge."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.merge_times: list[float] = []

    async def merge(self, project_id: str, patch: Any) -> None:
        self.merge_times.append(asyncio.get_running_loop().time())
        await super().merge(project_id, patch)


def project_document(**overrides: Any) -> dict[str, Any]:
    """Wire-format project body with two scenes and three frames."""
    document: dict[str, Any] = {
        "projectTitle": "Heist",
        "ownerId": OWNER_ID,
        "roles": {OWNER_ID: "owner", EDITOR_ID: "editor"},
        "publicAccess": "none",
        "aspectRatio": "16:9",
        "sequences": [
            {
                "id": "seq_1",
                "title": "Scene 1",
                "frames": [
                    {"id": "frame_1", "script": "EXT. BANK - NIGHT", "sound": ""},
                    {
                        "id": "frame_2",
                        "script": "",
                        "sound": "Alarm",
                        "imageUrl": "https://cdn.example/2.png",
                    },
                ],
            },
            {
                "id": "seq_2",
                "title": "Scene 2",
                "frames": [{"id": "frame_3", "script": "", "sound": ""}],
            },
        ],
        "createdAt": SERVER_TIMESTAMP,
        "lastEdited": SERVER_TIMESTAMP,
    }
    document.update(overrides)
    return document


async def settle() -> None:
    """Let queued listener callbacks run."""
    for _ in range(3):
        await asyncio.sleep(0)
