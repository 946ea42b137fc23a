"""Project lifecycle: create, load, list and share.

Used by the dashboard and the admin CLI. Editing an open project goes
through DocumentSyncController instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from urllib.parse import quote

from pydantic import ValidationError

from storyboard.ids import new_scene_id
from storyboard.models import (
    DEFAULT_PROJECT_TITLE,
    AspectRatio,
    Project,
    PublicAccess,
    Role,
    Scene,
)
from storyboard.store.protocol import SERVER_TIMESTAMP

if TYPE_CHECKING:
    from storyboard.auth.models import UserIdentity
    from storyboard.store.protocol import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectSummary:
    """One row of a project listing."""

    id: str
    title: str
    owner_id: str
    last_edited: datetime | None = None


async def create_project(
    store: DocumentStore,
    owner: UserIdentity,
    title: str = DEFAULT_PROJECT_TITLE,
) -> str:
    """Create a project owned by ``owner`` with one empty scene.

    Returns:
        The id the store assigned to the new project.
    """
    project = Project(
        project_title=title or DEFAULT_PROJECT_TITLE,
        owner_id=owner.id,
        roles={owner.id: Role.OWNER},
        public_access=PublicAccess.NONE,
        aspect_ratio=AspectRatio.WIDESCREEN,
        sequences=[Scene(id=new_scene_id(), title="Scene 1")],
    )
    document = {
        **project.to_document(),
        "createdAt": SERVER_TIMESTAMP,
        "lastEdited": SERVER_TIMESTAMP,
    }
    project_id = await store.create(document)
    logger.info("Created project %s for user %s", project_id, owner.id)
    return project_id


async def load_project(store: DocumentStore, project_id: str) -> Project | None:
    """Read a project once, or None if it does not exist."""
    snapshot = await store.get(project_id)
    if not snapshot.exists:
        return None
    return Project.from_snapshot(snapshot)


async def list_projects(store: DocumentStore, owner_id: str) -> list[ProjectSummary]:
    """Projects owned by ``owner_id``, most recently edited first."""
    summaries = []
    for snapshot in await store.find_by_owner(owner_id):
        try:
            project = Project.from_snapshot(snapshot)
        except ValidationError as exc:
            logger.warning("Skipping invalid project %s: %s", snapshot.id, exc)
            continue
        summaries.append(
            ProjectSummary(
                id=project.id,
                title=project.project_title,
                owner_id=project.owner_id,
                last_edited=project.last_edited,
            )
        )
    # Projects without a timestamp sort last
    summaries.sort(
        key=lambda s: (s.last_edited is not None, s.last_edited), reverse=True
    )
    return summaries


def share_url(
    base_url: str, project_id: str, access: PublicAccess | str = PublicAccess.VIEWER
) -> str:
    """Link that opens ``project_id`` in the share viewer.

    Editor links carry ``?edit=true``. The link grants nothing by itself;
    the store checks ``publicAccess`` when it is opened.
    """
    url = f"{base_url.rstrip('/')}/share/{quote(project_id, safe='')}"
    if PublicAccess(access) is PublicAccess.EDITOR:
        url += "?edit=true"
    return url
