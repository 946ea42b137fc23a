"""Tests for project creation, loading, listing and share links."""

from __future__ import annotations

import logging

import pytest

from storyboard.auth.models import UserIdentity
from storyboard.models import AspectRatio, Project, PublicAccess, Role
from storyboard.projects import (
    ProjectSummary,
    create_project,
    list_projects,
    load_project,
    share_url,
)
from storyboard.store.protocol import SERVER_TIMESTAMP
from tests.helpers.documents import OWNER_ID, TickingClock, TimedStore

OWNER = UserIdentity(id=OWNER_ID, display_name="Owner", email="owner@example.com")


class TestCreateProject:
    @pytest.mark.asyncio
    async def test_initial_document(
        self, store: TimedStore, clock: TickingClock
    ) -> None:
        project_id = await create_project(store, OWNER, "Pilot")

        document = store.document(project_id)
        assert document is not None
        assert document["projectTitle"] == "Pilot"
        assert document["ownerId"] == OWNER_ID
        assert document["roles"] == {OWNER_ID: "owner"}
        assert document["publicAccess"] == "none"
        assert document["aspectRatio"] == "16:9"
        assert document["createdAt"] == clock.now
        assert document["lastEdited"] == clock.now
        assert "id" not in document

    @pytest.mark.asyncio
    async def test_one_empty_default_scene(self, store: TimedStore) -> None:
        project_id = await create_project(store, OWNER)

        [scene] = store.document(project_id)["sequences"]
        assert scene["title"] == "Scene 1"
        assert scene["frames"] == []
        assert scene["id"].startswith("seq_")

    @pytest.mark.asyncio
    async def test_blank_title_uses_default(self, store: TimedStore) -> None:
        project_id = await create_project(store, OWNER, "")

        assert store.document(project_id)["projectTitle"] == "Untitled Project"

    @pytest.mark.asyncio
    async def test_created_project_loads(self, store: TimedStore) -> None:
        project_id = await create_project(store, OWNER, "Pilot")

        project = await load_project(store, project_id)

        assert isinstance(project, Project)
        assert project.id == project_id
        assert project.roles == {OWNER_ID: Role.OWNER}
        assert project.aspect_ratio is AspectRatio.WIDESCREEN


class TestLoadProject:
    @pytest.mark.asyncio
    async def test_missing_returns_none(self, store: TimedStore) -> None:
        assert await load_project(store, "ghost") is None

    @pytest.mark.asyncio
    async def test_legacy_document_is_upgraded(self, store: TimedStore) -> None:
        await store.create(
            {"title": "Old", "userId": OWNER_ID, "frames": [{"id": 1}]},
            project_id="legacy",
        )

        project = await load_project(store, "legacy")

        assert project is not None
        assert project.project_title == "Old"
        assert project.sequences[0].frames[0].id == "1"


class TestListProjects:
    @pytest.mark.asyncio
    async def test_newest_first(self, store: TimedStore) -> None:
        first = await create_project(store, OWNER, "First")
        second = await create_project(store, OWNER, "Second")
        await store.merge(
            first, {"projectTitle": "First, edited", "lastEdited": SERVER_TIMESTAMP}
        )

        summaries = await list_projects(store, OWNER_ID)

        assert [s.id for s in summaries] == [first, second]
        assert summaries[0] == ProjectSummary(
            id=first,
            title="First, edited",
            owner_id=OWNER_ID,
            last_edited=summaries[0].last_edited,
        )
        assert summaries[0].last_edited > summaries[1].last_edited

    @pytest.mark.asyncio
    async def test_other_owners_excluded(self, store: TimedStore) -> None:
        await create_project(store, UserIdentity(id="someone-else"), "Theirs")

        assert await list_projects(store, OWNER_ID) == []

    @pytest.mark.asyncio
    async def test_invalid_document_is_skipped(
        self, store: TimedStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        good = await create_project(store, OWNER, "Good")
        broken = await store.create(
            {"ownerId": OWNER_ID, "roles": {OWNER_ID: "viewer"}, "sequences": []}
        )

        with caplog.at_level(logging.WARNING, logger="storyboard.projects"):
            summaries = await list_projects(store, OWNER_ID)

        assert [s.id for s in summaries] == [good]
        assert f"Skipping invalid project {broken}" in caplog.text


class TestShareUrl:
    def test_viewer_link(self) -> None:
        url = share_url("https://boards.example", "abc")

        assert url == "https://boards.example/share/abc"

    def test_editor_link_has_edit_flag(self) -> None:
        url = share_url("https://boards.example/", "abc", PublicAccess.EDITOR)

        assert url == "https://boards.example/share/abc?edit=true"

    def test_access_accepts_strings(self) -> None:
        assert share_url("http://h", "abc", "editor").endswith("?edit=true")

    def test_project_id_is_escaped(self) -> None:
        assert share_url("http://h", "a/b").endswith("/share/a%2Fb")
