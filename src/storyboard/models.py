"""Pydantic models for storyboard project documents.

The wire format is the camelCase document held by the store; the Python
side uses snake_case attributes. ``model_dump(by_alias=True)`` produces the
wire form and ``model_validate`` accepts either.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

from storyboard.auth.models import GUEST_AUTHOR
from storyboard.ids import new_comment_id

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from storyboard.store.protocol import Snapshot

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_TITLE = "Untitled Project"
LEGACY_SCENE_ID = "seq_default"


class Role(StrEnum):
    """Per-user access level recorded in ``Project.roles``."""

    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"


class PublicAccess(StrEnum):
    """Access granted to share-link holders who are not named in ``roles``."""

    NONE = "none"
    VIEWER = "viewer"
    EDITOR = "editor"


class AspectRatio(StrEnum):
    WIDESCREEN = "16:9"
    STANDARD = "4:3"
    SQUARE = "1:1"
    VERTICAL = "9:16"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        # Older documents carry numeric frame ids
        coerce_numbers_to_str=True,
    )


# ---------------------------------------------------------------------------
# Media slot
# ---------------------------------------------------------------------------
class NoMedia(BaseModel):
    kind: Literal["none"] = "none"


class ImageMedia(BaseModel):
    kind: Literal["image"] = "image"
    url: str = Field(min_length=1)


class VideoMedia(BaseModel):
    kind: Literal["video"] = "video"
    url: str = Field(min_length=1)


Media = Annotated[NoMedia | ImageMedia | VideoMedia, Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Document entities
# ---------------------------------------------------------------------------
class Comment(_WireModel):
    """A viewer comment attached to a frame. Comments are append-only."""

    id: str = Field(default_factory=new_comment_id)
    text: str
    author: str = GUEST_AUTHOR
    created_at: datetime | None = None


class Frame(_WireModel):
    """A single storyboard panel.

    The base media is a single tagged slot, so a frame can never hold an
    image and a video at once. On the wire the slot is spread over the
    ``imageUrl`` / ``videoUrl`` keys with at most one of them present.
    """

    id: str
    script: str = ""
    sound: str = ""
    media: Media = Field(default_factory=NoMedia, exclude=True)
    audio_url: str | None = None
    drawing_data: Any = None
    shot_type: str = ""
    camera_move: str = ""
    comments: list[Comment] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _lift_media_slot(cls, data: Any) -> Any:
        """Fold the wire ``imageUrl`` / ``videoUrl`` keys into ``media``."""
        if not isinstance(data, dict) or "media" in data:
            return data
        data = dict(data)
        image = _pop_first(data, "imageUrl", "image_url")
        video = _pop_first(data, "videoUrl", "video_url")
        if image and video:
            logger.warning(
                "Frame %s has both image and video set; keeping the image",
                data.get("id"),
            )
        if image:
            data["media"] = {"kind": "image", "url": image}
        elif video:
            data["media"] = {"kind": "video", "url": video}
        else:
            data["media"] = {"kind": "none"}
        return data

    @computed_field(alias="imageUrl")  # type: ignore[prop-decorator]
    @property
    def image_url(self) -> str | None:
        return self.media.url if isinstance(self.media, ImageMedia) else None

    @computed_field(alias="videoUrl")  # type: ignore[prop-decorator]
    @property
    def video_url(self) -> str | None:
        return self.media.url if isinstance(self.media, VideoMedia) else None


class Scene(_WireModel):
    """A named, ordered group of frames. List order is presentation order."""

    id: str
    title: str = ""
    frames: list[Frame] = Field(default_factory=list)


class Project(_WireModel):
    """Root storyboard document.

    ``id`` is the store key and is never written into the document body.
    ``created_at`` and ``last_edited`` are stamped by the store.
    """

    id: str = Field(default="", exclude=True)
    project_title: str = DEFAULT_PROJECT_TITLE
    owner_id: str
    roles: dict[str, Role] = Field(default_factory=dict)
    public_access: PublicAccess = PublicAccess.NONE
    aspect_ratio: AspectRatio = AspectRatio.WIDESCREEN
    sequences: list[Scene] = Field(default_factory=list)
    created_at: datetime | None = None
    last_edited: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy_layout(cls, data: Any) -> Any:
        """Read documents written before scenes, titles and roles existed."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "frames" in data and "sequences" not in data:
            logger.warning(
                "Project %s uses a flat frame list; reading it as one scene",
                data.get("id"),
            )
            data["sequences"] = [
                {"id": LEGACY_SCENE_ID, "title": "Scene 1", "frames": data["frames"]}
            ]
        data.pop("frames", None)
        if "projectTitle" not in data and "project_title" not in data:
            title = data.get("title")
            if title:
                data["projectTitle"] = title
        if "ownerId" not in data and "owner_id" not in data and data.get("userId"):
            data["ownerId"] = data["userId"]
        owner = data.get("ownerId", data.get("owner_id"))
        if owner and not data.get("roles"):
            data["roles"] = {owner: Role.OWNER.value}
        return data

    @model_validator(mode="after")
    def _check_invariants(self) -> Self:
        if self.roles.get(self.owner_id) is not Role.OWNER:
            msg = f"roles[{self.owner_id!r}] must be 'owner'"
            raise ValueError(msg)
        _check_unique((scene.id for scene in self.sequences), "scene")
        _check_unique((frame.id for frame in self.all_frames()), "frame")
        return self

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> Self:
        """Build a Project from an existing store snapshot."""
        if snapshot.data is None:
            msg = f"Project {snapshot.id} does not exist"
            raise ValueError(msg)
        return cls.model_validate({**snapshot.data, "id": snapshot.id})

    def to_document(self) -> dict[str, Any]:
        """Return the wire form, without the key and server timestamps."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"created_at", "last_edited"},
            exclude_none=True,
        )

    def with_patch(self, patch: Mapping[str, Any]) -> Self:
        """Preview the project as it would look after a merge-patch."""
        merged = {**self.to_document(), **patch}
        merged.update(
            id=self.id, createdAt=self.created_at, lastEdited=self.last_edited
        )
        return type(self).model_validate(merged)

    def all_frames(self) -> Iterator[Frame]:
        for scene in self.sequences:
            yield from scene.frames

    def find_scene(self, scene_id: str) -> Scene | None:
        return next((s for s in self.sequences if s.id == scene_id), None)

    def find_frame(self, frame_id: str) -> Frame | None:
        return next((f for f in self.all_frames() if f.id == frame_id), None)


def _pop_first(data: dict[str, Any], *keys: str) -> Any:
    """Pop every key in ``keys``, returning the first non-empty value."""
    values = [data.pop(key, None) for key in keys]
    return next((v for v in values if v), None)


def _check_unique(ids: Iterable[str], kind: str) -> None:
    seen: set[str] = set()
    for item_id in ids:
        if item_id in seen:
            msg = f"duplicate {kind} id {item_id!r}"
            raise ValueError(msg)
        seen.add(item_id)


def sequences_patch(scenes: Iterable[Scene]) -> dict[str, Any]:
    """Merge-patch replacing the whole ``sequences`` value."""
    return {
        "sequences": [
            scene.model_dump(mode="json", by_alias=True, exclude_none=True)
            for scene in scenes
        ]
    }
