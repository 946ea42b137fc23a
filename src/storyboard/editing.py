"""Editor operations expressed as merge-patches.

Each function takes the controller's current Project and returns the
patch to hand to ``DocumentSyncController.request_autosave``. The project
itself is never modified; use ``Project.with_patch`` to preview a result.

Structural edits replace the whole ``sequences`` value, so two clients
editing scenes at the same time resolve last-write-wins on that key.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from storyboard.auth.models import GUEST_AUTHOR
from storyboard.ids import new_comment_id, new_frame_id, new_scene_id
from storyboard.models import (
    AspectRatio,
    Comment,
    Frame,
    NoMedia,
    PublicAccess,
    Role,
    Scene,
    sequences_patch,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from storyboard.auth.models import UserIdentity
    from storyboard.models import ImageMedia, Project, VideoMedia

# Frame fields update_frame() accepts
EDITABLE_FRAME_FIELDS = frozenset(
    {"script", "sound", "shot_type", "camera_move", "drawing_data"}
)


class EditError(LookupError):
    """An edit referred to something the project does not contain."""


class SceneNotFoundError(EditError):
    def __init__(self, scene_id: str) -> None:
        super().__init__(f"Scene {scene_id!r} not found")
        self.scene_id = scene_id


class FrameNotFoundError(EditError):
    def __init__(self, frame_id: str) -> None:
        super().__init__(f"Frame {frame_id!r} not found")
        self.frame_id = frame_id


# ---------------------------------------------------------------------------
# Project-level fields
# ---------------------------------------------------------------------------
def rename_project(project: Project, title: str) -> dict[str, Any]:
    return {"projectTitle": title}


def set_aspect_ratio(project: Project, ratio: AspectRatio | str) -> dict[str, Any]:
    return {"aspectRatio": AspectRatio(ratio).value}


def update_sharing(
    project: Project,
    *,
    public_access: PublicAccess | str | None = None,
    roles: Mapping[str, Role | str] | None = None,
) -> dict[str, Any]:
    """Change link access and/or the roles map.

    ``roles`` replaces the whole map; the owner's entry is always put back.
    """
    patch: dict[str, Any] = {}
    if public_access is not None:
        patch["publicAccess"] = PublicAccess(public_access).value
    if roles is not None:
        new_roles = {user_id: Role(role).value for user_id, role in roles.items()}
        new_roles[project.owner_id] = Role.OWNER.value
        patch["roles"] = new_roles
    return patch


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------
def add_scene(project: Project, title: str | None = None) -> dict[str, Any]:
    """Append an empty scene, titled ``Scene N`` unless a title is given."""
    scene = Scene(
        id=new_scene_id(),
        title=title or f"Scene {len(project.sequences) + 1}",
    )
    return sequences_patch([*project.sequences, scene])


def rename_scene(project: Project, scene_id: str, title: str) -> dict[str, Any]:
    _require_scene(project, scene_id)
    return sequences_patch(
        scene.model_copy(update={"title": title}) if scene.id == scene_id else scene
        for scene in project.sequences
    )


def delete_scene(project: Project, scene_id: str) -> dict[str, Any]:
    _require_scene(project, scene_id)
    return sequences_patch(s for s in project.sequences if s.id != scene_id)


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------
def add_frame(project: Project, scene_id: str) -> dict[str, Any]:
    """Append a blank frame to the end of a scene."""
    _require_scene(project, scene_id)
    frame = Frame(id=new_frame_id())
    return sequences_patch(
        scene.model_copy(update={"frames": [*scene.frames, frame]})
        if scene.id == scene_id
        else scene
        for scene in project.sequences
    )


def delete_frame(project: Project, frame_id: str) -> dict[str, Any]:
    _require_frame(project, frame_id)
    return sequences_patch(
        scene.model_copy(
            update={"frames": [f for f in scene.frames if f.id != frame_id]}
        )
        for scene in project.sequences
    )


def update_frame(project: Project, frame_id: str, **changes: Any) -> dict[str, Any]:
    """Set text fields, tags or the drawing overlay of one frame.

    Example:
        update_frame(project, "frame_1", script="INT. KITCHEN", shot_type="CU")
    """
    unknown = set(changes) - EDITABLE_FRAME_FIELDS
    if unknown:
        msg = f"Cannot edit frame field(s): {', '.join(sorted(unknown))}"
        raise ValueError(msg)
    return _replace_frame(project, frame_id, lambda f: f.model_copy(update=changes))


def set_frame_media(
    project: Project,
    frame_id: str,
    media: NoMedia | ImageMedia | VideoMedia | None,
) -> dict[str, Any]:
    """Put an image or a video in the frame's media slot, replacing what was there."""
    media = media or NoMedia()
    return _replace_frame(
        project, frame_id, lambda f: f.model_copy(update={"media": media})
    )


def set_frame_audio(
    project: Project, frame_id: str, audio_url: str | None
) -> dict[str, Any]:
    return _replace_frame(
        project,
        frame_id,
        lambda f: f.model_copy(update={"audio_url": audio_url or None}),
    )


def move_frame(project: Project, frame_id: str, target_frame_id: str) -> dict[str, Any]:
    """Move a frame to the position of another one.

    The move happens in the flattened frame list; the result is cut back into
    the scenes using their existing sizes, so a frame dragged across a scene
    boundary pushes the boundary frame into the neighbouring scene.
    """
    flat = list(project.all_frames())
    old_index = _frame_index(flat, frame_id)
    new_index = _frame_index(flat, target_frame_id)
    if old_index == new_index:
        return {}

    flat.insert(new_index, flat.pop(old_index))
    scenes = []
    start = 0
    for scene in project.sequences:
        end = start + len(scene.frames)
        scenes.append(scene.model_copy(update={"frames": flat[start:end]}))
        start = end
    return sequences_patch(scenes)


def add_comment(
    project: Project, frame_id: str, text: str, author: UserIdentity | None = None
) -> dict[str, Any]:
    """Append a comment to a frame. Anonymous visitors comment as "Guest"."""
    text = text.strip()
    if not text:
        msg = "Comment text must not be empty"
        raise ValueError(msg)
    comment = Comment(
        id=new_comment_id(),
        text=text,
        created_at=datetime.now(UTC),
        author=author.author_name if author is not None else GUEST_AUTHOR,
    )
    return _replace_frame(
        project,
        frame_id,
        lambda f: f.model_copy(update={"comments": [*f.comments, comment]}),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _require_scene(project: Project, scene_id: str) -> None:
    if project.find_scene(scene_id) is None:
        raise SceneNotFoundError(scene_id)


def _require_frame(project: Project, frame_id: str) -> None:
    if project.find_frame(frame_id) is None:
        raise FrameNotFoundError(frame_id)


def _frame_index(frames: list[Frame], frame_id: str) -> int:
    for index, frame in enumerate(frames):
        if frame.id == frame_id:
            return index
    raise FrameNotFoundError(frame_id)


def _replace_frame(
    project: Project, frame_id: str, change: Callable[[Frame], Frame]
) -> dict[str, Any]:
    _require_frame(project, frame_id)
    return sequences_patch(
        scene.model_copy(
            update={
                "frames": [change(f) if f.id == frame_id else f for f in scene.frames]
            }
        )
        for scene in project.sequences
    )
