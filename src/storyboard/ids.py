"""Locally generated identifiers for scenes, frames and comments.

Ids keep the time-based ``<prefix>_<millis>`` shape existing documents use,
with a process-wide sequence number and a random tail appended so that ids
minted in the same millisecond (or by two clients at once) never collide.
"""

from __future__ import annotations

import itertools
import secrets
import string
import threading
import time

SCENE_PREFIX = "seq"
FRAME_PREFIX = "frame"
COMMENT_PREFIX = "comment"

_DOCUMENT_ID_ALPHABET = string.ascii_letters + string.digits

_counter = itertools.count()
_counter_lock = threading.Lock()


def new_id(prefix: str) -> str:
    """Return a fresh id such as ``frame_1718000000000_000007_3fa9c1``."""
    millis = time.time_ns() // 1_000_000
    with _counter_lock:
        seq = next(_counter)
    return f"{prefix}_{millis}_{seq:06d}_{secrets.token_hex(3)}"


def new_scene_id() -> str:
    return new_id(SCENE_PREFIX)


def new_frame_id() -> str:
    return new_id(FRAME_PREFIX)


def new_comment_id() -> str:
    return new_id(COMMENT_PREFIX)


def new_document_id() -> str:
    """Return a 20-character random key for a new project document."""
    return "".join(secrets.choice(_DOCUMENT_ID_ALPHABET) for _ in range(20))
