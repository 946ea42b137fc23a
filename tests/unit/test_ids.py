"""Tests for locally generated ids."""

from __future__ import annotations

import re
import string
import threading
from unittest.mock import patch

from storyboard.ids import (
    new_comment_id,
    new_document_id,
    new_frame_id,
    new_id,
    new_scene_id,
)


class TestNewId:
    def test_prefixes(self) -> None:
        assert new_scene_id().startswith("seq_")
        assert new_frame_id().startswith("frame_")
        assert new_comment_id().startswith("comment_")

    def test_shape(self) -> None:
        assert re.fullmatch(r"frame_\d{13}_\d{6,}_[0-9a-f]{6}", new_frame_id())

    def test_same_millisecond_never_collides(self) -> None:
        """Thousands of ids minted under a frozen clock are all distinct."""
        now_ns = 1_718_000_000_000_000_000
        with patch("storyboard.ids.time.time_ns", return_value=now_ns):
            ids = [new_frame_id() for _ in range(5000)]

        assert len(set(ids)) == len(ids)
        assert all("_1718000000000_" in i for i in ids)

    def test_rapid_scenes_and_frames_are_distinct(self) -> None:
        ids = [new_id(p) for p in ("seq", "frame") * 1000]

        assert len(set(ids)) == len(ids)

    def test_threads_do_not_collide(self) -> None:
        results: list[str] = []
        lock = threading.Lock()

        def mint() -> None:
            batch = [new_frame_id() for _ in range(500)]
            with lock:
                results.extend(batch)

        threads = [threading.Thread(target=mint) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(results)) == 2000


class TestNewDocumentId:
    def test_twenty_alphanumerics(self) -> None:
        doc_id = new_document_id()

        assert len(doc_id) == 20
        assert set(doc_id) <= set(string.ascii_letters + string.digits)

    def test_distinct(self) -> None:
        assert len({new_document_id() for _ in range(1000)}) == 1000
