"""Tests for UserIdentity."""

from __future__ import annotations

from storyboard.auth.models import GUEST_AUTHOR, UserIdentity


class TestAuthorName:
    def test_display_name(self) -> None:
        assert UserIdentity(id="u", display_name="Rita").author_name == "Rita"

    def test_falls_back_to_email_local_part(self) -> None:
        user = UserIdentity(id="u", email="rita.lee@example.com")

        assert user.author_name == "rita.lee"

    def test_anonymous_is_guest_even_with_name(self) -> None:
        user = UserIdentity(id="u", display_name="Guest-ab12c", is_anonymous=True)

        assert user.author_name == GUEST_AUTHOR

    def test_nothing_known_is_guest(self) -> None:
        assert UserIdentity(id="u").author_name == "Guest"
