"""Data models for authenticated identities.

Sign-in itself is handled by the hosted auth provider; the storyboard code
only needs the opaque identity it hands back to fill ``ownerId``, ``roles``
and comment authors.
"""

from __future__ import annotations

from dataclasses import dataclass

GUEST_AUTHOR = "Guest"


@dataclass(frozen=True)
class UserIdentity:
    """An identity from the auth provider.

    Attributes:
        id: Provider user id, used as the key in ``Project.roles``.
        display_name: Human-readable name, if the provider has one.
        email: The user's email address, if known.
        is_anonymous: True for guest sessions and share-link visitors.
    """

    id: str
    display_name: str | None = None
    email: str | None = None
    is_anonymous: bool = False

    @property
    def author_name(self) -> str:
        """Name shown next to comments written by this identity."""
        if self.is_anonymous:
            return GUEST_AUTHOR
        if self.display_name:
            return self.display_name
        if self.email:
            return self.email.split("@", maxsplit=1)[0]
        return GUEST_AUTHOR
