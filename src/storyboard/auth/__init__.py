"""Identity supplied by the external authentication provider."""

from storyboard.auth.models import GUEST_AUTHOR, UserIdentity

__all__ = ["GUEST_AUTHOR", "UserIdentity"]
