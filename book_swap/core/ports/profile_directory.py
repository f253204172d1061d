from __future__ import annotations

from typing import Protocol

from book_swap.core.domain.types import Profile


class ProfileDirectory(Protocol):
    """Read-only profile lookup.

    Only used for existence checks; contact details stay with the caller.
    """

    def get_profile(self, user_id: str) -> Profile | None:
        """Return the profile or None if the user does not exist."""
