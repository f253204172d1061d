"""Typed errors raised by the swap engine.

Every error carries a stable ``reason`` code so callers can map failures to
responses without parsing messages. None of these errors is retried inside the
engine.
"""

from __future__ import annotations


class ErrorReason:
    """Machine-readable reason codes."""

    SWAP_NOT_FOUND = "swap_not_found"
    BOOK_NOT_FOUND = "book_not_found"
    PROFILE_NOT_FOUND = "profile_not_found"

    NOT_A_PARTY = "not_a_party"
    WRONG_PARTY = "wrong_party"

    ILLEGAL_TRANSITION = "illegal_transition"
    ALREADY_COMPLETED = "already_completed"
    BOOK_UNAVAILABLE = "book_unavailable"

    STATUS_CHANGED = "status_changed"
    LOCK_TIMEOUT = "lock_timeout"
    DUPLICATE_ID = "duplicate_id"

    REQUESTED_BOOK_MOVED = "requested_book_moved"
    RECIPROCAL_BOOK_MOVED = "reciprocal_book_moved"

    INVALID_INPUT = "invalid_input"
    OWN_BOOK = "own_book"
    OFFERED_BOOK_REQUIRED = "offered_book_required"
    OFFERED_BOOK_NOT_OWNED = "offered_book_not_owned"
    COUNTER_BOOK_NOT_OWNED = "counter_book_not_owned"
    COUNTER_BOOK_IS_REQUESTED = "counter_book_is_requested"


class SwapError(Exception):
    """Base class for all swap engine errors."""

    default_reason = "swap_error"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason or self.default_reason


class NotFoundError(SwapError):
    """A swap request, book or profile does not exist."""

    default_reason = "not_found"


class ForbiddenError(SwapError):
    """The actor may not perform this action on this request."""

    default_reason = ErrorReason.NOT_A_PARTY


class InvalidTransitionError(SwapError):
    """The action is not legal from the request's current state."""

    default_reason = ErrorReason.ILLEGAL_TRANSITION


class ConflictError(SwapError):
    """A concurrent writer changed the request first (lost compare-and-swap)."""

    default_reason = ErrorReason.STATUS_CHANGED


class OwnershipMismatchError(SwapError):
    """Book ownership diverged from what the swap expects at completion."""

    default_reason = ErrorReason.REQUESTED_BOOK_MOVED


class SwapValidationError(SwapError):
    """Malformed caller input; nothing was persisted."""

    default_reason = ErrorReason.INVALID_INPUT

    def __init__(
        self,
        message: str,
        *,
        reason: str | None = None,
        errors: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message, reason=reason)
        self.errors: dict[str, str] = dict(errors or {})
