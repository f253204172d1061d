"""Swap store protocol.

This module defines the persistence boundary used by the swap engine. A store
hands out units of work: every read, check and write of one transition runs
inside one unit, which commits on normal exit and rolls back when an exception
escapes. Concrete implementations live in ``book_swap.storage``.
"""

from __future__ import annotations

from typing import Any, ContextManager, Iterable, Mapping, Protocol

from book_swap.core.domain.types import Book, SwapRequest, SwapStatus


class BookLookup(Protocol):
    """Book-facing boundary (the catalog owns the rows, the engine mutates two fields)."""

    def get_book(self, book_id: str) -> Book:
        """Return the book or raise NotFoundError."""

    def set_book_owner_and_availability(
        self,
        book_id: str,
        *,
        owner_id: str | None = None,
        available: bool | None = None,
    ) -> Book:
        """Write the owner and/or availability flag of a locked book."""


class SwapUnitOfWork(BookLookup, Protocol):
    """One atomic transition against the store."""

    def lock_swap(self, swap_id: str) -> SwapRequest:
        """Lock the swap row for the rest of the unit and return it."""

    def lock_books(self, book_ids: Iterable[str]) -> Mapping[str, Book]:
        """Lock the given books in sorted id order and return them by id."""

    def get_swap(self, swap_id: str) -> SwapRequest:
        """Return the swap as seen by this unit (including its own writes)."""

    def create_swap(self, swap: SwapRequest) -> SwapRequest:
        """Insert a new swap request."""

    def update_status(
        self,
        swap_id: str,
        expected_status: SwapStatus,
        fields: Mapping[str, Any],
        *,
        unset_fields: Iterable[str] = (),
    ) -> SwapRequest:
        """Compare-and-swap write.

        Raises ConflictError if status != expected_status or if any column named
        in ``unset_fields`` is no longer NULL.
        """


class SwapStore(Protocol):
    """Durable store shared by all engine callers."""

    def unit_of_work(self) -> ContextManager[SwapUnitOfWork]:
        """Open an atomic unit of work."""

    def get_swap(self, swap_id: str) -> SwapRequest:
        """Read a committed swap request or raise NotFoundError."""

    def list_swaps_for_user(self, user_id: str) -> list[SwapRequest]:
        """All committed swaps where the user is requester or owner."""
