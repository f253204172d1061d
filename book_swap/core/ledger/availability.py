"""Book availability ledger.

Per-book "available for swap" flag. The ledger has no concurrency control of
its own: it always writes through the unit of work of the transition that
reserves or releases the books.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Mapping

from book_swap.core.domain.swap_state_machine import is_terminal_state

if TYPE_CHECKING:
    from book_swap.core.domain.types import Book, SwapRequest
    from book_swap.core.ports.swap_store import BookLookup


class AvailabilityLedger:
    """Reads and writes availability flags through a BookLookup."""

    def __init__(self, books: BookLookup) -> None:
        self._books = books

    def is_available(self, book_id: str) -> bool:
        return self._books.get_book(book_id).available

    def set_available(self, book_id: str, available: bool) -> None:
        """Idempotent: writes only when the flag actually changes."""
        book = self._books.get_book(book_id)
        if book.available == available:
            return
        self._books.set_book_owner_and_availability(book_id, available=available)

    def reserve(self, book_ids: Iterable[str]) -> None:
        for book_id in book_ids:
            self.set_available(book_id, False)

    def release(self, book_ids: Iterable[str]) -> None:
        for book_id in book_ids:
            self.set_available(book_id, True)


def audit_reservations(
    books: Mapping[str, Book],
    swaps: Iterable[SwapRequest],
) -> list[str]:
    """Return ids of books referenced by a live swap but still flagged available.

    An empty result means the reservation invariant holds. Unavailable books
    without a live swap are fine (owners may unlist books themselves).
    """
    violations: set[str] = set()
    for swap in swaps:
        if is_terminal_state(swap.status):
            continue
        for book_id in swap.reserved_book_ids():
            book = books.get(book_id)
            if book is not None and book.available:
                violations.add(book_id)
    return sorted(violations)
