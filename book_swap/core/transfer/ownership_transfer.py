"""Ownership transfer executor.

Runs inside the unit of work of the completing transition. It re-reads the
locked books, verifies they are still held by the parties this swap expects,
and then reassigns owners. Any mismatch raises before a single write so the
whole transition rolls back and the swap stays ACCEPTED.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from book_swap.core.domain.errors import ErrorReason, OwnershipMismatchError

if TYPE_CHECKING:
    from book_swap.core.domain.types import SwapRequest
    from book_swap.core.ports.swap_store import SwapUnitOfWork

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BookTransfer:
    book_id: str
    from_owner_id: str
    to_owner_id: str


@dataclass(frozen=True, slots=True)
class TransferOutcome:
    """Owner changes applied and books handed back to their holders' shelves."""

    transfers: tuple[BookTransfer, ...]
    released_book_ids: tuple[str, ...]


class OwnershipTransferExecutor:
    """Validated owner swap for a fully confirmed request.

    Rules:
    - requested book: must still belong to swap.owner_id, goes to the requester
    - reciprocal book (counter-offer if any, else offer): must still belong to
      the party that put it up, ends with the original owner
    - an offer superseded by a counter-offer stays with the requester and is
      released
    - transferred books stay unavailable until their new owner relists them
    """

    def transfer(self, uow: SwapUnitOfWork, swap: SwapRequest) -> TransferOutcome:
        books = uow.lock_books(swap.reserved_book_ids())

        requested = books[swap.book_id]
        if requested.owner_id != swap.owner_id:
            raise OwnershipMismatchError(
                f"book {requested.id} is owned by {requested.owner_id}, "
                f"swap {swap.id} expects {swap.owner_id}",
                reason=ErrorReason.REQUESTED_BOOK_MOVED,
            )

        reciprocal_id = swap.reciprocal_book_id
        reciprocal_holder: str | None = None
        if reciprocal_id is not None:
            reciprocal_holder = (
                swap.owner_id
                if reciprocal_id == swap.counter_offered_book_id
                else swap.requester_id
            )
            reciprocal = books[reciprocal_id]
            if reciprocal.owner_id != reciprocal_holder:
                raise OwnershipMismatchError(
                    f"book {reciprocal.id} is owned by {reciprocal.owner_id}, "
                    f"swap {swap.id} expects {reciprocal_holder}",
                    reason=ErrorReason.RECIPROCAL_BOOK_MOVED,
                )

        transfers: list[BookTransfer] = [
            BookTransfer(
                book_id=swap.book_id,
                from_owner_id=swap.owner_id,
                to_owner_id=swap.requester_id,
            )
        ]
        uow.set_book_owner_and_availability(
            swap.book_id,
            owner_id=swap.requester_id,
            available=False,
        )

        if reciprocal_id is not None and reciprocal_holder is not None:
            transfers.append(
                BookTransfer(
                    book_id=reciprocal_id,
                    from_owner_id=reciprocal_holder,
                    to_owner_id=swap.owner_id,
                )
            )
            uow.set_book_owner_and_availability(
                reciprocal_id,
                owner_id=swap.owner_id,
                available=False,
            )

        released: list[str] = []
        superseded = swap.offered_book_id
        if superseded is not None and superseded != reciprocal_id:
            uow.set_book_owner_and_availability(superseded, available=True)
            released.append(superseded)

        LOGGER.info(
            "Book ownership transferred",
            extra={
                "swap_id": swap.id,
                "transfers": [(t.book_id, t.to_owner_id) for t in transfers],
                "released": released,
            },
        )

        return TransferOutcome(transfers=tuple(transfers), released_book_ids=tuple(released))
