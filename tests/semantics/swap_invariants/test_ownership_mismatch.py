"""
Semantic test: completion refuses books that changed hands.

Invariant:
If the requested or reciprocal book is no longer held by the expected party
when the swap closes, OwnershipMismatch is raised, no owner changes and the
swap stays ACCEPTED without the second confirmation.
"""

from __future__ import annotations

import pytest

from book_swap.core.domain.errors import ErrorReason, OwnershipMismatchError
from book_swap.core.domain.types import SwapStatus


def move_book(world, book_id: str, new_owner: str) -> None:
    with world.store.unit_of_work() as uow:
        uow.lock_books([book_id])
        uow.set_book_owner_and_availability(book_id, owner_id=new_owner)


def test_requested_book_moved(world, accepted_swap) -> None:
    world.engine.complete_swap_request(accepted_swap.id, "O", 5)
    move_book(world, "X", "T")

    with pytest.raises(OwnershipMismatchError) as exc_info:
        world.engine.complete_swap_request(accepted_swap.id, "R", 4)
    assert exc_info.value.reason == ErrorReason.REQUESTED_BOOK_MOVED

    swap = world.engine.get_swap_request(accepted_swap.id)
    assert swap.status == SwapStatus.ACCEPTED
    assert swap.requester_completed_at is None
    assert swap.requester_rating is None
    assert world.owners("X", "Y", "Z") == {"X": "T", "Y": "R", "Z": "O"}
    assert world.available("X", "Y", "Z") == {"X": False, "Y": False, "Z": False}


def test_reciprocal_book_moved(world, accepted_swap) -> None:
    world.engine.complete_swap_request(accepted_swap.id, "R", 4)
    move_book(world, "Z", "T")

    with pytest.raises(OwnershipMismatchError) as exc_info:
        world.engine.complete_swap_request(accepted_swap.id, "O", 5)
    assert exc_info.value.reason == ErrorReason.RECIPROCAL_BOOK_MOVED

    swap = world.engine.get_swap_request(accepted_swap.id)
    assert swap.status == SwapStatus.ACCEPTED
    assert swap.owner_completed_at is None
    assert world.owners("X", "Z") == {"X": "O", "Z": "T"}
    assert "swap_completed" not in world.sink.types()


def test_swap_can_still_be_cancelled_after_mismatch(world, accepted_swap) -> None:
    world.engine.complete_swap_request(accepted_swap.id, "O", 5)
    move_book(world, "X", "T")
    with pytest.raises(OwnershipMismatchError):
        world.engine.complete_swap_request(accepted_swap.id, "R", 4)

    swap = world.engine.cancel_swap_request(accepted_swap.id, "R")
    assert swap.status == SwapStatus.CANCELLED
    assert world.available("X", "Y", "Z") == {"X": True, "Y": True, "Z": True}
