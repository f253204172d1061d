"""
Semantic test: store unit of work guarantees.

Invariant:
update_status is a compare-and-swap on status and on the completion
timestamps the caller expects to be empty, a failing unit of work commits
nothing, waiting for a row lock is bounded by a timeout, and idle row locks
are dropped.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from book_swap.core.domain.errors import ConflictError, ErrorReason
from book_swap.core.domain.types import Book, SwapStatus
from book_swap.storage.memory_store import InMemorySwapStore


def test_stale_expected_status_is_a_conflict(world) -> None:
    swap = world.engine.create_swap_request("X", "R")

    with pytest.raises(ConflictError) as exc_info:
        with world.store.unit_of_work() as uow:
            uow.lock_swap(swap.id)
            uow.update_status(swap.id, SwapStatus.COUNTER_OFFER, {"status": SwapStatus.ACCEPTED})
    assert exc_info.value.reason == ErrorReason.STATUS_CHANGED
    assert world.engine.get_swap_request(swap.id).status == SwapStatus.PENDING


def test_confirmation_written_since_read_is_a_conflict(world) -> None:
    swap = world.engine.create_swap_request("X", "R")
    world.engine.accept_swap_request(swap.id, "O")
    world.engine.complete_swap_request(swap.id, "O", 5)
    now = datetime.now(timezone.utc)

    with pytest.raises(ConflictError) as exc_info:
        with world.store.unit_of_work() as uow:
            uow.lock_swap(swap.id)
            uow.update_status(
                swap.id,
                SwapStatus.ACCEPTED,
                {"requester_completed_at": now, "requester_rating": 4, "updated_at": now},
                unset_fields=("requester_completed_at", "owner_completed_at"),
            )
    assert exc_info.value.reason == ErrorReason.STATUS_CHANGED

    stored = world.engine.get_swap_request(swap.id)
    assert stored.requester_completed_at is None
    assert stored.owner_rating == 5


def test_failed_unit_of_work_commits_nothing(world) -> None:
    swap = world.engine.create_swap_request("X", "R")

    with pytest.raises(RuntimeError):
        with world.store.unit_of_work() as uow:
            uow.lock_swap(swap.id)
            uow.lock_books(["X"])
            uow.set_book_owner_and_availability("X", owner_id="T", available=True)
            uow.update_status(swap.id, SwapStatus.PENDING, {"status": SwapStatus.CANCELLED})
            raise RuntimeError("boom")

    assert world.engine.get_swap_request(swap.id).status == SwapStatus.PENDING
    assert world.owners("X") == {"X": "O"}
    assert not world.book("X").available


def test_writes_require_a_lock(world) -> None:
    with pytest.raises(RuntimeError):
        with world.store.unit_of_work() as uow:
            uow.set_book_owner_and_availability("X", available=False)
    assert world.book("X").available


def test_lock_wait_times_out() -> None:
    store = InMemorySwapStore(lock_timeout_seconds=0.05)
    store.add_book(Book(id="X", owner_id="O"))

    holding = threading.Event()
    release = threading.Event()

    def hold() -> None:
        with store.unit_of_work() as uow:
            uow.lock_books(["X"])
            holding.set()
            release.wait(timeout=5)

    holder = threading.Thread(target=hold)
    holder.start()
    try:
        assert holding.wait(timeout=5)
        with pytest.raises(ConflictError) as exc_info:
            with store.unit_of_work() as uow:
                uow.lock_books(["X"])
        assert exc_info.value.reason == ErrorReason.LOCK_TIMEOUT
    finally:
        release.set()
        holder.join(timeout=5)


def test_idle_row_locks_are_dropped(world) -> None:
    swap = world.engine.create_swap_request("X", "R", offered_book_id="Y")
    world.engine.make_counter_offer(swap.id, "O", "Z")
    world.engine.cancel_swap_request(swap.id, "R")

    store = InMemorySwapStore(lock_timeout_seconds=0.05)
    store.add_book(Book(id="X", owner_id="O"))
    with store.unit_of_work() as holder:
        holder.lock_books(["X"])
        with pytest.raises(ConflictError):
            with store.unit_of_work() as waiter:
                waiter.lock_books(["X"])
        # pylint: disable=protected-access
        assert len(store._row_locks) == 1

    # pylint: disable=protected-access
    assert len(world.store._row_locks) == 0
    assert len(store._row_locks) == 0
