"""
Semantic test: two requesters race for the same book.

Invariant:
A book can be reserved by at most one live swap: of two simultaneous
requests exactly one is created, the other sees the book unavailable.
"""

from __future__ import annotations

import threading

from book_swap.core.domain.errors import ErrorReason, InvalidTransitionError
from book_swap.core.ledger.availability import audit_reservations


def test_only_one_request_reserves_a_book(world_factory) -> None:
    for _ in range(20):
        world = world_factory()
        world.add_book("W", "T")
        barrier = threading.Barrier(2)
        results: dict[str, object] = {}

        def request(requester: str, offered: str) -> None:
            barrier.wait()
            try:
                results[requester] = world.engine.create_swap_request("X", requester, offered_book_id=offered)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                results[requester] = exc

        threads = [
            threading.Thread(target=request, args=("R", "Y")),
            threading.Thread(target=request, args=("T", "W")),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        failures = [r for r in results.values() if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidTransitionError)
        assert failures[0].reason == ErrorReason.BOOK_UNAVAILABLE

        winner = next(r for r in results.values() if not isinstance(r, Exception))
        loser_offer = "W" if winner.requester_id == "R" else "Y"
        assert world.book(loser_offer).available
        assert not world.book(winner.offered_book_id).available
        assert audit_reservations(world.store.books(), world.store.list_swaps()) == []
