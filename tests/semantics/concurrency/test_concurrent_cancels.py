"""
Semantic test: concurrent cancellation of one swap.

Invariant:
When both parties cancel at the same time exactly one call succeeds; the
other observes the terminal state (InvalidTransition) or loses the
compare-and-swap (Conflict). Books are released once.
"""

from __future__ import annotations

import threading

from book_swap.core.domain.errors import ConflictError, InvalidTransitionError
from book_swap.core.domain.types import SwapStatus


def run_concurrently(*calls) -> list[object]:
    barrier = threading.Barrier(len(calls))
    results: list[object] = [None] * len(calls)

    def worker(index: int, call) -> None:
        barrier.wait()
        try:
            results[index] = call()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            results[index] = exc

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return results


def test_simultaneous_cancels_settle_once(world_factory) -> None:
    for _ in range(20):
        world = world_factory()
        swap = world.engine.create_swap_request("X", "R", offered_book_id="Y")
        world.engine.make_counter_offer(swap.id, "O", "Z")

        results = run_concurrently(
            lambda: world.engine.cancel_swap_request(swap.id, "R"),
            lambda: world.engine.cancel_swap_request(swap.id, "O"),
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], (InvalidTransitionError, ConflictError))

        stored = world.engine.get_swap_request(swap.id)
        assert stored.status == SwapStatus.CANCELLED
        assert stored.cancelled_by == successes[0].cancelled_by
        assert world.available("X", "Y", "Z") == {"X": True, "Y": True, "Z": True}
        assert world.sink.types().count("swap_cancelled") == 1
