"""
Semantic test: open request counts per direction.

Invariant:
Requests still waiting on a party (PENDING or COUNTER_OFFER) are counted as
incoming for the owner and outgoing for the requester. Accepted, completed
and cancelled requests are not counted.
"""

from __future__ import annotations

from book_swap.core.domain.statistics import SwapRequestCounts


def test_counts_follow_the_lifecycle(world) -> None:
    world.add_book("A", "O")
    world.add_book("B", "O")
    world.add_book("W", "T")

    pending = world.engine.create_swap_request("X", "R")
    countered = world.engine.create_swap_request("A", "R", offered_book_id="Y")
    world.engine.make_counter_offer(countered.id, "O", "Z")
    accepted = world.engine.create_swap_request("B", "R")
    world.engine.accept_swap_request(accepted.id, "O")
    world.engine.create_swap_request("W", "O")

    assert world.engine.get_swap_request_counts("O") == SwapRequestCounts(
        incoming_pending=2,
        outgoing_pending=1,
    )
    assert world.engine.get_swap_request_counts("R") == SwapRequestCounts(
        incoming_pending=0,
        outgoing_pending=2,
    )
    assert world.engine.get_swap_request_counts("T") == SwapRequestCounts(
        incoming_pending=1,
        outgoing_pending=0,
    )

    world.engine.cancel_swap_request(pending.id, "R")
    counts = world.engine.get_swap_request_counts("O")
    assert (counts.incoming_pending, counts.outgoing_pending) == (1, 1)


def test_counts_on_sql_store(sql_world) -> None:
    swap = sql_world.engine.create_swap_request("X", "R")
    assert sql_world.engine.get_swap_request_counts("O").incoming_pending == 1

    sql_world.engine.accept_swap_request(swap.id, "O")
    assert sql_world.engine.get_swap_request_counts("O").incoming_pending == 0
    assert sql_world.engine.get_swap_request_counts("R").outgoing_pending == 0
