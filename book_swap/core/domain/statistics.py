"""Per-user swap statistics, pending counts and incoming/outgoing grouping."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from book_swap.core.domain.types import SwapRequest, SwapStatus

RATING_STARS: tuple[int, ...] = (1, 2, 3, 4, 5)

# Statuses that still wait for an answer from one of the parties.
OPEN_STATUSES: frozenset[SwapStatus] = frozenset({SwapStatus.PENDING, SwapStatus.COUNTER_OFFER})


@dataclass(frozen=True, slots=True)
class SwapStatistics:
    total_swaps: int
    total_completed: int
    # Percentage of the user's swaps that reached COMPLETED.
    completion_rate: float
    # Mean rating the user received from counterparties on completed swaps.
    average_rating: float
    total_ratings: int
    # Star -> number of ratings received with that many stars (1..5, zeros kept).
    ratings_breakdown: dict[int, int]


@dataclass(frozen=True, slots=True)
class SwapRequestCounts:
    incoming_pending: int
    outgoing_pending: int


@dataclass(frozen=True, slots=True)
class UserSwapRequests:
    incoming: list[SwapRequest]
    outgoing: list[SwapRequest]


def ratings_received(swaps: Iterable[SwapRequest], user_id: str) -> list[int]:
    """Ratings given to ``user_id`` by the other party on completed swaps."""
    received: list[int] = []
    for swap in swaps:
        if swap.status != SwapStatus.COMPLETED:
            continue
        if swap.requester_id == user_id and swap.owner_rating is not None:
            received.append(swap.owner_rating)
        elif swap.owner_id == user_id and swap.requester_rating is not None:
            received.append(swap.requester_rating)
    return received


def summarize_swaps(swaps: Iterable[SwapRequest], user_id: str) -> SwapStatistics:
    """Summarize the swaps ``user_id`` took part in.

    Swaps the user is not a party to are ignored.
    """
    mine = [swap for swap in swaps if swap.is_party(user_id)]
    completed = [swap for swap in mine if swap.status == SwapStatus.COMPLETED]
    ratings = ratings_received(completed, user_id)

    breakdown = {star: 0 for star in RATING_STARS}
    for rating in ratings:
        breakdown[rating] += 1

    average = sum(ratings) / len(ratings) if ratings else 0.0
    rate = (len(completed) / len(mine)) * 100 if mine else 0.0

    return SwapStatistics(
        total_swaps=len(mine),
        total_completed=len(completed),
        completion_rate=round(rate, 2),
        average_rating=round(average, 2),
        total_ratings=len(ratings),
        ratings_breakdown=breakdown,
    )


def count_open_requests(swaps: Iterable[SwapRequest], user_id: str) -> SwapRequestCounts:
    """Count PENDING and COUNTER_OFFER requests by direction."""
    incoming = outgoing = 0
    for swap in swaps:
        if swap.status not in OPEN_STATUSES:
            continue
        if swap.owner_id == user_id:
            incoming += 1
        elif swap.requester_id == user_id:
            outgoing += 1
    return SwapRequestCounts(incoming_pending=incoming, outgoing_pending=outgoing)


def split_by_direction(swaps: Iterable[SwapRequest], user_id: str) -> UserSwapRequests:
    """Group swaps into incoming (user owns the book) and outgoing, newest first."""
    ordered = sorted(swaps, key=lambda swap: swap.created_at, reverse=True)
    return UserSwapRequests(
        incoming=[swap for swap in ordered if swap.owner_id == user_id],
        outgoing=[swap for swap in ordered if swap.requester_id == user_id],
    )
