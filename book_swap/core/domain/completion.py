"""Per-party completion and rating bookkeeping.

A swap closes only when both parties have confirmed. Each confirmation writes
that party's timestamp, rating and optional feedback exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from book_swap.core.domain.types import SwapRequest, SwapRole


@dataclass(frozen=True, slots=True)
class CompletionOutcome:
    """Fields to write for one party's confirmation."""

    role: SwapRole
    fields: dict[str, Any]
    closes_swap: bool


def completed_at_for(swap: SwapRequest, role: SwapRole) -> datetime | None:
    if role == "requester":
        return swap.requester_completed_at
    return swap.owner_completed_at


def has_completed(swap: SwapRequest, role: SwapRole) -> bool:
    return completed_at_for(swap, role) is not None


def other_role(role: SwapRole) -> SwapRole:
    return "owner" if role == "requester" else "requester"


def record_completion(
    swap: SwapRequest,
    role: SwapRole,
    *,
    rating: int,
    feedback: str | None,
    now: datetime,
) -> CompletionOutcome:
    """Build the write for ``role`` confirming the swap.

    The caller has already rejected a repeated confirmation; this function
    only derives fields and whether the swap is now fully closed.
    """
    fields: dict[str, Any] = {
        f"{role}_completed_at": now,
        f"{role}_rating": rating,
        f"{role}_feedback": feedback,
    }
    closes = has_completed(swap, other_role(role))
    return CompletionOutcome(role=role, fields=fields, closes_swap=closes)
