"""
Domain event models.

These events represent immutable facts about committed swap transitions.
Each event type carries only the fields its transition produces. They are
consumed by loggers, recorders, metrics and the notification subsystem.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, ClassVar, Union


@dataclass(frozen=True, slots=True)
class SwapCreatedEvent:
    event_type: ClassVar[str] = "swap_created"

    occurred_at: datetime
    swap_id: str
    status: str

    book_id: str
    requester_id: str
    owner_id: str
    offered_book_id: str | None
    message: str | None


@dataclass(frozen=True, slots=True)
class SwapCounterOfferedEvent:
    event_type: ClassVar[str] = "swap_counter_offered"

    occurred_at: datetime
    swap_id: str
    status: str

    requester_id: str
    owner_id: str
    counter_offered_book_id: str
    counter_offer_message: str | None


@dataclass(frozen=True, slots=True)
class SwapAcceptedEvent:
    event_type: ClassVar[str] = "swap_accepted"

    occurred_at: datetime
    swap_id: str
    status: str

    accepted_by: str
    # PENDING when the owner accepted, COUNTER_OFFER when the requester did.
    prev_status: str


@dataclass(frozen=True, slots=True)
class SwapCancelledEvent:
    event_type: ClassVar[str] = "swap_cancelled"

    occurred_at: datetime
    swap_id: str
    status: str

    cancelled_by: str
    prev_status: str
    released_book_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SwapPartyCompletedEvent:
    event_type: ClassVar[str] = "swap_party_completed"

    occurred_at: datetime
    swap_id: str
    status: str

    completed_by: str
    rating: int
    awaiting_user_id: str


@dataclass(frozen=True, slots=True)
class SwapCompletedEvent:
    event_type: ClassVar[str] = "swap_completed"

    occurred_at: datetime
    swap_id: str
    status: str

    requester_id: str
    owner_id: str
    # (book_id, new_owner_id) pairs.
    transfers: tuple[tuple[str, str], ...]
    released_book_ids: tuple[str, ...]


SwapEvent = Union[
    SwapCreatedEvent,
    SwapCounterOfferedEvent,
    SwapAcceptedEvent,
    SwapCancelledEvent,
    SwapPartyCompletedEvent,
    SwapCompletedEvent,
]


def event_to_record(event: Any) -> dict[str, Any]:
    """Flatten an event into a JSON-compatible dict tagged with its type."""
    event_type = getattr(event, "event_type", type(event).__name__)
    payload = asdict(event)
    record: dict[str, Any] = {"event_type": event_type}
    for key, value in payload.items():
        if isinstance(value, datetime):
            record[key] = value.isoformat()
        elif isinstance(value, tuple):
            record[key] = [list(v) if isinstance(v, tuple) else v for v in value]
        else:
            record[key] = value
    return record
