"""Core shared data models and schemas.

This module defines the canonical Pydantic models for books, profiles, swap
requests and the caller-supplied inputs of each swap action. The JSON schemas
under ``book_swap/core/schemas`` describe the same shapes; these models must be
at least as strict as the schemas.
"""

# pylint: disable=line-too-long,missing-class-docstring,missing-function-docstring
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MESSAGE_MAX_LENGTH = 500
FEEDBACK_MAX_LENGTH = 1000

SwapRole = Literal["requester", "owner"]


def _blank_to_none(value: Any) -> Any:
    """Trim strings and map blank strings to None."""
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None
    return value


# ---------------------------------------------------------------------------
# Catalog models (owned by the external book / profile collaborators)
# ---------------------------------------------------------------------------


class Book(BaseModel):
    id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    available: bool = True

    model_config = ConfigDict(extra="forbid", frozen=True)


class Profile(BaseModel):
    id: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid", frozen=True)


# ---------------------------------------------------------------------------
# Swap request
# ---------------------------------------------------------------------------


class SwapStatus(str, Enum):
    PENDING = "PENDING"
    COUNTER_OFFER = "COUNTER_OFFER"
    ACCEPTED = "ACCEPTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SwapRequest(BaseModel):
    """
    One negotiation between a requester and the owner of the requested book.

    Notes:
    - owner_id is captured from the requested book at creation time and never changes.
    - offered_book_id belongs to the requester, counter_offered_book_id to the owner.
    - Per-party completion fields are written once each, while the swap is ACCEPTED.
    """

    id: str = Field(..., min_length=1)
    book_id: str = Field(..., min_length=1)
    requester_id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    status: SwapStatus = SwapStatus.PENDING

    message: str | None = Field(default=None, max_length=MESSAGE_MAX_LENGTH)
    offered_book_id: str | None = Field(default=None, min_length=1)
    counter_offered_book_id: str | None = Field(default=None, min_length=1)
    counter_offer_message: str | None = Field(default=None, max_length=MESSAGE_MAX_LENGTH)

    created_at: datetime
    updated_at: datetime

    completed_at: datetime | None = None
    cancelled_by: str | None = None

    requester_completed_at: datetime | None = None
    owner_completed_at: datetime | None = None
    requester_rating: int | None = Field(default=None, ge=1, le=5)
    owner_rating: int | None = Field(default=None, ge=1, le=5)
    requester_feedback: str | None = Field(default=None, max_length=FEEDBACK_MAX_LENGTH)
    owner_feedback: str | None = Field(default=None, max_length=FEEDBACK_MAX_LENGTH)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def validate_parties_and_books(self) -> SwapRequest:
        if self.requester_id == self.owner_id:
            raise ValueError("requester_id and owner_id must differ")
        if self.offered_book_id is not None and self.offered_book_id == self.book_id:
            raise ValueError("offered_book_id must differ from book_id")
        if self.counter_offered_book_id is not None and self.counter_offered_book_id == self.book_id:
            raise ValueError("counter_offered_book_id must differ from book_id")
        if self.completed_at is not None and (
            self.requester_completed_at is None or self.owner_completed_at is None
        ):
            raise ValueError("completed_at requires both parties to have completed")
        return self

    @property
    def reciprocal_book_id(self) -> str | None:
        """The book exchanged for the requested one: counter-offer wins over offer."""
        if self.counter_offered_book_id is not None:
            return self.counter_offered_book_id
        return self.offered_book_id

    def reserved_book_ids(self) -> tuple[str, ...]:
        """All books this request holds unavailable, requested book first."""
        ids = [self.book_id]
        for book_id in (self.offered_book_id, self.counter_offered_book_id):
            if book_id is not None and book_id not in ids:
                ids.append(book_id)
        return tuple(ids)

    def references(self, book_id: str) -> bool:
        return book_id in self.reserved_book_ids()

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.requester_id, self.owner_id)


# ---------------------------------------------------------------------------
# Action inputs
# ---------------------------------------------------------------------------


class SwapRequestInput(BaseModel):
    book_id: str = Field(..., min_length=1)
    offered_book_id: str | None = Field(default=None, min_length=1)
    message: str | None = Field(default=None, max_length=MESSAGE_MAX_LENGTH)

    model_config = ConfigDict(extra="forbid")

    @field_validator("message", "offered_book_id", mode="before")
    @classmethod
    def _normalize_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @model_validator(mode="after")
    def validate_distinct_books(self) -> SwapRequestInput:
        if self.offered_book_id is not None and self.offered_book_id == self.book_id:
            raise ValueError("offered book must differ from the requested book")
        return self


class CounterOfferInput(BaseModel):
    counter_offered_book_id: str = Field(..., min_length=1)
    counter_offer_message: str | None = Field(default=None, max_length=MESSAGE_MAX_LENGTH)

    model_config = ConfigDict(extra="forbid")

    @field_validator("counter_offer_message", mode="before")
    @classmethod
    def _normalize_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)


class SwapCompletion(BaseModel):
    rating: int = Field(..., ge=1, le=5, strict=True)
    feedback: str | None = Field(default=None, max_length=FEEDBACK_MAX_LENGTH)

    model_config = ConfigDict(extra="forbid")

    @field_validator("feedback", mode="before")
    @classmethod
    def _normalize_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)
