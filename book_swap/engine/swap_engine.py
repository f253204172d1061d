"""Swap engine: the public entry point of every swap lifecycle action."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from book_swap.core.config.engine_config import SwapEngineConfig
from book_swap.core.domain.completion import other_role, record_completion
from book_swap.core.domain.errors import (
    ErrorReason,
    InvalidTransitionError,
    NotFoundError,
    SwapError,
    SwapValidationError,
)
from book_swap.core.domain.statistics import (
    SwapRequestCounts,
    SwapStatistics,
    UserSwapRequests,
    count_open_requests,
    split_by_direction,
    summarize_swaps,
)
from book_swap.core.domain.swap_state_machine import SwapAction, decide_create, decide_transition
from book_swap.core.domain.types import (
    CounterOfferInput,
    SwapCompletion,
    SwapRequest,
    SwapRequestInput,
    SwapStatus,
)
from book_swap.core.events.events import (
    SwapAcceptedEvent,
    SwapCancelledEvent,
    SwapCompletedEvent,
    SwapCounterOfferedEvent,
    SwapCreatedEvent,
    SwapPartyCompletedEvent,
)
from book_swap.core.ledger.availability import AvailabilityLedger
from book_swap.core.transfer.ownership_transfer import OwnershipTransferExecutor

if TYPE_CHECKING:
    from book_swap.core.events.event_bus import EventBus
    from book_swap.core.ports.profile_directory import ProfileDirectory
    from book_swap.core.ports.swap_store import SwapStore

LOGGER = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


def _validate(model: type[_ModelT], **data: Any) -> _ModelT:
    """Validate caller input, translating pydantic errors into SwapValidationError."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors: dict[str, str] = {}
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"]) or "__root__"
            errors.setdefault(field, err["msg"])
        raise SwapValidationError(
            f"invalid {model.__name__}",
            reason=ErrorReason.INVALID_INPUT,
            errors=errors,
        ) from exc


class SwapEngine:
    """Drives swap requests through their lifecycle.

    Every action runs as one unit of work on the store: the swap row is locked
    first, then the books the action touches (sorted by id), the state machine
    decides, and all writes commit together. The matching domain event is
    published after the commit; publishing never fails an action.

    The engine holds no per-request state, so any number of callers may share
    one instance or use separate instances over the same store.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        store: SwapStore,
        profiles: ProfileDirectory,
        event_bus: EventBus,
        *,
        config: SwapEngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        transfer_executor: OwnershipTransferExecutor | None = None,
    ) -> None:
        self._store = store
        self._profiles = profiles
        self._event_bus = event_bus
        self.config = config or SwapEngineConfig()
        self._clock = clock or _utc_now
        self._id_factory = id_factory or _new_id
        self._transfer = transfer_executor or OwnershipTransferExecutor()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def create_swap_request(
        self,
        book_id: str,
        requester_id: str,
        offered_book_id: str | None = None,
        message: str | None = None,
    ) -> SwapRequest:
        """Open a PENDING request for ``book_id`` and reserve the books involved."""
        try:
            data = _validate(
                SwapRequestInput,
                book_id=book_id,
                offered_book_id=offered_book_id,
                message=message,
            )
            if self.config.require_offered_book and data.offered_book_id is None:
                raise SwapValidationError(
                    "an offered book is required",
                    reason=ErrorReason.OFFERED_BOOK_REQUIRED,
                    errors={"offered_book_id": "required"},
                )
            self._require_profile(requester_id)
            decision = decide_create()

            with self._store.unit_of_work() as uow:
                wanted = [data.book_id]
                if data.offered_book_id is not None:
                    wanted.append(data.offered_book_id)
                books = uow.lock_books(wanted)

                requested = books[data.book_id]
                if requested.owner_id == requester_id:
                    raise SwapValidationError(
                        "cannot request your own book",
                        reason=ErrorReason.OWN_BOOK,
                        errors={"book_id": "owned by requester"},
                    )
                self._require_profile(requested.owner_id)
                if not requested.available:
                    raise InvalidTransitionError(
                        f"book {requested.id} is not available",
                        reason=ErrorReason.BOOK_UNAVAILABLE,
                    )

                if data.offered_book_id is not None:
                    offered = books[data.offered_book_id]
                    if offered.owner_id != requester_id:
                        raise SwapValidationError(
                            "offered book must belong to the requester",
                            reason=ErrorReason.OFFERED_BOOK_NOT_OWNED,
                            errors={"offered_book_id": "not owned by requester"},
                        )
                    if not offered.available:
                        raise InvalidTransitionError(
                            f"book {offered.id} is not available",
                            reason=ErrorReason.BOOK_UNAVAILABLE,
                        )

                now = self._clock()
                swap = uow.create_swap(
                    SwapRequest(
                        id=self._id_factory(),
                        book_id=data.book_id,
                        requester_id=requester_id,
                        owner_id=requested.owner_id,
                        status=decision.next_status,
                        message=data.message,
                        offered_book_id=data.offered_book_id,
                        created_at=now,
                        updated_at=now,
                    )
                )
                AvailabilityLedger(uow).reserve(swap.reserved_book_ids())
        except SwapError as exc:
            self._log_rejection(SwapAction.CREATE, None, requester_id, exc)
            raise

        self._log_transition(SwapAction.CREATE, swap, requester_id, None)
        self._publish(
            SwapCreatedEvent(
                occurred_at=swap.created_at,
                swap_id=swap.id,
                status=swap.status.value,
                book_id=swap.book_id,
                requester_id=swap.requester_id,
                owner_id=swap.owner_id,
                offered_book_id=swap.offered_book_id,
                message=swap.message,
            )
        )
        return swap

    def make_counter_offer(
        self,
        request_id: str,
        owner_id: str,
        counter_book_id: str,
        message: str | None = None,
    ) -> SwapRequest:
        """Owner proposes one of their own books instead of the offered one."""
        try:
            data = _validate(
                CounterOfferInput,
                counter_offered_book_id=counter_book_id,
                counter_offer_message=message,
            )
            with self._store.unit_of_work() as uow:
                swap = uow.lock_swap(request_id)
                decision = decide_transition(swap, owner_id, SwapAction.COUNTER_OFFER)

                if data.counter_offered_book_id == swap.book_id:
                    raise SwapValidationError(
                        "counter-offered book must differ from the requested book",
                        reason=ErrorReason.COUNTER_BOOK_IS_REQUESTED,
                        errors={"counter_offered_book_id": "same as requested book"},
                    )
                counter = uow.lock_books([data.counter_offered_book_id])[data.counter_offered_book_id]
                if counter.owner_id != swap.owner_id:
                    raise SwapValidationError(
                        "counter-offered book must belong to the owner",
                        reason=ErrorReason.COUNTER_BOOK_NOT_OWNED,
                        errors={"counter_offered_book_id": "not owned by owner"},
                    )
                if not counter.available:
                    raise InvalidTransitionError(
                        f"book {counter.id} is not available",
                        reason=ErrorReason.BOOK_UNAVAILABLE,
                    )

                AvailabilityLedger(uow).reserve([counter.id])
                swap = uow.update_status(
                    swap.id,
                    swap.status,
                    {
                        "status": decision.next_status,
                        "counter_offered_book_id": counter.id,
                        "counter_offer_message": data.counter_offer_message,
                        "updated_at": self._clock(),
                    },
                )
        except SwapError as exc:
            self._log_rejection(SwapAction.COUNTER_OFFER, request_id, owner_id, exc)
            raise

        self._log_transition(SwapAction.COUNTER_OFFER, swap, owner_id, decision.prev_status)
        self._publish(
            SwapCounterOfferedEvent(
                occurred_at=swap.updated_at,
                swap_id=swap.id,
                status=swap.status.value,
                requester_id=swap.requester_id,
                owner_id=swap.owner_id,
                counter_offered_book_id=counter.id,
                counter_offer_message=swap.counter_offer_message,
            )
        )
        return swap

    def accept_swap_request(self, request_id: str, actor_id: str) -> SwapRequest:
        """Owner accepts a PENDING request, or the requester accepts a counter-offer."""
        try:
            with self._store.unit_of_work() as uow:
                swap = uow.lock_swap(request_id)
                decision = decide_transition(swap, actor_id, SwapAction.ACCEPT)
                swap = uow.update_status(
                    swap.id,
                    swap.status,
                    {"status": decision.next_status, "updated_at": self._clock()},
                )
        except SwapError as exc:
            self._log_rejection(SwapAction.ACCEPT, request_id, actor_id, exc)
            raise

        self._log_transition(SwapAction.ACCEPT, swap, actor_id, decision.prev_status)
        self._publish(
            SwapAcceptedEvent(
                occurred_at=swap.updated_at,
                swap_id=swap.id,
                status=swap.status.value,
                accepted_by=actor_id,
                prev_status=decision.prev_status.value,
            )
        )
        return swap

    def cancel_swap_request(self, request_id: str, actor_id: str) -> SwapRequest:
        """Either party cancels a live request; every reserved book is released."""
        try:
            with self._store.unit_of_work() as uow:
                swap = uow.lock_swap(request_id)
                decision = decide_transition(swap, actor_id, SwapAction.CANCEL)

                released = swap.reserved_book_ids()
                uow.lock_books(released)
                AvailabilityLedger(uow).release(released)

                swap = uow.update_status(
                    swap.id,
                    swap.status,
                    {
                        "status": decision.next_status,
                        "cancelled_by": actor_id,
                        "updated_at": self._clock(),
                    },
                )
        except SwapError as exc:
            self._log_rejection(SwapAction.CANCEL, request_id, actor_id, exc)
            raise

        self._log_transition(SwapAction.CANCEL, swap, actor_id, decision.prev_status)
        self._publish(
            SwapCancelledEvent(
                occurred_at=swap.updated_at,
                swap_id=swap.id,
                status=swap.status.value,
                cancelled_by=actor_id,
                prev_status=decision.prev_status.value,
                released_book_ids=released,
            )
        )
        return swap

    def complete_swap_request(
        self,
        request_id: str,
        actor_id: str,
        rating: int,
        feedback: str | None = None,
    ) -> SwapRequest:
        """Record one party's confirmation and rating.

        The second confirmation transfers ownership and closes the swap in the
        same unit of work. An ownership mismatch rolls everything back,
        including this party's confirmation.
        """
        try:
            data = _validate(SwapCompletion, rating=rating, feedback=feedback)
            with self._store.unit_of_work() as uow:
                swap = uow.lock_swap(request_id)
                decision = decide_transition(swap, actor_id, SwapAction.COMPLETE)

                now = self._clock()
                completion = record_completion(
                    swap,
                    decision.role,
                    rating=data.rating,
                    feedback=data.feedback,
                    now=now,
                )
                fields: dict[str, Any] = {**completion.fields, "updated_at": now}
                # Confirmations read as missing must still be missing at write time.
                unset = [f"{decision.role}_completed_at"]

                outcome = None
                if completion.closes_swap:
                    outcome = self._transfer.transfer(uow, swap)
                    fields["status"] = decision.next_status
                    fields["completed_at"] = now
                else:
                    unset.append(f"{other_role(decision.role)}_completed_at")

                swap = uow.update_status(
                    swap.id,
                    swap.status,
                    fields,
                    unset_fields=unset,
                )
        except SwapError as exc:
            self._log_rejection(SwapAction.COMPLETE, request_id, actor_id, exc)
            raise

        self._log_transition(SwapAction.COMPLETE, swap, actor_id, decision.prev_status)
        if outcome is None:
            awaiting = (
                swap.owner_id
                if other_role(completion.role) == "owner"
                else swap.requester_id
            )
            self._publish(
                SwapPartyCompletedEvent(
                    occurred_at=now,
                    swap_id=swap.id,
                    status=swap.status.value,
                    completed_by=actor_id,
                    rating=data.rating,
                    awaiting_user_id=awaiting,
                )
            )
        else:
            self._publish(
                SwapCompletedEvent(
                    occurred_at=now,
                    swap_id=swap.id,
                    status=swap.status.value,
                    requester_id=swap.requester_id,
                    owner_id=swap.owner_id,
                    transfers=tuple((t.book_id, t.to_owner_id) for t in outcome.transfers),
                    released_book_ids=outcome.released_book_ids,
                )
            )
        return swap

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_swap_request(self, request_id: str) -> SwapRequest:
        return self._store.get_swap(request_id)

    def get_swap_requests_for_user(self, user_id: str) -> UserSwapRequests:
        """Incoming (user owns the book) and outgoing requests, newest first."""
        return split_by_direction(self._store.list_swaps_for_user(user_id), user_id)

    def get_swap_statistics(self, user_id: str) -> SwapStatistics:
        return summarize_swaps(self._store.list_swaps_for_user(user_id), user_id)

    def get_swap_request_counts(self, user_id: str) -> SwapRequestCounts:
        """Open (PENDING or COUNTER_OFFER) requests waiting on either side."""
        return count_open_requests(self._store.list_swaps_for_user(user_id), user_id)

    def close(self) -> None:
        """Flush and close the event sinks."""
        self._event_bus.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_profile(self, user_id: str) -> None:
        if self._profiles.get_profile(user_id) is None:
            raise NotFoundError(
                f"profile {user_id} not found",
                reason=ErrorReason.PROFILE_NOT_FOUND,
            )

    def _publish(self, event: Any) -> None:
        # Runs after commit: the transition already happened.
        try:
            self._event_bus.emit(event)
        except Exception:
            LOGGER.exception(
                "Event publish failed",
                extra={"event_type": getattr(event, "event_type", None), "swap_id": event.swap_id},
            )

    @staticmethod
    def _log_transition(
        action: SwapAction,
        swap: SwapRequest,
        actor_id: str,
        prev_status: SwapStatus | None,
    ) -> None:
        LOGGER.info(
            "Swap transition applied",
            extra={
                "action": action.value,
                "swap_id": swap.id,
                "actor_id": actor_id,
                "prev_status": prev_status.value if prev_status is not None else None,
                "status": swap.status.value,
            },
        )

    @staticmethod
    def _log_rejection(
        action: SwapAction,
        swap_id: str | None,
        actor_id: str,
        exc: SwapError,
    ) -> None:
        LOGGER.info(
            "Swap transition rejected",
            extra={
                "action": action.value,
                "swap_id": swap_id,
                "actor_id": actor_id,
                "error": type(exc).__name__,
                "reason": exc.reason,
            },
        )
