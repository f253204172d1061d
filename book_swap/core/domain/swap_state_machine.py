"""
Swap lifecycle state machine definitions.

This module defines the canonical swap states, the allowed transitions
between them and which party may drive each action from each state. It is
pure: it reads a SwapRequest and decides, it never writes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from book_swap.core.domain.completion import has_completed, other_role
from book_swap.core.domain.errors import ErrorReason, ForbiddenError, InvalidTransitionError
from book_swap.core.domain.types import SwapRequest, SwapRole, SwapStatus


class SwapAction(str, Enum):
    CREATE = "create"
    COUNTER_OFFER = "counter_offer"
    ACCEPT = "accept"
    CANCEL = "cancel"
    COMPLETE = "complete"


# Terminal swap states: once reached, the request is immutable.
SWAP_TERMINAL_STATES: frozenset[SwapStatus] = frozenset(
    {
        SwapStatus.COMPLETED,
        SwapStatus.CANCELLED,
    }
)


# Allowed swap state transitions.
#
# Key   : previous state (None before the request exists)
# Value : set of allowed next states
#
# Notes:
# - ACCEPTED -> ACCEPTED is the first of the two completion confirmations.
ALLOWED_TRANSITIONS: dict[SwapStatus | None, frozenset[SwapStatus]] = {
    None: frozenset({SwapStatus.PENDING}),

    SwapStatus.PENDING: frozenset(
        {
            SwapStatus.ACCEPTED,
            SwapStatus.COUNTER_OFFER,
            SwapStatus.CANCELLED,
        }
    ),

    SwapStatus.COUNTER_OFFER: frozenset(
        {
            SwapStatus.ACCEPTED,
            SwapStatus.CANCELLED,
        }
    ),

    SwapStatus.ACCEPTED: frozenset(
        {
            SwapStatus.ACCEPTED,
            SwapStatus.COMPLETED,
            SwapStatus.CANCELLED,
        }
    ),
}


_BOTH: frozenset[SwapRole] = frozenset({"requester", "owner"})

# Which party may perform an action, keyed by action then current state.
# A state missing from an action's mapping means the action is illegal there.
ACTION_RULES: dict[SwapAction, dict[SwapStatus, frozenset[SwapRole]]] = {
    SwapAction.COUNTER_OFFER: {
        SwapStatus.PENDING: frozenset({"owner"}),
    },
    SwapAction.ACCEPT: {
        SwapStatus.PENDING: frozenset({"owner"}),
        SwapStatus.COUNTER_OFFER: frozenset({"requester"}),
    },
    SwapAction.CANCEL: {
        SwapStatus.PENDING: _BOTH,
        SwapStatus.COUNTER_OFFER: _BOTH,
        SwapStatus.ACCEPTED: _BOTH,
    },
    SwapAction.COMPLETE: {
        SwapStatus.ACCEPTED: _BOTH,
    },
}


@dataclass(frozen=True, slots=True)
class CreateDecision:
    """Outcome of opening a new request; the requester is always the actor."""

    next_status: SwapStatus


@dataclass(frozen=True, slots=True)
class TransitionDecision:
    """Outcome of a legal action on an existing request."""

    action: SwapAction
    role: SwapRole
    prev_status: SwapStatus
    next_status: SwapStatus


def is_terminal_state(state: SwapStatus) -> bool:
    """Return True if the given state is terminal."""
    return state in SWAP_TERMINAL_STATES


def is_valid_transition(prev_state: SwapStatus | None, next_state: SwapStatus) -> bool:
    """Return True if the transition prev_state -> next_state is allowed."""
    allowed = ALLOWED_TRANSITIONS.get(prev_state)
    if allowed is None:
        return False
    return next_state in allowed


def party_role(swap: SwapRequest, actor_id: str) -> SwapRole:
    """Return the actor's role in the swap or raise ForbiddenError."""
    if actor_id == swap.requester_id:
        return "requester"
    if actor_id == swap.owner_id:
        return "owner"
    raise ForbiddenError(
        f"user {actor_id} is not a party to swap {swap.id}",
        reason=ErrorReason.NOT_A_PARTY,
    )


def decide_create() -> CreateDecision:
    return CreateDecision(next_status=SwapStatus.PENDING)


def decide_transition(swap: SwapRequest, actor_id: str, action: SwapAction) -> TransitionDecision:
    """Decide whether ``actor_id`` may apply ``action`` to ``swap``.

    Raises:
        ForbiddenError: actor is not a party, or is the wrong party for this state.
        InvalidTransitionError: action is illegal from the current state, or the
            actor already confirmed completion.
    """
    if action == SwapAction.CREATE:
        raise InvalidTransitionError(
            f"swap {swap.id} already exists",
            reason=ErrorReason.ILLEGAL_TRANSITION,
        )

    role = party_role(swap, actor_id)

    rules = ACTION_RULES[action]
    allowed_roles = rules.get(swap.status)
    if allowed_roles is None:
        raise InvalidTransitionError(
            f"cannot {action.value} swap {swap.id} in status {swap.status.value}",
            reason=ErrorReason.ILLEGAL_TRANSITION,
        )

    if role not in allowed_roles:
        raise ForbiddenError(
            f"{role} may not {action.value} swap {swap.id} in status {swap.status.value}",
            reason=ErrorReason.WRONG_PARTY,
        )

    next_status = _next_status(swap, role, action)

    if not is_valid_transition(swap.status, next_status):
        raise InvalidTransitionError(
            f"transition {swap.status.value} -> {next_status.value} is not allowed",
            reason=ErrorReason.ILLEGAL_TRANSITION,
        )

    return TransitionDecision(
        action=action,
        role=role,
        prev_status=swap.status,
        next_status=next_status,
    )


def _next_status(swap: SwapRequest, role: SwapRole, action: SwapAction) -> SwapStatus:
    if action == SwapAction.COUNTER_OFFER:
        return SwapStatus.COUNTER_OFFER
    if action == SwapAction.ACCEPT:
        return SwapStatus.ACCEPTED
    if action == SwapAction.CANCEL:
        return SwapStatus.CANCELLED

    # complete
    if has_completed(swap, role):
        raise InvalidTransitionError(
            f"{role} already completed swap {swap.id}",
            reason=ErrorReason.ALREADY_COMPLETED,
        )
    if has_completed(swap, other_role(role)):
        return SwapStatus.COMPLETED
    return SwapStatus.ACCEPTED
