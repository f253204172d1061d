"""Public API for the book_swap package.

Only symbols imported here are considered part of the stable,
supported external interface.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ----------------------------------------------------------------------
# Config API
# ----------------------------------------------------------------------
from book_swap.core.config.engine_config import SwapEngineConfig, load_engine_config

# ----------------------------------------------------------------------
# Domain Types
# ----------------------------------------------------------------------
from book_swap.core.domain.errors import (
    ConflictError,
    ErrorReason,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    OwnershipMismatchError,
    SwapError,
    SwapValidationError,
)
from book_swap.core.domain.statistics import SwapRequestCounts, SwapStatistics, UserSwapRequests
from book_swap.core.domain.swap_state_machine import SwapAction
from book_swap.core.domain.types import (
    Book,
    CounterOfferInput,
    Profile,
    SwapCompletion,
    SwapRequest,
    SwapRequestInput,
    SwapStatus,
)

# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
from book_swap.core.events.event_bus import EventBus
from book_swap.core.events.events import (
    SwapAcceptedEvent,
    SwapCancelledEvent,
    SwapCompletedEvent,
    SwapCounterOfferedEvent,
    SwapCreatedEvent,
    SwapEvent,
    SwapPartyCompletedEvent,
)
from book_swap.core.ledger.availability import audit_reservations

# ----------------------------------------------------------------------
# Engine API
# ----------------------------------------------------------------------
from book_swap.engine.factory import build_in_memory_store, build_sql_store, build_swap_engine
from book_swap.engine.swap_engine import SwapEngine

# ----------------------------------------------------------------------
# Storage
# ----------------------------------------------------------------------
from book_swap.storage.memory_store import InMemoryProfileDirectory, InMemorySwapStore
from book_swap.storage.sql_store import SqlProfileDirectory, SqlSwapStore

# ----------------------------------------------------------------------
# Public API definition
# ----------------------------------------------------------------------

__all__ = [
    # Engine
    "SwapEngine",
    "build_swap_engine",
    "build_in_memory_store",
    "build_sql_store",

    # Config
    "SwapEngineConfig",
    "load_engine_config",

    # Storage
    "InMemorySwapStore",
    "InMemoryProfileDirectory",
    "SqlSwapStore",
    "SqlProfileDirectory",

    # Domain
    "Book",
    "Profile",
    "SwapRequest",
    "SwapStatus",
    "SwapAction",
    "SwapRequestInput",
    "CounterOfferInput",
    "SwapCompletion",
    "SwapStatistics",
    "SwapRequestCounts",
    "UserSwapRequests",
    "audit_reservations",

    # Errors
    "SwapError",
    "ErrorReason",
    "NotFoundError",
    "ForbiddenError",
    "InvalidTransitionError",
    "ConflictError",
    "OwnershipMismatchError",
    "SwapValidationError",

    # Events
    "EventBus",
    "SwapEvent",
    "SwapCreatedEvent",
    "SwapCounterOfferedEvent",
    "SwapAcceptedEvent",
    "SwapCancelledEvent",
    "SwapPartyCompletedEvent",
    "SwapCompletedEvent",

    # Version
    "__version__",
]

# ----------------------------------------------------------------------
# Package version
# ----------------------------------------------------------------------

try:
    __version__ = version("book-swap-engine")
except PackageNotFoundError:
    __version__ = "0.0.0"
