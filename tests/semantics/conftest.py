"""Shared fixtures for the swap semantic tests.

Users: ``R`` requests, ``O`` owns the requested book, ``T`` is a bystander.
Books follow the lifecycle walkthrough: ``X`` (O), ``Y`` (R), ``Z`` (O).
"""

# pylint: disable=redefined-outer-name
from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from book_swap.core.config.engine_config import SwapEngineConfig
from book_swap.core.domain.types import Book
from book_swap.core.events.event_bus import EventBus
from book_swap.engine.factory import build_sql_store
from book_swap.engine.swap_engine import SwapEngine
from book_swap.storage.memory_store import InMemoryProfileDirectory, InMemorySwapStore
from book_swap.storage.sql_store import SqlProfileDirectory

USERS = ("R", "O", "T")


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[Any] = []
        self._lock = threading.Lock()

    def on_event(self, event: Any) -> None:
        with self._lock:
            self.events.append(event)

    def types(self) -> list[str]:
        return [event.event_type for event in self.events]


class TickingClock:
    """Strictly increasing UTC clock, one second per call."""

    def __init__(self) -> None:
        self._now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self._now += timedelta(seconds=1)
            return self._now


@dataclass
class SwapWorld:
    store: Any
    profiles: Any
    engine: SwapEngine
    sink: RecordingSink
    config: SwapEngineConfig = field(default_factory=SwapEngineConfig)

    def add_book(self, book_id: str, owner_id: str, available: bool = True) -> None:
        self.store.add_book(Book(id=book_id, owner_id=owner_id, available=available))

    def book(self, book_id: str) -> Book:
        return self.store.get_book(book_id)

    def owners(self, *book_ids: str) -> dict[str, str]:
        return {book_id: self.book(book_id).owner_id for book_id in book_ids}

    def available(self, *book_ids: str) -> dict[str, bool]:
        return {book_id: self.book(book_id).available for book_id in book_ids}


def _make_engine(store: Any, profiles: Any, config: SwapEngineConfig, sink: RecordingSink) -> SwapEngine:
    counter = itertools.count(1)
    return SwapEngine(
        store,
        profiles,
        EventBus(sinks=[sink]),
        config=config,
        clock=TickingClock(),
        id_factory=lambda: f"swap-{next(counter)}",
    )


def make_memory_world(config: SwapEngineConfig | None = None) -> SwapWorld:
    config = config or SwapEngineConfig(lock_timeout_seconds=2.0)
    store = InMemorySwapStore(lock_timeout_seconds=config.lock_timeout_seconds)
    profiles = InMemoryProfileDirectory(USERS)
    sink = RecordingSink()
    world = SwapWorld(
        store=store,
        profiles=profiles,
        engine=_make_engine(store, profiles, config, sink),
        sink=sink,
        config=config,
    )
    world.add_book("X", "O")
    world.add_book("Y", "R")
    world.add_book("Z", "O")
    return world


@pytest.fixture
def world() -> SwapWorld:
    return make_memory_world()


@pytest.fixture
def world_factory():
    return make_memory_world


def make_sql_world(db_path: Path, config: SwapEngineConfig | None = None) -> SwapWorld:
    config = config or SwapEngineConfig(lock_timeout_seconds=5.0)
    store = build_sql_store(f"sqlite:///{db_path}", config, create_schema=True)
    for user_id in USERS:
        store.add_profile(user_id)
    profiles = SqlProfileDirectory(store.engine)
    sink = RecordingSink()
    world = SwapWorld(
        store=store,
        profiles=profiles,
        engine=_make_engine(store, profiles, config, sink),
        sink=sink,
        config=config,
    )
    world.add_book("X", "O")
    world.add_book("Y", "R")
    world.add_book("Z", "O")
    return world


@pytest.fixture
def sql_world(tmp_path: Path) -> SwapWorld:
    return make_sql_world(tmp_path / "swaps.db")


@pytest.fixture
def sql_world_factory(tmp_path: Path):
    """Each call builds a world on a fresh SQLite file."""
    counter = itertools.count(1)

    def factory(config: SwapEngineConfig | None = None) -> SwapWorld:
        return make_sql_world(tmp_path / f"swaps-{next(counter)}.db", config)

    return factory


@pytest.fixture
def accepted_swap(world: SwapWorld):
    """R offered Y for X, O counter-offered Z, R accepted."""
    swap = world.engine.create_swap_request("X", "R", offered_book_id="Y", message="trade?")
    world.engine.make_counter_offer(swap.id, "O", "Z")
    return world.engine.accept_swap_request(swap.id, "R")
