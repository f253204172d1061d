"""Wiring helpers that assemble a SwapEngine from configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import create_engine

from book_swap.core.config.engine_config import SwapEngineConfig
from book_swap.core.events.event_bus import EventBus
from book_swap.core.events.sinks.file_recorder import FileRecorderSink
from book_swap.core.events.sinks.metrics_sink import MetricsEventSink
from book_swap.core.events.sinks.sink_logging import LoggingEventSink
from book_swap.engine.swap_engine import SwapEngine
from book_swap.runtime.prometheus_metrics import PrometheusMetricsClient
from book_swap.storage.memory_store import InMemorySwapStore
from book_swap.storage.sql_store import SqlSwapStore

if TYPE_CHECKING:
    from book_swap.core.ports.profile_directory import ProfileDirectory
    from book_swap.core.ports.swap_store import SwapStore

LOGGER = logging.getLogger(__name__)

EVENTS_LOGGER_NAME = "book_swap.events"


def build_event_bus(config: SwapEngineConfig) -> EventBus:
    """Logging sink always; file recorder and metrics sink when configured."""
    bus = EventBus(sinks=[LoggingEventSink(logging.getLogger(EVENTS_LOGGER_NAME))])

    if config.event_log_path is not None:
        bus.register(FileRecorderSink(config.event_log_path))

    if config.metrics_enabled:
        bus.register(
            MetricsEventSink(PrometheusMetricsClient(), job=config.metrics_job)
        )

    return bus


def build_swap_engine(
    store: SwapStore,
    profiles: ProfileDirectory,
    config: SwapEngineConfig | None = None,
) -> SwapEngine:
    config = config or SwapEngineConfig()
    engine = SwapEngine(
        store,
        profiles,
        build_event_bus(config),
        config=config,
    )
    LOGGER.info(
        "Swap engine ready",
        extra={
            "store": type(store).__name__,
            "require_offered_book": config.require_offered_book,
            "event_log_path": config.event_log_path,
            "metrics_enabled": config.metrics_enabled,
        },
    )
    return engine


def build_in_memory_store(config: SwapEngineConfig | None = None) -> InMemorySwapStore:
    config = config or SwapEngineConfig()
    return InMemorySwapStore(lock_timeout_seconds=config.lock_timeout_seconds)


def build_sql_store(
    database_url: str,
    config: SwapEngineConfig | None = None,
    *,
    create_schema: bool = False,
) -> SqlSwapStore:
    """Create a SqlSwapStore for ``database_url`` (any SQLAlchemy URL)."""
    config = config or SwapEngineConfig()
    store = SqlSwapStore(
        create_engine(database_url),
        lock_timeout_seconds=config.lock_timeout_seconds,
    )
    if create_schema:
        store.create_schema()
    return store
