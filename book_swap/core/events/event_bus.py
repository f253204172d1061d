"""
Simple synchronous event bus.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

LOGGER = logging.getLogger(__name__)


class EventSink(Protocol):
    """Consumer of committed swap events.

    A sink may also expose ``close()``; the bus calls it once on shutdown.
    """

    def on_event(self, event: Any) -> None:
        ...


class EventBus:
    """Dispatches events to registered sinks.

    A failing sink is logged and skipped; the remaining sinks still receive
    the event and the publisher never sees the error.
    """

    def __init__(self, sinks: Iterable[EventSink] | None = None) -> None:
        self._sinks: list[EventSink] = list(sinks) if sinks is not None else []
        self._closed = False

    def register(self, sink: EventSink) -> None:
        """Register a new sink."""
        self._sinks.append(sink)

    def emit(self, event: Any) -> None:
        """Emit an event to all sinks."""
        for sink in self._sinks:
            try:
                sink.on_event(event)
            except Exception:
                LOGGER.exception(
                    "Event sink failed",
                    extra={"sink": type(sink).__name__, "event_type": getattr(event, "event_type", None)},
                )

    def close(self) -> None:
        """
        Finalize all sinks that expose a close() method.
        """
        if self._closed:
            return

        for sink in self._sinks:
            close_fn = getattr(sink, "close", None)
            if callable(close_fn):
                close_fn()

        self._closed = True
