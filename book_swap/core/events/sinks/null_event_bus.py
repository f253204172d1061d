from __future__ import annotations

from typing import Any

from book_swap.core.events.event_bus import EventBus, EventSink


class NullEventBus(EventBus):
    """EventBus without observers.

    Events are counted and dropped. Used by tests and by maintenance jobs that
    drive the engine without notifying anyone.
    """

    def __init__(self) -> None:
        super().__init__(sinks=())
        self.discarded = 0

    def register(self, sink: EventSink) -> None:
        raise TypeError("NullEventBus does not accept sinks")

    def emit(self, event: Any) -> None:
        self.discarded += 1
