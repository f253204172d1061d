"""
Logging event sink.
"""
from __future__ import annotations

import logging
from typing import Any

from book_swap.core.events.events import event_to_record


class LoggingEventSink:
    """Logs swap domain events using the standard logging module."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def on_event(self, event: Any) -> None:
        self._logger.info("domain_event", extra={"event": event_to_record(event)})
