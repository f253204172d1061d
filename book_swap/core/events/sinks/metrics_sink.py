"""
Prometheus metrics event sink.
"""
from __future__ import annotations

import logging
from typing import Any

from book_swap.runtime.prometheus_metrics import PrometheusMetricsClient

LOGGER = logging.getLogger(__name__)

TRANSITIONS_METRIC = "swap_transitions"


class MetricsEventSink:
    """Counts swap events per event type and pushes them when configured."""

    def __init__(self, client: PrometheusMetricsClient, *, job: str, push_on_event: bool = False) -> None:
        self._client = client
        self._job = job
        self._push_on_event = push_on_event

    @property
    def client(self) -> PrometheusMetricsClient:
        return self._client

    def on_event(self, event: Any) -> None:
        event_type = str(getattr(event, "event_type", type(event).__name__))
        self._client.inc_counter(
            name=TRANSITIONS_METRIC,
            labels={"event_type": event_type},
        )
        if self._push_on_event:
            self._push()

    def close(self) -> None:
        self._push()

    def _push(self) -> None:
        if not self._client.is_push_enabled():
            return
        try:
            self._client.push_all(job=self._job)
        except Exception:
            LOGGER.exception("Prometheus push failed")
