"""
Semantic test: Prometheus transition counters.

Invariant:
The metrics sink counts events per type on a private registry. Pushing is
best effort: without a Pushgateway nothing is pushed, and push failures are
logged instead of raised.
"""

from __future__ import annotations

import logging

from book_swap.core.events.event_bus import EventBus
from book_swap.core.events.sinks.metrics_sink import TRANSITIONS_METRIC, MetricsEventSink
from book_swap.engine.swap_engine import SwapEngine
from book_swap.runtime.prometheus_metrics import PrometheusMetricsClient


def test_counts_per_event_type(world, monkeypatch) -> None:
    monkeypatch.delenv("PROMETHEUS_PUSHGATEWAY_URL", raising=False)
    client = PrometheusMetricsClient()
    sink = MetricsEventSink(client, job="test")
    engine = SwapEngine(world.store, world.profiles, EventBus(sinks=[sink]))

    first = engine.create_swap_request("X", "R")
    engine.cancel_swap_request(first.id, "R")
    engine.create_swap_request("X", "R")
    engine.close()

    assert not client.is_push_enabled()
    assert client.sample_value(TRANSITIONS_METRIC, {"event_type": "swap_created"}) == 2.0
    assert client.sample_value(TRANSITIONS_METRIC, {"event_type": "swap_cancelled"}) == 1.0
    assert client.sample_value(TRANSITIONS_METRIC, {"event_type": "swap_accepted"}) is None


def test_push_failure_is_logged(monkeypatch, caplog) -> None:
    monkeypatch.setenv("PROMETHEUS_PUSHGATEWAY_URL", "http://pushgateway.invalid:9091")
    monkeypatch.setenv("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON", '{"instance": "swap-api-0", "bad": 1}')
    client = PrometheusMetricsClient()

    def failing_push(*, job: str) -> None:
        raise OSError(f"cannot reach gateway for {job}")

    monkeypatch.setattr(client, "push_all", failing_push)
    sink = MetricsEventSink(client, job="test")

    with caplog.at_level(logging.ERROR):
        sink.close()

    assert client.is_push_enabled()
    assert any(record.getMessage() == "Prometheus push failed" for record in caplog.records)


def test_invalid_grouping_key_is_ignored(monkeypatch) -> None:
    monkeypatch.setenv("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON", "not json")
    # pylint: disable=protected-access
    assert PrometheusMetricsClient._load_grouping_key() == {}

    monkeypatch.setenv("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON", '{"instance": "a", "n": 1}')
    assert PrometheusMetricsClient._load_grouping_key() == {"instance": "a"}
