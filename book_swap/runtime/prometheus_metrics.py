from __future__ import annotations

import json
import logging
import os
import threading

from prometheus_client import CollectorRegistry, Counter, push_to_gateway

LOGGER = logging.getLogger(__name__)


class PrometheusMetricsClient:
    """Minimal Prometheus client for swap transition counters.

    Counters live on a private registry so several engines in one process do
    not collide. Pushing is optional.

    Expected environment (only needed for pushing):
    - PROMETHEUS_PUSHGATEWAY_URL: URL to the Pushgateway.
      Example: http://pushgateway.monitoring.svc.cluster.local:9091

    Optional:
    - PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON: JSON object used as grouping key.
      Example:
        {"instance": "swap-api-0"}

    This client is best-effort: callers treat it as a side-effect and never
    fail a transition because of metrics delivery.
    """

    def __init__(self, *, namespace: str = "book_swap") -> None:
        self._namespace = namespace
        self._pushgateway_url = os.environ.get("PROMETHEUS_PUSHGATEWAY_URL")
        self._grouping_key = self._load_grouping_key()
        self._registry = CollectorRegistry()
        self._counters: dict[str, Counter] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def is_push_enabled(self) -> bool:
        return self._pushgateway_url is not None

    @staticmethod
    def _load_grouping_key() -> dict[str, str]:
        raw = os.environ.get("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON")
        if not raw:
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning(
                "Invalid PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON; ignoring"
            )
            return {}

        if not isinstance(data, dict):
            return {}

        grouping: dict[str, str] = {}
        for key, value in data.items():
            if isinstance(key, str) and isinstance(value, str):
                grouping[key] = value
        return grouping

    def inc_counter(
        self,
        *,
        name: str,
        labels: dict[str, str],
        amount: float = 1.0,
    ) -> None:
        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = Counter(
                    name,
                    documentation=name,
                    labelnames=list(labels.keys()),
                    namespace=self._namespace,
                    registry=self._registry,
                )
                self._counters[name] = counter

        counter.labels(**labels).inc(amount)

    def sample_value(self, name: str, labels: dict[str, str]) -> float | None:
        """Current value of a counter sample (``name`` without namespace/suffix)."""
        return self._registry.get_sample_value(
            f"{self._namespace}_{name}_total",
            labels,
        )

    def push_all(self, *, job: str) -> None:
        if not self._pushgateway_url:
            return

        push_to_gateway(
            gateway=self._pushgateway_url,
            job=job,
            registry=self._registry,
            grouping_key=self._grouping_key,
        )

        LOGGER.info(
            "Prometheus metrics pushed",
            extra={"job": job, "grouping_key": self._grouping_key},
        )
