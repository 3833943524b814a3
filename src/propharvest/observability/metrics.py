"""
Defines Prometheus metrics for the harvester.
"""

from __future__ import annotations

from typing import Any, Dict

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Re-importing this module (tests reload it) must reuse the collectors that
# are already registered instead of raising on duplicate names.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[no-untyped-def]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing
        try:
            return metric_cls(name, documentation, *args, **kwargs)
        except ValueError:
            return _PROM_REGISTRY._names_to_collectors[name]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)
Gauge = _duplicate_safe_factory(_OrigGauge)
Histogram = _duplicate_safe_factory(_OrigHistogram)


def _create_metrics() -> Dict[str, Any]:
    return {
        "pages_total": Counter(
            "propharvest_pages_total",
            "Pages settled by the scheduler, by terminal status",
            ["status"],
        ),
        "fetch_retries_total": Counter(
            "propharvest_fetch_retries_total",
            "Fetch attempts that were retried after a transient fault",
        ),
        "records_extracted_total": Counter(
            "propharvest_records_extracted_total",
            "Property records extracted from fetched pages",
        ),
        "fetch_latency_seconds": Histogram(
            "propharvest_fetch_latency_seconds",
            "Latency of a single successful page request",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0),
        ),
        "scheduler_concurrency": Gauge(
            "propharvest_scheduler_concurrency",
            "Current adaptive concurrency of the batch scheduler",
        ),
        "pages_in_flight": Gauge(
            "propharvest_pages_in_flight",
            "Page tasks currently being fetched",
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()
