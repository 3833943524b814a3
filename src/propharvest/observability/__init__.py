"""Logging and metrics for PropHarvest."""

from __future__ import annotations

from prometheus_client import generate_latest

from .logging import configure_logging
from .metrics import METRICS

__all__ = ["configure_logging", "METRICS", "export_prometheus"]


def export_prometheus() -> bytes:
    """Export metrics in Prometheus text format."""
    return generate_latest()
