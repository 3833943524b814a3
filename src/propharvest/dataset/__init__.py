"""Aggregation of extracted records into output artifacts."""

from .aggregator import (
    COMBINED_ARTIFACT_PREFIX,
    SCRAPE_ARTIFACT_PREFIX,
    RecordAggregator,
    artifact_name,
    load_artifact,
)

__all__ = [
    "COMBINED_ARTIFACT_PREFIX",
    "SCRAPE_ARTIFACT_PREFIX",
    "RecordAggregator",
    "artifact_name",
    "load_artifact",
]
