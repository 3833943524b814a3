"""
Merges extracted property records into a single JSON artifact.

Two ways in: records from a live scrape, added as each page settles
(completion order), or a replay of every checkpointed page (store
enumeration order). Neither sorts nor deduplicates.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import structlog

from propharvest.extractor.property_extractor import PropertyExtractor
from propharvest.protocols import PageResult, PropertyRecord
from propharvest.storage.page_store import PageCheckpointStore
from propharvest.utils.atomic import atomic_write_json

logger = structlog.get_logger(__name__)

SCRAPE_ARTIFACT_PREFIX = "jhansi-properties"
COMBINED_ARTIFACT_PREFIX = "combined-properties"


def artifact_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp made filename-safe, e.g. ``2026-10-18T09-30-00-123Z``."""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(":", "-").replace(".", "-")


def artifact_name(prefix: str, now: Optional[datetime] = None) -> str:
    return f"{prefix}-{artifact_timestamp(now)}.json"


class RecordAggregator:
    """Accumulates records in the order they arrive."""

    def __init__(self) -> None:
        self._records: List[PropertyRecord] = []
        self.pages_added = 0

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> List[PropertyRecord]:
        return list(self._records)

    def add(self, result: PageResult) -> None:
        """Append one settled page's records."""
        self._records.extend(result.records)
        self.pages_added += 1

    def extend(self, records: Iterable[PropertyRecord]) -> None:
        self._records.extend(records)

    def to_list(self) -> List[Dict[str, str]]:
        return [record.to_dict() for record in self._records]

    def to_json(self) -> str:
        return json.dumps(self.to_list(), indent=2, ensure_ascii=False)

    def write_artifact(self, output_dir: Path, prefix: str = SCRAPE_ARTIFACT_PREFIX) -> Path:
        """Write all records as a JSON array to ``<output_dir>/<prefix>-<timestamp>.json``."""
        path = Path(output_dir) / artifact_name(prefix)
        atomic_write_json(path, self.to_list())
        logger.info("Artifact written", path=str(path), records=len(self._records))
        return path

    @classmethod
    def replay(cls, store: PageCheckpointStore, extractor: Optional[PropertyExtractor] = None) -> RecordAggregator:
        """Rebuild a result set from checkpointed pages without touching the network."""
        extractor = extractor or PropertyExtractor()
        aggregator = cls()
        pages = store.enumerate_stored()
        logger.info("Replaying checkpointed pages", pages=len(pages), directory=str(store.directory))
        for page_number in pages:
            aggregator.extend(extractor.extract(store.read(page_number)))
            aggregator.pages_added += 1
        return aggregator


def load_artifact(path: Path) -> List[PropertyRecord]:
    """Read a previously written artifact back into records."""
    data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    return [PropertyRecord.from_dict(item) for item in data]
