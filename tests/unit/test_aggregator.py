"""Tests for record aggregation and artifact output."""

import json
import re
from collections import Counter
from datetime import datetime, timezone
from typing import List

import pytest

from propharvest.dataset import (
    COMBINED_ARTIFACT_PREFIX,
    SCRAPE_ARTIFACT_PREFIX,
    RecordAggregator,
    artifact_name,
    load_artifact,
)
from propharvest.extractor import PropertyExtractor
from propharvest.protocols import RECORD_FIELDS, PageResult, PageStatus
from propharvest.storage import PageCheckpointStore
from tests.helpers import SITE_ORIGIN, page_with_serials

PAGES = {
    1: page_with_serials(1, 2, 3),
    2: page_with_serials(4, 5),
    3: page_with_serials(6, 7, 8, 9),
}


class FixedOrderStore(PageCheckpointStore):
    """Store whose enumeration order is pinned, standing in for directory listing order."""

    def __init__(self, directory, order: List[int]) -> None:
        super().__init__(directory)
        self.order = order

    def enumerate_stored(self) -> List[int]:
        return list(self.order)


def as_multiset(records) -> Counter:
    return Counter(tuple(sorted(record.to_dict().items())) for record in records)


@pytest.mark.unit
class TestArtifactNaming:
    def test_timestamp_is_filename_safe(self):
        now = datetime(2026, 10, 18, 9, 30, 5, 123000, tzinfo=timezone.utc)

        assert artifact_name(SCRAPE_ARTIFACT_PREFIX, now) == "jhansi-properties-2026-10-18T09-30-05-123Z.json"
        assert artifact_name(COMBINED_ARTIFACT_PREFIX, now) == "combined-properties-2026-10-18T09-30-05-123Z.json"

    def test_current_timestamp_shape(self):
        name = artifact_name(COMBINED_ARTIFACT_PREFIX)

        assert re.fullmatch(r"combined-properties-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z\.json", name)


@pytest.mark.unit
class TestRecordAggregator:
    def test_live_add_keeps_completion_order(self):
        extractor = PropertyExtractor(SITE_ORIGIN)
        aggregator = RecordAggregator()

        for page_number in (2, 1, 3):
            aggregator.add(PageResult(page_number, PageStatus.SUCCESS, extractor.extract(PAGES[page_number])))

        assert [record.sl_no for record in aggregator.records] == ["4", "5", "1", "2", "3", "6", "7", "8", "9"]
        assert aggregator.pages_added == 3

    def test_exhausted_page_adds_no_records(self):
        aggregator = RecordAggregator()

        aggregator.add(PageResult(1, PageStatus.EXHAUSTED, error="HTTP 503"))

        assert len(aggregator) == 0
        assert aggregator.pages_added == 1

    def test_duplicates_are_kept(self):
        extractor = PropertyExtractor(SITE_ORIGIN)
        aggregator = RecordAggregator()
        records = extractor.extract(PAGES[2])

        aggregator.extend(records)
        aggregator.extend(records)

        assert len(aggregator) == 4

    def test_replay_follows_store_enumeration_order(self, tmp_path):
        store = FixedOrderStore(tmp_path, order=[3, 1, 2])
        for page_number, html in PAGES.items():
            store.put(page_number, html)

        aggregator = RecordAggregator.replay(store, PropertyExtractor(SITE_ORIGIN))

        assert [record.sl_no for record in aggregator.records] == ["6", "7", "8", "9", "1", "2", "3", "4", "5"]
        assert aggregator.pages_added == 3

    def test_live_and_replay_agree_as_multisets(self, tmp_path):
        extractor = PropertyExtractor(SITE_ORIGIN)
        store = FixedOrderStore(tmp_path, order=[3, 1, 2])
        live = RecordAggregator()
        for page_number in (2, 1, 3):
            store.put(page_number, PAGES[page_number])
            live.add(PageResult(page_number, PageStatus.SUCCESS, extractor.extract(PAGES[page_number])))

        replayed = RecordAggregator.replay(store, extractor)

        assert as_multiset(live.records) == as_multiset(replayed.records)
        assert [r.sl_no for r in live.records] != [r.sl_no for r in replayed.records]

    def test_replay_of_empty_store(self, tmp_path):
        aggregator = RecordAggregator.replay(PageCheckpointStore(tmp_path / "missing"))

        assert len(aggregator) == 0
        assert aggregator.pages_added == 0

    def test_replay_counts_pages_without_rows(self, tmp_path):
        store = PageCheckpointStore(tmp_path)
        store.put(1, PAGES[1])
        store.put(2, "<html>maintenance</html>")

        aggregator = RecordAggregator.replay(store)

        assert aggregator.pages_added == 2
        assert len(aggregator) == 3

    def test_write_artifact_is_plain_record_array(self, tmp_path):
        aggregator = RecordAggregator()
        aggregator.extend(PropertyExtractor(SITE_ORIGIN).extract(PAGES[2]))

        path = aggregator.write_artifact(tmp_path / "out", COMBINED_ARTIFACT_PREFIX)

        assert path.parent == tmp_path / "out"
        assert path.name.startswith("combined-properties-")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert isinstance(data, list)
        assert [list(item) for item in data] == [list(RECORD_FIELDS)] * 2
        assert data[0]["viewDetailsLink"] == SITE_ORIGIN + "viewDetails.php?id=4"
        assert load_artifact(path) == aggregator.records

    def test_empty_aggregate_writes_empty_array(self, tmp_path):
        path = RecordAggregator().write_artifact(tmp_path)

        assert json.loads(path.read_text()) == []
        assert RecordAggregator().to_json() == "[]"
