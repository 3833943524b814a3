"""Tests for the listing-page record extractor."""

import pytest

from propharvest.extractor import PropertyExtractor, extract_properties
from propharvest.protocols import RECORD_FIELDS
from tests.helpers import SITE_ORIGIN, listing_row, page_with_serials, render_listing


@pytest.mark.unit
class TestExtractProperties:
    def test_sample_row(self):
        html = render_listing(
            [
                [
                    "1",
                    "1/14/13117",
                    "WARD",
                    "MOHALLA",
                    "14",
                    "1",
                    "Mr. X",
                    "000****000",
                    '<a href="viewDetails.php?pid=1/14/13117">View</a>',
                ]
            ]
        )

        records = extract_properties(html, SITE_ORIGIN)

        assert len(records) == 1
        record = records[0]
        assert record.sl_no == "1"
        assert record.pid == "1/14/13117"
        assert record.ward == "WARD"
        assert record.mohalla == "MOHALLA"
        assert record.chk_no == "14"
        assert record.house_no == "1"
        assert record.owner_name == "Mr. X"
        assert record.mobile == "000****000"
        assert record.view_details_link == SITE_ORIGIN + "viewDetails.php?pid=1/14/13117"

    def test_record_json_shape(self):
        records = extract_properties(page_with_serials(7), SITE_ORIGIN)

        assert tuple(records[0].to_dict()) == RECORD_FIELDS

    @pytest.mark.parametrize("serial", ["N/A", "", "  ", "1a", "-3", "Total"])
    def test_non_numeric_serial_is_excluded(self, serial):
        html = render_listing([listing_row(serial, pid="X"), listing_row("2")])

        records = extract_properties(html, SITE_ORIGIN)

        assert [record.sl_no for record in records] == ["2"]

    def test_row_with_fewer_than_nine_cells_is_excluded(self):
        html = render_listing([listing_row("1", cells=8), listing_row("2", cells=9)])

        assert [record.sl_no for record in extract_properties(html)] == ["2"]

    def test_missing_link_yields_empty_string(self):
        html = render_listing([listing_row("5")])

        assert extract_properties(html)[0].view_details_link == ""

    def test_absolute_link_is_kept(self):
        html = render_listing([listing_row("5", href="https://elsewhere.test/detail?id=5")])

        assert extract_properties(html, SITE_ORIGIN)[0].view_details_link == "https://elsewhere.test/detail?id=5"

    def test_cells_are_trimmed(self):
        html = render_listing([listing_row("  12  ", pid="  3/4/5 ")])

        record = extract_properties(html)[0]
        assert record.sl_no == "12"
        assert record.pid == "3/4/5"

    def test_document_order_is_preserved(self):
        html = page_with_serials(9, 3, 27, 1)

        assert [record.sl_no for record in extract_properties(html)] == ["9", "3", "27", "1"]

    def test_rows_across_multiple_tables(self):
        html = page_with_serials(1, 2) + page_with_serials(3)

        assert [record.sl_no for record in extract_properties(html)] == ["1", "2", "3"]

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "   ",
            "not html at all",
            "<html><body><p>Maintenance</p></body></html>",
            "<table><tr><td>1</td><td>only two",
            "\x00\x01\x02",
        ],
    )
    def test_unrecognised_content_yields_empty(self, content):
        assert extract_properties(content) == []

    def test_extraction_is_idempotent(self):
        html = page_with_serials(1, 2, 3)

        first = extract_properties(html, SITE_ORIGIN)
        second = extract_properties(html, SITE_ORIGIN)

        assert first == second
        assert len(first) == 3


@pytest.mark.unit
def test_extractor_binds_site_origin():
    extractor = PropertyExtractor("https://other.test")

    records = extractor.extract(render_listing([listing_row("1", href="view.php?id=1")]))

    assert extractor.site_origin == "https://other.test"
    assert records[0].view_details_link == "https://other.test/view.php?id=1"
