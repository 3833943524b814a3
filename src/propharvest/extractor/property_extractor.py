"""
BeautifulSoup-based extraction of property rows from listing pages.
"""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup
from bs4.element import Tag

from propharvest.protocols import PropertyRecord

logger = structlog.get_logger(__name__)

SERIAL_RE = re.compile(r"^\d+$")
MIN_CELLS = 9
DEFAULT_SITE_ORIGIN = "https://www.jhansipropertytax.com/"


def _cell_text(cell: Tag) -> str:
    return cell.get_text().strip()


def _detail_link(cell: Tag, site_origin: str) -> str:
    anchor = cell.find("a")
    if not isinstance(anchor, Tag):
        return ""
    href = anchor.get("href")
    if not isinstance(href, str) or not href.strip():
        return ""
    return urljoin(site_origin, href.strip())


def parse_row(row: Tag, site_origin: str = DEFAULT_SITE_ORIGIN) -> Optional[PropertyRecord]:
    """Turn one ``<tr>`` into a record, or None when the row does not qualify."""
    cells = row.find_all("td")
    if len(cells) < MIN_CELLS:
        return None

    sl_no = _cell_text(cells[0])
    if not SERIAL_RE.match(sl_no):
        return None

    return PropertyRecord(
        sl_no=sl_no,
        pid=_cell_text(cells[1]),
        ward=_cell_text(cells[2]),
        mohalla=_cell_text(cells[3]),
        chk_no=_cell_text(cells[4]),
        house_no=_cell_text(cells[5]),
        owner_name=_cell_text(cells[6]),
        mobile=_cell_text(cells[7]),
        view_details_link=_detail_link(cells[8], site_origin),
    )


def extract_properties(html: str, site_origin: str = DEFAULT_SITE_ORIGIN) -> List[PropertyRecord]:
    """
    Extract property records from a raw listing page.

    Rows are visited in document order. Header rows, pagination rows and any
    malformed markup are skipped rather than raised, so a page the parser
    does not recognise simply yields an empty list.

    Args:
        html: Raw page content
        site_origin: Origin that relative detail-view links are resolved against

    Returns:
        Records in document row order
    """
    if not html or not html.strip():
        return []

    soup = BeautifulSoup(html, "html.parser")
    records: List[PropertyRecord] = []
    for row in soup.select("table tr"):
        record = parse_row(row, site_origin)
        if record is not None:
            records.append(record)

    logger.debug("Extracted property rows", count=len(records))
    return records


class PropertyExtractor:
    """Extractor bound to one site origin."""

    name = "property_table"

    def __init__(self, site_origin: str = DEFAULT_SITE_ORIGIN) -> None:
        self.site_origin = site_origin

    def extract(self, html: str) -> List[PropertyRecord]:
        return extract_properties(html, self.site_origin)
