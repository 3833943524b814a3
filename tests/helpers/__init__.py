"""Test helpers shared across the PropHarvest suite."""

from .listing import BASE_URL, SITE_ORIGIN, listing_row, page_with_serials, render_listing
from .metric_delta import counter_delta, histogram_observes, sample_value

__all__ = [
    "BASE_URL",
    "SITE_ORIGIN",
    "counter_delta",
    "histogram_observes",
    "listing_row",
    "page_with_serials",
    "render_listing",
    "sample_value",
]
