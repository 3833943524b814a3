"""
Exception hierarchy for PropHarvest.

Transient fetch faults are contained inside the fetcher; everything else
propagates to the caller of a range scrape and is turned into a structured
failure summary by the service layer.
"""

from __future__ import annotations

from typing import Optional


class HarvestError(Exception):
    """Base class for all PropHarvest errors."""


class TransientFetchError(HarvestError):
    """A single fetch attempt failed (timeout, transport error or HTTP status >= 400)."""

    def __init__(self, page_number: int, attempt: int, reason: str, status: Optional[int] = None) -> None:
        self.page_number = page_number
        self.attempt = attempt
        self.reason = reason
        self.status = status
        super().__init__(f"page {page_number} attempt {attempt}: {reason}")


class CheckpointError(HarvestError):
    """The page checkpoint store could not be created, written or read."""


class InvalidPageRangeError(HarvestError, ValueError):
    """A requested page range is empty or out of bounds."""


class SchedulerError(HarvestError):
    """The batch scheduler was used in an invalid lifecycle state."""
