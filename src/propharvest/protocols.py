"""
Core dataclasses and enums shared across PropHarvest.

Architecture Overview:
- PageFetcher turns a page number into a PageResult (fetch, checkpoint, extract)
- BatchScheduler drives fetchers over a page range with adaptive concurrency
- RecordAggregator merges PageResults (live) or checkpointed pages (replay)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

# ============================================================================
# Enums
# ============================================================================


class PageStatus(Enum):
    """Terminal status of one page task."""

    SUCCESS = "success"
    EXHAUSTED = "exhausted"


class SchedulerPhase(Enum):
    """Lifecycle of a single range-scrape invocation."""

    IDLE = "idle"
    RUNNING = "running"
    DISPATCHING = "dispatching"
    WAITING = "waiting"
    ADAPTING = "adapting"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


# ============================================================================
# Records
# ============================================================================

# External JSON field order of a property record.
RECORD_FIELDS = (
    "slNo",
    "pid",
    "ward",
    "mohalla",
    "chkNo",
    "houseNo",
    "ownerName",
    "mobile",
    "viewDetailsLink",
)


@dataclass(frozen=True)
class PropertyRecord:
    """One row of the property owner listing."""

    sl_no: str
    pid: str
    ward: str
    mohalla: str
    chk_no: str
    house_no: str
    owner_name: str
    mobile: str
    view_details_link: str = ""

    def to_dict(self) -> Dict[str, str]:
        """Render the record in its external JSON shape."""
        return {
            "slNo": self.sl_no,
            "pid": self.pid,
            "ward": self.ward,
            "mohalla": self.mohalla,
            "chkNo": self.chk_no,
            "houseNo": self.house_no,
            "ownerName": self.owner_name,
            "mobile": self.mobile,
            "viewDetailsLink": self.view_details_link,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PropertyRecord:
        return cls(
            sl_no=str(data["slNo"]),
            pid=str(data["pid"]),
            ward=str(data["ward"]),
            mohalla=str(data["mohalla"]),
            chk_no=str(data["chkNo"]),
            house_no=str(data["houseNo"]),
            owner_name=str(data["ownerName"]),
            mobile=str(data["mobile"]),
            view_details_link=str(data.get("viewDetailsLink", "")),
        )


# ============================================================================
# Page tasks and run results
# ============================================================================


@dataclass
class PageResult:
    """Settled outcome of one page task."""

    page_number: int
    status: PageStatus
    records: List[PropertyRecord] = field(default_factory=list)
    attempts: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is PageStatus.SUCCESS

    @property
    def is_empty(self) -> bool:
        """Fetched successfully but contained no qualifying rows."""
        return self.succeeded and not self.records


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of a running range scrape."""

    phase: SchedulerPhase
    total: int
    completed: int
    failed: int
    elapsed_seconds: float
    rate: float
    eta_seconds: Optional[float]
    success_rate: float
    concurrency: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "elapsedSeconds": round(self.elapsed_seconds, 3),
            "rate": round(self.rate, 3),
            "etaSeconds": None if self.eta_seconds is None else round(self.eta_seconds, 1),
            "successRate": round(self.success_rate, 4),
            "concurrency": self.concurrency,
        }


@dataclass
class RunReport:
    """Everything a finished (or cancelled) range scrape produced."""

    start_page: int
    end_page: int
    results: List[PageResult]
    elapsed_seconds: float
    final_concurrency: int
    cancelled: bool = False

    @property
    def pages_requested(self) -> int:
        return self.end_page - self.start_page + 1

    @property
    def pages_attempted(self) -> int:
        return len(self.results)

    @property
    def pages_succeeded(self) -> int:
        return sum(1 for result in self.results if result.succeeded)

    @property
    def pages_failed(self) -> int:
        return sum(1 for result in self.results if not result.succeeded)

    @property
    def pages_empty(self) -> int:
        return sum(1 for result in self.results if result.is_empty)

    @property
    def records(self) -> List[PropertyRecord]:
        """All records in completion order."""
        merged: List[PropertyRecord] = []
        for result in self.results:
            merged.extend(result.records)
        return merged


# ============================================================================
# Component protocols
# ============================================================================


class PageSource(Protocol):
    """Anything that can turn a page number into a settled PageResult."""

    async def fetch_page(self, page_number: int) -> PageResult: ...
