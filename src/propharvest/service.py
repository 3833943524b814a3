"""
Operations exposed to the HTTP layer and the CLI.

Every operation returns a plain dict: ``success`` and ``message`` plus either
the operation's data or an ``error`` description. Faults are reported, never
raised, so callers see a summary instead of a traceback.
"""

from __future__ import annotations

import asyncio
import math
import os
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from propharvest.config.config import Config, load_config
from propharvest.crawler.batch_scheduler import BatchScheduler, PageCallback
from propharvest.crawler.http_client import PageFetcher
from propharvest.dataset.aggregator import COMBINED_ARTIFACT_PREFIX, SCRAPE_ARTIFACT_PREFIX, RecordAggregator
from propharvest.errors import HarvestError, InvalidPageRangeError
from propharvest.extractor.property_extractor import PropertyExtractor
from propharvest.protocols import PageResult
from propharvest.storage.page_store import PageCheckpointStore

logger = structlog.get_logger(__name__)

INVALID_RANGE = "Invalid page range"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values, unlike the built-in round()."""
    return int(math.floor(value + 0.5))


def failure(message: str, error: BaseException | str) -> Dict[str, Any]:
    return {"success": False, "message": message, "error": str(error)}


class HarvestService:
    """Facade over fetcher, scheduler, checkpoint store and aggregator."""

    def __init__(self, config: Optional[Config] = None) -> None:
        self.config = config or load_config()
        self.store = PageCheckpointStore(self.config.storage.pages_dir)
        self.extractor = PropertyExtractor(self.config.source.site_origin)
        self._scheduler: Optional[BatchScheduler] = None
        self._scrape_lock = asyncio.Lock()

    @property
    def total_pages(self) -> int:
        return self.config.source.total_pages

    def _fetcher(self) -> PageFetcher:
        return PageFetcher(self.config, store=self.store, extractor=self.extractor)

    # ------------------------------------------------------------------
    # Range scrape
    # ------------------------------------------------------------------

    async def start_scrape(
        self,
        start_page: Optional[int] = None,
        end_page: Optional[int] = None,
        on_page: Optional[PageCallback] = None,
    ) -> Dict[str, Any]:
        """Scrape a page range, write the JSON artifact and summarise the run."""
        start_page = 1 if start_page is None else start_page
        end_page = self.total_pages if end_page is None else end_page

        if self._scrape_lock.locked():
            return failure("Scraping failed", "A scrape is already running")

        async with self._scrape_lock:
            return await self._scrape(start_page, end_page, on_page)

    async def _scrape(self, start_page: int, end_page: int, on_page: Optional[PageCallback]) -> Dict[str, Any]:
        aggregator = RecordAggregator()

        def settle(result: PageResult) -> None:
            aggregator.add(result)
            if on_page is not None:
                on_page(result)

        try:
            if start_page < 1 or end_page < start_page:
                raise InvalidPageRangeError(f"Invalid page range [{start_page}, {end_page}]")
            self.store.ensure()

            async with self._fetcher() as fetcher:
                self._scheduler = BatchScheduler(fetcher, self.config.scheduler, on_page=settle)
                report = await self._scheduler.run(start_page, end_page)

            artifact = await asyncio.to_thread(
                aggregator.write_artifact, self.config.storage.output_dir, SCRAPE_ARTIFACT_PREFIX
            )
        except InvalidPageRangeError as e:
            logger.warning("Rejected scrape request", start_page=start_page, end_page=end_page, error=str(e))
            return failure(INVALID_RANGE, e)
        except (HarvestError, OSError) as e:
            logger.error("Scraping failed", start_page=start_page, end_page=end_page, error=str(e))
            return failure("Scraping failed", e)

        elapsed = report.elapsed_seconds
        pages_per_second = report.pages_attempted / elapsed if elapsed > 0 else 0.0
        total = len(aggregator)
        return {
            "success": True,
            "message": "Scraping cancelled" if report.cancelled else "Scraping completed successfully",
            "cancelled": report.cancelled,
            "totalProperties": total,
            "pagesProcessed": report.pages_requested,
            "pagesAttempted": report.pages_attempted,
            "pagesSucceeded": report.pages_succeeded,
            "pagesFailed": report.pages_failed,
            "pagesEmpty": report.pages_empty,
            "jsonFile": artifact.name,
            "summary": {
                "totalRecords": total,
                "averagePerPage": round_half_up(total / report.pages_requested),
            },
            "performance": {
                "elapsedSeconds": round(elapsed, 3),
                "pagesPerSecond": round(pages_per_second, 3),
                "rate": f"{pages_per_second:.2f} pages/sec",
                "finalConcurrency": report.final_concurrency,
            },
        }

    def progress(self) -> Optional[Dict[str, Any]]:
        """Live progress of the current (or last) scrape, or None if none has run."""
        if self._scheduler is None:
            return None
        snapshot = self._scheduler.progress()
        return snapshot.to_dict() if snapshot is not None else None

    def cancel(self) -> bool:
        """Request cancellation of the running scrape. Returns False if nothing is running."""
        if self._scheduler is None or not self._scheduler.is_running:
            return False
        self._scheduler.cancel()
        return True

    # ------------------------------------------------------------------
    # Single page
    # ------------------------------------------------------------------

    async def fetch_single_page(self, page_number: int) -> Dict[str, Any]:
        """Fetch one page through the full pipeline without committing to a range."""
        if page_number < 1:
            return failure("Failed to fetch page", f"Invalid page number {page_number}")
        try:
            self.store.ensure()
            async with self._fetcher() as fetcher:
                result = await fetcher.fetch_page(page_number)
        except (HarvestError, OSError) as e:
            logger.error("Single page fetch failed", page=page_number, error=str(e))
            return failure("Failed to fetch page", e)

        return {
            "success": True,
            "pageNo": page_number,
            "status": result.status.value,
            "attempts": result.attempts,
            "properties": [record.to_dict() for record in result.records],
            "count": len(result.records),
        }

    # ------------------------------------------------------------------
    # Checkpoint-only operations
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """Checkpoint coverage of the whole dataset, independent of any running scrape."""
        try:
            completed = self.store.count()
        except HarvestError as e:
            return failure("Failed to read status", e)

        total = self.total_pages
        return {
            "success": True,
            "totalPages": total,
            "completedPages": completed,
            "progress": round_half_up(100 * completed / total),
            "remaining": total - completed,
        }

    async def combine_pages(self, output_dir: Optional[Path] = None) -> Dict[str, Any]:
        """Re-extract every checkpointed page and write the combined artifact."""
        try:
            aggregator = await asyncio.to_thread(RecordAggregator.replay, self.store, self.extractor)
            artifact = await asyncio.to_thread(
                aggregator.write_artifact,
                output_dir or self.config.storage.output_dir,
                COMBINED_ARTIFACT_PREFIX,
            )
        except (HarvestError, OSError) as e:
            logger.error("Combining pages failed", error=str(e))
            return failure("Combining pages failed", e)

        return {
            "success": True,
            "message": "Pages combined successfully",
            "totalProperties": len(aggregator),
            "filesProcessed": aggregator.pages_added,
            "jsonFile": artifact.name,
        }

    def describe(self) -> Dict[str, Any]:
        """Health payload listing endpoints and the effective configuration."""
        return {
            "message": f"{self.config.project_name} is running!",
            "endpoints": {
                "startScraping": "POST /start-scraping",
                "fetchPage": "GET /fetch-page/{pageNo}",
                "status": "GET /status",
                "combinePages": "POST /combine-pages",
                "progress": "GET /progress",
                "cancel": "POST /cancel",
                "metrics": "GET /metrics",
            },
            "config": {
                "totalPages": self.total_pages,
                "batchSize": self.config.scheduler.batch_size,
                "initialConcurrency": self.config.scheduler.initial_concurrency,
                "requestDelaySeconds": self.config.scheduler.request_delay_seconds,
                "maxRetries": self.config.fetcher.max_retries,
            },
            "performance": {
                "cpuCores": os.cpu_count() or 1,
                # Concurrency only shrinks during a run, so the initial value is the ceiling.
                "maxConcurrency": self.config.scheduler.initial_concurrency,
            },
        }


