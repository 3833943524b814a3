"""
Adaptive batch scheduler for page-range scrapes.

A range is cut into contiguous batches that run strictly one after another.
Inside a batch a fixed set of workers drains a queue of page numbers, at most
``concurrency`` pages in flight. Between batches the scheduler re-evaluates
concurrency from the failures observed since the last cut and pauses briefly
before dispatching the next batch.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional
from uuid import uuid4

import structlog

from propharvest.config.config import SchedulerConfig
from propharvest.errors import CheckpointError, InvalidPageRangeError, SchedulerError
from propharvest.observability.metrics import METRICS
from propharvest.protocols import PageResult, PageSource, ProgressSnapshot, RunReport, SchedulerPhase

logger = structlog.get_logger(__name__)

PageCallback = Callable[[PageResult], None]

_ACTIVE_PHASES = {
    SchedulerPhase.RUNNING,
    SchedulerPhase.DISPATCHING,
    SchedulerPhase.WAITING,
    SchedulerPhase.ADAPTING,
}


def split_batches(start_page: int, end_page: int, batch_size: int) -> List[List[int]]:
    """Split the inclusive range into contiguous batches of at most ``batch_size`` pages."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [
        list(range(batch_start, min(batch_start + batch_size, end_page + 1)))
        for batch_start in range(start_page, end_page + 1, batch_size)
    ]


def next_concurrency(
    current: int,
    failures_since_adapt: int,
    threshold: int = 10,
    decay: float = 0.7,
    floor: int = 3,
) -> int:
    """
    Concurrency for the next batch.

    Only ever shrinks: once more than ``threshold`` failures were seen since
    the last adaptation, ``current`` is scaled by ``decay`` and clamped to
    ``floor``. A value already at or below the floor is left unchanged.
    """
    if failures_since_adapt <= threshold:
        return current
    return min(current, max(floor, math.floor(current * decay)))


@dataclass
class SchedulerState:
    """Mutable counters of one range scrape. Written only through ``settle``."""

    total: int
    concurrency: int
    phase: SchedulerPhase = SchedulerPhase.IDLE
    completed: int = 0
    failed: int = 0
    failures_since_adapt: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def settle(self, result: PageResult) -> None:
        # No await between the updates: one settlement is atomic under the event loop.
        self.completed += 1
        if not result.succeeded:
            self.failed += 1
            self.failures_since_adapt += 1

    def snapshot(self) -> ProgressSnapshot:
        elapsed = max(0.0, time.monotonic() - self.started_at)
        rate = self.completed / elapsed if elapsed > 0 else 0.0
        eta = (self.total - self.completed) / rate if rate > 0 else None
        success_rate = (self.completed - self.failed) / self.completed if self.completed else 0.0
        return ProgressSnapshot(
            phase=self.phase,
            total=self.total,
            completed=self.completed,
            failed=self.failed,
            elapsed_seconds=elapsed,
            rate=rate,
            eta_seconds=eta,
            success_rate=success_rate,
            concurrency=self.concurrency,
        )


def _first_leaf(group: BaseExceptionGroup) -> BaseException:
    exc: BaseException = group
    while isinstance(exc, BaseExceptionGroup):
        exc = exc.exceptions[0]
    return exc


class BatchScheduler:
    """Runs page tasks for an inclusive page range with adaptive, batch-bounded concurrency."""

    def __init__(
        self,
        source: PageSource,
        config: Optional[SchedulerConfig] = None,
        on_page: Optional[PageCallback] = None,
    ) -> None:
        self.source = source
        self.config = config or SchedulerConfig()
        self.on_page = on_page
        self.state: Optional[SchedulerState] = None
        self._cancel_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self.state is not None and self.state.phase in _ACTIVE_PHASES

    def progress(self) -> Optional[ProgressSnapshot]:
        """Current progress, or None if no run has started."""
        if self.state is None:
            return None
        return self.state.snapshot()

    def cancel(self) -> None:
        """
        Stop dispatching new pages. In-flight pages are allowed to settle.

        A request made while idle applies to the next ``run``. Each run clears
        the request when it ends.
        """
        self._cancel_event.set()
        logger.info("Cancellation requested")

    async def run(self, start_page: int, end_page: int) -> RunReport:
        """
        Scrape ``[start_page, end_page]`` and return every settled page in completion order.

        Raises:
            InvalidPageRangeError: If the range is empty or starts below page 1
            SchedulerError: If this scheduler is already running
            CheckpointError: If a page could not be persisted; the run stops
        """
        if start_page < 1 or end_page < start_page:
            raise InvalidPageRangeError(f"Invalid page range [{start_page}, {end_page}]")
        if self.is_running:
            raise SchedulerError("Scheduler is already running")

        try:
            return await self._run(start_page, end_page)
        finally:
            self._cancel_event.clear()

    async def _run(self, start_page: int, end_page: int) -> RunReport:
        state = SchedulerState(total=end_page - start_page + 1, concurrency=self.config.initial_concurrency)
        self.state = state
        state.phase = SchedulerPhase.RUNNING
        METRICS["scheduler_concurrency"].set(state.concurrency)

        batches = split_batches(start_page, end_page, self.config.batch_size)
        results: List[PageResult] = []

        with structlog.contextvars.bound_contextvars(run_id=uuid4().hex[:12]):
            logger.info(
                "Range scrape started",
                start_page=start_page,
                end_page=end_page,
                batches=len(batches),
                batch_size=self.config.batch_size,
                concurrency=state.concurrency,
            )

            try:
                for index, batch in enumerate(batches):
                    if self._cancel_event.is_set():
                        break

                    batch_results = await self._run_batch(batch, state)
                    results.extend(batch_results)

                    state.phase = SchedulerPhase.ADAPTING
                    self._adapt(state)
                    self._log_batch(index, len(batches), batch_results, state)

                    if index < len(batches) - 1 and not self._cancel_event.is_set():
                        await self._pause(self._pause_for(batch_results))
            except CheckpointError as e:
                state.phase = SchedulerPhase.FAILED
                logger.error("Range scrape failed", error=str(e), completed=state.completed)
                raise
            except BaseException:
                state.phase = SchedulerPhase.FAILED
                raise

            cancelled = self._cancel_event.is_set() and len(results) < state.total
            state.phase = SchedulerPhase.CANCELLED if cancelled else SchedulerPhase.DONE
            snapshot = state.snapshot()
            logger.info(
                "Range scrape finished",
                phase=state.phase.value,
                completed=state.completed,
                failed=state.failed,
                elapsed=round(snapshot.elapsed_seconds, 2),
                rate=round(snapshot.rate, 2),
                concurrency=state.concurrency,
            )

        return RunReport(
            start_page=start_page,
            end_page=end_page,
            results=results,
            elapsed_seconds=snapshot.elapsed_seconds,
            final_concurrency=state.concurrency,
            cancelled=cancelled,
        )

    async def _run_batch(self, batch: List[int], state: SchedulerState) -> List[PageResult]:
        state.phase = SchedulerPhase.DISPATCHING
        queue: asyncio.Queue[int] = asyncio.Queue()
        for page_number in batch:
            queue.put_nowait(page_number)

        batch_results: List[PageResult] = []
        worker_count = min(state.concurrency, len(batch))

        async def worker() -> None:
            while not self._cancel_event.is_set():
                try:
                    page_number = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if self.config.request_delay_seconds > 0:
                    await asyncio.sleep(self.config.request_delay_seconds)
                result = await self.source.fetch_page(page_number)
                state.settle(result)
                batch_results.append(result)
                METRICS["pages_total"].labels(status=result.status.value).inc()
                if self.on_page is not None:
                    self.on_page(result)

        try:
            async with asyncio.TaskGroup() as tg:
                for _ in range(worker_count):
                    tg.create_task(worker())
                state.phase = SchedulerPhase.WAITING
        except ExceptionGroup as eg:
            checkpoint_errors, _ = eg.split(CheckpointError)
            if checkpoint_errors is not None:
                raise _first_leaf(checkpoint_errors) from eg
            raise

        return batch_results

    def _adapt(self, state: SchedulerState) -> None:
        new_concurrency = next_concurrency(
            state.concurrency,
            state.failures_since_adapt,
            threshold=self.config.failure_threshold,
            decay=self.config.concurrency_decay,
            floor=self.config.min_concurrency,
        )
        if state.failures_since_adapt > self.config.failure_threshold:
            logger.warning(
                "Reducing concurrency",
                previous=state.concurrency,
                current=new_concurrency,
                failures=state.failures_since_adapt,
            )
            state.failures_since_adapt = 0
        state.concurrency = new_concurrency
        METRICS["scheduler_concurrency"].set(new_concurrency)

    def _pause_for(self, batch_results: List[PageResult]) -> float:
        if not batch_results:
            return self.config.pause_low_seconds
        failed = sum(1 for result in batch_results if not result.succeeded)
        if failed / len(batch_results) > self.config.high_failure_ratio:
            return self.config.pause_high_seconds
        return self.config.pause_low_seconds

    async def _pause(self, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    def _log_batch(self, index: int, batch_count: int, batch_results: List[PageResult], state: SchedulerState) -> None:
        snapshot = state.snapshot()
        logger.info(
            "Batch completed",
            batch=index + 1,
            batches=batch_count,
            pages=len(batch_results),
            batch_failed=sum(1 for result in batch_results if not result.succeeded),
            completed=snapshot.completed,
            total=snapshot.total,
            rate=round(snapshot.rate, 2),
            eta_seconds=None if snapshot.eta_seconds is None else round(snapshot.eta_seconds, 1),
            success_rate=round(snapshot.success_rate, 4),
            concurrency=state.concurrency,
        )
