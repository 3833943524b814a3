"""
PropHarvest crawler - page fetching and adaptive batch scheduling.

Key Features:
- One request per attempt with a freshly rotated User-Agent
- Capped exponential backoff (base 2s, cap 10s, 3 retries)
- Write-through checkpointing of every fetched page
- Strictly sequential batches with a bounded worker pool per batch
- Multiplicative concurrency reduction when failures pile up
"""

from .batch_scheduler import BatchScheduler, SchedulerState, next_concurrency, split_batches
from .http_client import PageFetcher, build_page_url, compute_backoff_delay
from .user_agents import UserAgentRotator

__all__ = [
    "BatchScheduler",
    "PageFetcher",
    "SchedulerState",
    "UserAgentRotator",
    "build_page_url",
    "compute_backoff_delay",
    "next_concurrency",
    "split_batches",
]
