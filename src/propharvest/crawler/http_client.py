"""
HTTP page fetcher with header rotation, capped exponential backoff and write-through checkpointing.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from propharvest.config.config import Config
from propharvest.errors import TransientFetchError
from propharvest.extractor.property_extractor import PropertyExtractor
from propharvest.observability.metrics import METRICS
from propharvest.protocols import PageResult, PageStatus
from propharvest.storage.page_store import PageCheckpointStore

from .user_agents import UserAgentRotator

logger = structlog.get_logger(__name__)


def build_page_url(base_url: str, page_number: int, page_param: str = "pageno") -> str:
    """Page 1 is the bare endpoint; every other page carries the page number as a query parameter."""
    if page_number == 1:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{page_param}={page_number}"


def compute_backoff_delay(attempt: int, base: float = 2.0, cap: float = 10.0) -> float:
    """Delay to wait after the failed ``attempt`` (0-based): ``min(cap, base * 2**attempt)``."""
    return min(cap, base * (2**attempt))


class PageFetcher:
    """
    Fetches numbered listing pages.

    ``fetch`` performs exactly one request and raises ``TransientFetchError``
    on timeouts, transport errors and HTTP statuses >= 400. ``fetch_page``
    wraps it with the retry policy, checkpoints the raw page and extracts its
    records; exhausting the retries yields an empty ``EXHAUSTED`` result
    rather than an exception.
    """

    def __init__(
        self,
        config: Config,
        store: Optional[PageCheckpointStore] = None,
        extractor: Optional[PropertyExtractor] = None,
        rotator: Optional[UserAgentRotator] = None,
    ) -> None:
        self.config = config
        self.source_config = config.source
        self.fetcher_config = config.fetcher
        self.store = store
        self.extractor = extractor or PropertyExtractor(config.source.site_origin)
        self.rotator = rotator or UserAgentRotator()

        self.proxies: List[str] = list(self.fetcher_config.proxies)
        self._proxy_index = 0

        self.session: Optional[aiohttp.ClientSession] = None
        self._in_flight = 0

    async def initialize(self) -> None:
        """Open the HTTP session."""
        if self.session is None:
            connector = aiohttp.TCPConnector(limit=0, ttl_dns_cache=30, keepalive_timeout=30)
            self.session = aiohttp.ClientSession(connector=connector)
            logger.info(
                "Page fetcher initialized",
                base_url=self.source_config.base_url,
                timeout=self.fetcher_config.timeout,
                max_retries=self.fetcher_config.max_retries,
                proxies_count=len(self.proxies),
            )

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None
            logger.info("Page fetcher closed")

    async def __aenter__(self) -> "PageFetcher":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def page_url(self, page_number: int) -> str:
        return build_page_url(self.source_config.base_url, page_number, self.source_config.page_param)

    def _get_next_proxy(self) -> Optional[str]:
        if not self.proxies:
            return None
        proxy = self.proxies[self._proxy_index % len(self.proxies)]
        self._proxy_index += 1
        return proxy

    async def fetch(self, page_number: int, attempt: int = 0) -> str:
        """Perform one request for one page and return its raw content."""
        if self.session is None:
            raise RuntimeError("Page fetcher not initialized. Call initialize() first.")

        url = self.page_url(page_number)
        kwargs: Dict[str, Any] = {"headers": self.rotator.build_headers()}
        proxy = self._get_next_proxy()
        if proxy:
            kwargs["proxy"] = proxy

        start_time = time.monotonic()
        try:
            async with asyncio.timeout(self.fetcher_config.timeout):
                async with self.session.get(url, **kwargs) as response:
                    if response.status >= 400:
                        raise TransientFetchError(page_number, attempt, f"HTTP {response.status}", response.status)
                    content = await response.text(errors="replace")
        except TransientFetchError:
            raise
        except TimeoutError as e:
            raise TransientFetchError(
                page_number, attempt, f"timed out after {self.fetcher_config.timeout}s"
            ) from e
        except aiohttp.ClientError as e:
            raise TransientFetchError(page_number, attempt, f"{type(e).__name__}: {e}") from e

        METRICS["fetch_latency_seconds"].observe(time.monotonic() - start_time)
        return content

    async def fetch_page(self, page_number: int) -> PageResult:
        """Fetch, checkpoint and extract one page, retrying transient faults."""
        max_retries = self.fetcher_config.max_retries
        last_error: Optional[str] = None

        self._in_flight += 1
        METRICS["pages_in_flight"].set(self._in_flight)
        try:
            for attempt in range(max_retries + 1):
                try:
                    content = await self.fetch(page_number, attempt)
                except TransientFetchError as e:
                    last_error = e.reason
                    if attempt >= max_retries:
                        break
                    delay = compute_backoff_delay(
                        attempt,
                        self.fetcher_config.backoff_base_seconds,
                        self.fetcher_config.backoff_cap_seconds,
                    )
                    logger.warning(
                        "Retrying page",
                        page=page_number,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay=delay,
                        error=e.reason,
                    )
                    METRICS["fetch_retries_total"].inc()
                    await asyncio.sleep(delay)
                    continue

                # Checkpoint coverage tracks fetched pages, including pages with zero rows.
                if self.store is not None:
                    await asyncio.to_thread(self.store.put, page_number, content)

                records = await asyncio.to_thread(self.extractor.extract, content)
                METRICS["records_extracted_total"].inc(len(records))
                logger.info("Page fetched", page=page_number, records=len(records), attempts=attempt + 1)
                return PageResult(
                    page_number=page_number,
                    status=PageStatus.SUCCESS,
                    records=records,
                    attempts=attempt + 1,
                )

            logger.error("Page retries exhausted", page=page_number, attempts=max_retries + 1, error=last_error)
            return PageResult(
                page_number=page_number,
                status=PageStatus.EXHAUSTED,
                records=[],
                attempts=max_retries + 1,
                error=last_error,
            )
        finally:
            self._in_flight -= 1
            METRICS["pages_in_flight"].set(self._in_flight)
