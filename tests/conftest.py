"""
Shared test configuration for PropHarvest.

Fixtures build configurations with every delay set to zero so no test
sleeps, and with checkpoint and output directories under ``tmp_path``.
"""

import logging
from pathlib import Path
from typing import Callable

import pytest
import structlog

from propharvest.config.config import (
    Config,
    FetcherConfig,
    SchedulerConfig,
    SourceConfig,
    StorageConfig,
)
from tests.helpers.listing import BASE_URL, SITE_ORIGIN, page_with_serials

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")


# ============================================================================
# Configuration Fixtures
# ============================================================================


def make_scheduler_config(**overrides) -> SchedulerConfig:
    values = {
        "batch_size": 5,
        "initial_concurrency": 4,
        "request_delay_seconds": 0.0,
        "pause_low_seconds": 0.0,
        "pause_high_seconds": 0.0,
    }
    values.update(overrides)
    return SchedulerConfig(**values)


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    return make_scheduler_config()


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Config pointed at a fake host with zero delays and temp storage."""
    return Config(
        source=SourceConfig(base_url=BASE_URL, site_origin=SITE_ORIGIN, total_pages=20),
        fetcher=FetcherConfig(timeout=5.0, max_retries=3, backoff_base_seconds=0.0, backoff_cap_seconds=0.0),
        scheduler=make_scheduler_config(),
        storage=StorageConfig(pages_dir=tmp_path / "pages", output_dir=tmp_path / "out"),
    )



@pytest.fixture
def listing_page() -> Callable[..., str]:
    """Builder for a listing page holding one qualifying row per serial."""
    return page_with_serials


@pytest.fixture
def restore_logging():
    """Undo ``configure_logging`` side effects on the root logger and structlog."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()
