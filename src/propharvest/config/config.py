"""
Configuration management for PropHarvest using Pydantic.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, ClassVar, List, cast

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Setup Logging ---
log = logging.getLogger(__name__)


def _default_concurrency() -> int:
    return max(3, (os.cpu_count() or 1) * 2)


# --- Nested Configuration Models ---


class SourceConfig(BaseModel):
    """The remote paginated listing."""

    base_url: str = Field(
        default="https://www.jhansipropertytax.com/listName.php",
        description="Listing endpoint. Page 1 is fetched from the bare URL.",
    )
    site_origin: str = Field(
        default="https://www.jhansipropertytax.com/",
        description="Origin that relative detail-view links are resolved against.",
    )
    page_param: str = Field(default="pageno", description="Query parameter carrying the page number.")
    total_pages: int = Field(default=7022, description="Number of pages in the dataset.")

    @field_validator("total_pages")
    @classmethod
    def validate_total_pages(cls, v: int) -> int:
        if v < 1:
            raise ValueError("total_pages must be at least 1")
        return v

    @field_validator("site_origin")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        return v if v.endswith("/") else f"{v}/"


class FetcherConfig(BaseModel):
    """Per-page fetch and retry behaviour."""

    timeout: float = Field(default=15.0, description="HTTP request timeout in seconds.")
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt.")
    backoff_base_seconds: float = Field(default=2.0, ge=0, description="Base of the exponential backoff.")
    backoff_cap_seconds: float = Field(default=10.0, ge=0, description="Upper bound for a single backoff delay.")
    proxies: List[str] = Field(default_factory=list, description="Optional proxy URLs, rotated round-robin.")


class SchedulerConfig(BaseModel):
    """Batch scheduling and adaptive concurrency."""

    batch_size: int = Field(default=50, description="Pages per batch.")
    initial_concurrency: int = Field(default_factory=_default_concurrency, ge=1)
    request_delay_seconds: float = Field(default=0.1, ge=0, description="Delay before every page fetch.")
    failure_threshold: int = Field(default=10, ge=0, description="Failures since last adaptation that trigger a cut.")
    concurrency_decay: float = Field(default=0.7, description="Multiplicative concurrency reduction.")
    min_concurrency: int = Field(default=3, ge=1, description="Floor for adaptive concurrency.")
    pause_low_seconds: float = Field(default=0.5, ge=0, description="Inter-batch pause under low failure rate.")
    pause_high_seconds: float = Field(default=2.0, ge=0, description="Inter-batch pause under high failure rate.")
    high_failure_ratio: float = Field(default=0.1, ge=0, le=1, description="Batch failure ratio considered high.")

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("batch_size must be at least 1")
        return v

    @field_validator("concurrency_decay")
    @classmethod
    def validate_decay(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("concurrency_decay must be in (0, 1]")
        return v


class StorageConfig(BaseModel):
    """Where raw pages and output artifacts live."""

    pages_dir: Path = Field(default=Path("pages"), description="Directory holding page-NNNN.txt checkpoints.")
    output_dir: Path = Field(default=Path("."), description="Directory receiving JSON artifacts.")


class WebUIConfig(BaseModel):
    """Configuration for the HTTP API."""

    host: str = Field(default="127.0.0.1", description="Host for the web server.")
    port: int = Field(default=3000, description="Port for the web server.")


class MonitoringConfig(BaseModel):
    """Configuration for logging and the HTTP API."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")
    web_ui: WebUIConfig = Field(default_factory=WebUIConfig)

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "PropHarvest"
    version: str = "0.1.0"
    source: SourceConfig = Field(default_factory=SourceConfig)
    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="PROPHARVEST_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for path in (current_dir / "config.yaml", current_dir / "config.yml"):
        if path.exists():
            return path
    return None


def load_config(path: Path | None = None) -> Config:
    """Load configuration from an explicit path, a discovered file, or defaults."""
    config_path = path or find_config_file()
    if config_path is None:
        return Config()
    return Config.from_yaml(config_path)



# --- Lazy Configuration Loader ---


class LazyConfig:
    """
    Proxy for the process-wide Config. The file lookup and validation run on
    first attribute access, not at import time.
    """

    _config: ClassVar[Config | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __getattr__(self, name: str) -> Any:
        if self.__class__._config is None:
            with self.__class__._lock:
                if self.__class__._config is None:
                    self.__class__._config = self._load_with_fallback()
        return getattr(self.__class__._config, name)

    @classmethod
    def reset(cls) -> None:
        """Drop the cached Config so the next access reloads it."""
        with cls._lock:
            cls._config = None

    @staticmethod
    def _load_with_fallback() -> Config:
        config_path = find_config_file()
        if config_path is None:
            log.info("No config file found. Using default settings.")
            return Config()
        try:
            log.info("Lazy loading configuration from: %s", config_path)
            return Config.from_yaml(config_path)
        except (ValidationError, yaml.YAMLError) as e:
            log.error("Invalid configuration in '%s': %s. Falling back to default settings.", config_path, e)
            return Config()


settings: Config = cast(Config, LazyConfig())
