"""Configuration models and loaders."""

from .config import (
    Config,
    FetcherConfig,
    MonitoringConfig,
    SchedulerConfig,
    SourceConfig,
    StorageConfig,
    find_config_file,
    load_config,
    settings,
)

__all__ = [
    "Config",
    "FetcherConfig",
    "MonitoringConfig",
    "SchedulerConfig",
    "SourceConfig",
    "StorageConfig",
    "find_config_file",
    "load_config",
    "settings",
]
