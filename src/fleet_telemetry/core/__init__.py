"""
Core configuration for Fleet Telemetry.
"""

from .config import (
    AgentConfig,
    AppConfig,
    ConfigError,
    ExportConfig,
    QueryConfig,
    RetryConfig,
    ThresholdConfig,
    get_config,
    load_config_file,
    reload_config,
)

__all__ = [
    "AgentConfig",
    "AppConfig",
    "ConfigError",
    "ExportConfig",
    "QueryConfig",
    "RetryConfig",
    "ThresholdConfig",
    "get_config",
    "load_config_file",
    "reload_config",
]
