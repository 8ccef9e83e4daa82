"""
Configuration management for Fleet Telemetry.

Uses Pydantic Settings for environment variable validation and type safety.
Values are layered: defaults, then environment (``FLEET_*`` / ``.env``),
then an optional YAML config file, then explicit overrides (CLI flags).
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from fleet_telemetry.aggregator.models import RetryPolicy
from fleet_telemetry.classification.models import Thresholds
from fleet_telemetry.records.models import EventLevel

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised for invalid configuration; fatal before any host is queried."""
    pass


class ThresholdConfig(BaseSettings):
    """Classification thresholds."""

    disk_percent: float = Field(
        default=80.0,
        ge=0.0,
        le=100.0,
        description="Disk usage percent above which a drive is flagged"
    )
    memory_percent: float = Field(
        default=90.0,
        ge=0.0,
        le=100.0,
        description="Memory usage percent above which a host is flagged"
    )
    stale_boot_days: float = Field(
        default=30.0,
        ge=0.0,
        description="Uptime in days above which a reboot is overdue"
    )

    def to_thresholds(self) -> Thresholds:
        return Thresholds(
            disk_percent=self.disk_percent,
            memory_percent=self.memory_percent,
            stale_boot_days=self.stale_boot_days,
        )

    class Config:
        env_prefix = "FLEET_THRESHOLD_"


class QueryConfig(BaseSettings):
    """Host query configuration."""

    hours_back: float = Field(
        default=24.0,
        gt=0.0,
        description="How far back to read event logs (hours)"
    )
    log_names: List[str] = Field(
        default_factory=lambda: ["System", "Application"],
        description="Event logs to read on every host"
    )
    levels: List[str] = Field(
        default_factory=lambda: ["Critical", "Error", "Warning"],
        description="Event levels to include"
    )
    event_ids: Optional[List[int]] = Field(
        default=None,
        description="Optional allow-list of event IDs"
    )
    max_records: int = Field(
        default=1000,
        ge=1,
        description="Maximum events returned per host/log query"
    )
    health_max_records: int = Field(
        default=64,
        ge=1,
        description="Maximum drives returned per health query"
    )
    message_cap: int = Field(
        default=500,
        ge=1,
        description="Maximum event message length kept after normalization"
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-query timeout in seconds"
    )
    max_concurrency: int = Field(
        default=1,
        ge=1,
        description="Maximum number of queries in flight (1 = sequential)"
    )
    deadline: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Optional deadline for the whole run in seconds"
    )
    detailed: bool = Field(
        default=False,
        description="Keep process, thread and user details on events"
    )

    @field_validator("levels")
    @classmethod
    def validate_levels(cls, v: List[str]) -> List[str]:
        """Validate and canonicalize level names."""
        if not v:
            raise ValueError("At least one event level must be selected")
        return [EventLevel.parse(level).value for level in v]

    @field_validator("log_names")
    @classmethod
    def validate_log_names(cls, v: List[str]) -> List[str]:
        names = [name.strip() for name in v if name and name.strip()]
        if not names:
            raise ValueError("At least one log name is required")
        return names

    class Config:
        env_prefix = "FLEET_QUERY_"


class RetryConfig(BaseSettings):
    """Retry policy for failed queries. A single attempt means retries are off."""

    max_attempts: int = Field(
        default=1,
        ge=1,
        description="Attempts per query, including the first one"
    )
    backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Delay before the first retry"
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the delay after every retry"
    )

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            backoff_seconds=self.backoff_seconds,
            backoff_multiplier=self.backoff_multiplier,
        )

    class Config:
        env_prefix = "FLEET_RETRY_"


class AgentConfig(BaseSettings):
    """Telemetry agent connection configuration."""

    scheme: str = Field(
        default="http",
        description="URL scheme used to reach the agent (http or https)"
    )
    port: int = Field(
        default=9182,
        ge=1,
        le=65535,
        description="Agent TCP port"
    )
    token: Optional[str] = Field(
        default=None,
        description="Bearer token sent to the agent (optional)"
    )
    verify_tls: bool = Field(
        default=True,
        description="Verify agent TLS certificates"
    )

    @field_validator("scheme")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        v = v.lower()
        if v not in ("http", "https"):
            raise ValueError("Scheme must be http or https")
        return v

    class Config:
        env_prefix = "FLEET_AGENT_"


class ExportConfig(BaseSettings):
    """Export and reporting configuration."""

    output_path: str = Field(
        default="fleet_report.csv",
        description="Path of the CSV export"
    )
    html_report: bool = Field(
        default=False,
        description="Also write an HTML report next to the CSV export"
    )
    dedup: bool = Field(
        default=False,
        description="Collapse repeated events into one row with an occurrence count"
    )

    @property
    def html_path(self) -> Path:
        """
        HTML report path: the export path with its extension replaced.

        An export that already ends in ``.html`` gets ``<stem>.report.html``
        so the report never overwrites it.
        """
        path = Path(self.output_path)
        if path.suffix.lower() == ".html":
            return path.with_name(f"{path.stem}.report.html")
        return path.with_suffix(".html")

    def check_writable(self) -> None:
        """
        Verify the export location can be written.

        Raises:
            ConfigError: If the output directory is missing or not writable
        """
        path = Path(self.output_path)
        directory = path.parent
        if path.is_dir():
            raise ConfigError(f"Output path is a directory: {path}")
        if not directory.is_dir():
            raise ConfigError(f"Output directory does not exist: {directory}")
        if not os.access(directory, os.W_OK):
            raise ConfigError(f"Output directory is not writable: {directory}")
        if path.exists() and not os.access(path, os.W_OK):
            raise ConfigError(f"Output file is not writable: {path}")

    class Config:
        env_prefix = "FLEET_EXPORT_"


class AppConfig(BaseSettings):
    """Main application configuration."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    hosts: List[str] = Field(
        default_factory=list,
        description="Hosts to query"
    )
    adapter: str = Field(
        default="agent",
        description="Host query adapter: agent or snapshot"
    )
    snapshot_dir: Optional[str] = Field(
        default=None,
        description="Directory of recorded host snapshots (snapshot adapter)"
    )

    # Nested configurations
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v

    @field_validator("adapter")
    @classmethod
    def validate_adapter(cls, v: str) -> str:
        v = v.lower()
        if v not in ("agent", "snapshot"):
            raise ValueError("Adapter must be 'agent' or 'snapshot'")
        return v

    @field_validator("hosts")
    @classmethod
    def validate_hosts(cls, v: List[str]) -> List[str]:
        """Strip blanks and drop repeated hosts, keeping first-seen order."""
        seen = []
        for host in v:
            host = host.strip()
            if host and host not in seen:
                seen.append(host)
        return seen

    def validate_for_run(self) -> None:
        """
        Checks that only matter once a run is about to start.

        Raises:
            ConfigError: On an empty host list, a snapshot adapter without
                a directory, or an unwritable output path
        """
        if not self.hosts:
            raise ConfigError("No hosts specified")
        if self.adapter == "snapshot":
            if not self.snapshot_dir:
                raise ConfigError("Snapshot adapter requires a snapshot directory")
            if not Path(self.snapshot_dir).is_dir():
                raise ConfigError(f"Snapshot directory not found: {self.snapshot_dir}")
        self.export.check_writable()

    class Config:
        env_prefix = "FLEET_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


SECTIONS = {
    "thresholds": ThresholdConfig,
    "query": QueryConfig,
    "retry": RetryConfig,
    "agent": AgentConfig,
    "export": ExportConfig,
}


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Load a YAML (or JSON) configuration file.

    Example YAML format:
        hosts: [web-01, web-02]
        thresholds:
          disk_percent: 85
        query:
          log_names: [System]
          hours_back: 12

    Raises:
        ConfigError: If the file is missing or not a mapping
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    logger.debug(f"Loaded configuration file {path}")
    return data


def load_hosts_file(path: Path) -> List[str]:
    """
    Read one host per line; blank lines and ``#`` comments are ignored.

    Raises:
        ConfigError: If the file cannot be read
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise ConfigError(f"Cannot read hosts file {path}: {e}") from e

    hosts = []
    for line in lines:
        line = line.split("#", 1)[0].strip()
        if line:
            hosts.append(line)
    return hosts


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def build_config(
    overrides: Optional[Dict[str, Any]] = None,
    config_file: Optional[Path] = None,
) -> AppConfig:
    """
    Build the application configuration.

    Args:
        overrides: Explicit values (e.g. from CLI flags), highest precedence
        config_file: Optional YAML config file

    Returns:
        AppConfig: Validated configuration

    Raises:
        ConfigError: If any value fails validation
    """
    data: Dict[str, Any] = {}
    if config_file is not None:
        data = load_config_file(config_file)
    if overrides:
        data = _merge(data, overrides)

    unknown = set(data) - set(AppConfig.model_fields)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")

    try:
        sections = {}
        for name, section_cls in SECTIONS.items():
            section_data = data.pop(name, None) or {}
            if not isinstance(section_data, dict):
                raise ConfigError(f"Configuration section '{name}' must be a mapping")
            sections[name] = section_cls(**section_data)
        return AppConfig(**data, **sections)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the global configuration instance.

    Lazily loads configuration from the environment on first access.

    Returns:
        AppConfig: The global configuration instance
    """
    global _config
    if _config is None:
        _config = build_config()
    return _config


def reload_config() -> AppConfig:
    """
    Reload configuration from environment variables.

    Useful for testing or when environment changes.

    Returns:
        AppConfig: The reloaded configuration instance
    """
    global _config
    _config = None
    return get_config()
