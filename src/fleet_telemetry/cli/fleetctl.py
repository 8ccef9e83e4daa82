#!/usr/bin/env python3
"""
fleetctl - Fleet Telemetry command line interface

A point-in-time batch tool for Windows fleets:
- System health: disk, memory and uptime (fleetctl health)
- Event-log aggregation and filtering (fleetctl events)
- Both in one pass (fleetctl run)
- Version info (fleetctl version)
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from fleet_telemetry import __version__, get_log_level
from fleet_telemetry.adapters import HostQueryAdapter, HttpAgentAdapter, SnapshotAdapter
from fleet_telemetry.aggregator import FleetAggregator, FleetRunResult, plan_queries
from fleet_telemetry.core.config import AppConfig, ConfigError, build_config, load_hosts_file
from fleet_telemetry.records import HostTarget, RecordNormalizer
from fleet_telemetry.records.normalizer import utc_now
from fleet_telemetry.reporting import (
    AggregateStats,
    ExportError,
    export_csv,
    format_summary,
    summarize,
    write_html_report,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2
EXIT_EXPORT_ERROR = 3


class Colors:
    """ANSI color codes for terminal output."""

    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


def colorize(text: str, color: str) -> str:
    """Colorize text if stdout is a TTY."""
    if sys.stdout.isatty():
        return f"{color}{text}{Colors.RESET}"
    return text


def setup_logging(log_level: str) -> None:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _split(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _split_ints(value: Optional[str], option: str) -> Optional[List[int]]:
    parts = _split(value)
    if parts is None:
        return None
    try:
        return [int(part) for part in parts]
    except ValueError as e:
        raise ConfigError(f"{option} expects comma-separated integers, got '{value}'") from e


def _set(target: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        target[key] = value


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Translate CLI flags into configuration overrides.

    Flags left unset do not override the environment or config file.
    """
    overrides: Dict[str, Any] = {}

    hosts: List[str] = []
    if getattr(args, "hosts_file", None):
        hosts.extend(load_hosts_file(Path(args.hosts_file)))
    if getattr(args, "hosts", None):
        hosts.extend(_split(args.hosts))
    if hosts:
        overrides["hosts"] = hosts

    _set(overrides, "log_level", getattr(args, "log_level", None))
    _set(overrides, "adapter", getattr(args, "adapter", None))
    _set(overrides, "snapshot_dir", getattr(args, "snapshot_dir", None))

    thresholds: Dict[str, Any] = {}
    _set(thresholds, "disk_percent", getattr(args, "disk_threshold", None))
    _set(thresholds, "memory_percent", getattr(args, "memory_threshold", None))
    _set(thresholds, "stale_boot_days", getattr(args, "stale_boot_days", None))

    query: Dict[str, Any] = {}
    _set(query, "hours_back", getattr(args, "hours", None))
    _set(query, "log_names", _split(getattr(args, "logs", None)))
    _set(query, "levels", _split(getattr(args, "levels", None)))
    _set(query, "event_ids", _split_ints(getattr(args, "event_ids", None), "--event-ids"))
    _set(query, "max_records", getattr(args, "max_records", None))
    _set(query, "message_cap", getattr(args, "message_cap", None))
    _set(query, "detailed", getattr(args, "detailed", None))
    _set(query, "timeout", getattr(args, "timeout", None))
    _set(query, "max_concurrency", getattr(args, "concurrency", None))
    _set(query, "deadline", getattr(args, "deadline", None))

    retry: Dict[str, Any] = {}
    retries = getattr(args, "retries", None)
    if retries is not None:
        retry["max_attempts"] = retries + 1
    _set(retry, "backoff_seconds", getattr(args, "backoff", None))

    agent: Dict[str, Any] = {}
    _set(agent, "port", getattr(args, "agent_port", None))
    _set(agent, "scheme", getattr(args, "agent_scheme", None))

    export: Dict[str, Any] = {}
    _set(export, "output_path", getattr(args, "output", None))
    _set(export, "html_report", getattr(args, "html_report", None))
    _set(export, "dedup", getattr(args, "dedup", None))

    for name, section in (
        ("thresholds", thresholds),
        ("query", query),
        ("retry", retry),
        ("agent", agent),
        ("export", export),
    ):
        if section:
            overrides[name] = section
    return overrides


def load_app_config(args: argparse.Namespace) -> AppConfig:
    """
    Build and validate the configuration for a run.

    Raises:
        ConfigError: On any invalid value, before any host is queried
    """
    config_file = Path(args.config) if getattr(args, "config", None) else None
    config = build_config(overrides=build_overrides(args), config_file=config_file)
    config.validate_for_run()
    return config


def create_adapter(config: AppConfig) -> HostQueryAdapter:
    """Create the host query adapter selected by the configuration."""
    if config.adapter == "snapshot":
        return SnapshotAdapter(Path(config.snapshot_dir))
    return HttpAgentAdapter(
        port=config.agent.port,
        scheme=config.agent.scheme,
        token=config.agent.token,
        timeout=config.query.timeout,
        verify_tls=config.agent.verify_tls,
    )


def create_aggregator(config: AppConfig, adapter: HostQueryAdapter) -> FleetAggregator:
    return FleetAggregator(
        adapter=adapter,
        normalizer=RecordNormalizer(
            message_cap=config.query.message_cap,
            detailed=config.query.detailed,
        ),
        max_concurrency=config.query.max_concurrency,
        timeout=config.query.timeout,
        deadline=config.query.deadline,
        retry=config.retry.to_policy(),
        dedup=config.export.dedup,
    )


async def collect(
    config: AppConfig,
    include_health: bool,
    include_events: bool,
    adapter: Optional[HostQueryAdapter] = None,
) -> FleetRunResult:
    """
    Query the fleet described by the configuration.

    Args:
        config: Validated configuration
        include_health: Run the health query
        include_events: Run one query per configured event log
        adapter: Adapter to use instead of the configured one

    Returns:
        FleetRunResult
    """
    specs = plan_queries(
        log_names=config.query.log_names,
        levels=config.query.levels,
        hours_back=config.query.hours_back,
        event_ids=config.query.event_ids,
        max_records=config.query.max_records,
        include_health=include_health,
        include_events=include_events,
        health_max_records=config.query.health_max_records,
        now=utc_now(),
    )
    hosts = [HostTarget(name=name) for name in config.hosts]

    async with (adapter or create_adapter(config)) as active_adapter:
        aggregator = create_aggregator(config, active_adapter)
        return await aggregator.run(hosts, specs, config.thresholds.to_thresholds())


def print_summary(result: FleetRunResult, stats: AggregateStats) -> None:
    print(colorize("\nFleet Telemetry Summary", Colors.BOLD))
    print(colorize("=" * 80, Colors.BOLD))
    for line in format_summary(result, stats):
        print(line)
    print()

    if stats.failures:
        print(colorize(f"! {len(stats.failures)} quer(ies) failed; see the list above", Colors.YELLOW))
    else:
        print(colorize("✓ All queries completed", Colors.GREEN))


def write_outputs(result: FleetRunResult, stats: AggregateStats, config: AppConfig) -> None:
    """
    Write the CSV export and, if enabled, the HTML report.

    Raises:
        ExportError: If a file cannot be written
    """
    output_path = Path(config.export.output_path)
    rows = export_csv(result, output_path)
    print(f"Exported {rows} row(s) to {output_path}")

    if config.export.html_report:
        html_path = write_html_report(result, config.export.html_path, stats)
        print(f"HTML report written to {html_path}")


def cmd_collect(args: argparse.Namespace, include_health: bool, include_events: bool) -> int:
    """
    Run a collection and report it.

    Returns:
        Exit code: 0 for a completed run (even with failed hosts),
        2 for configuration errors, 3 when the export cannot be written
    """
    try:
        config = load_app_config(args)
    except ConfigError as e:
        print(colorize(f"✗ Configuration error: {e}", Colors.RED), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    result = asyncio.run(collect(config, include_health, include_events))
    stats = summarize(result)
    print_summary(result, stats)

    try:
        write_outputs(result, stats, config)
    except ExportError as e:
        print(colorize(f"✗ {e}", Colors.RED), file=sys.stderr)
        return EXIT_EXPORT_ERROR

    return EXIT_OK


def cmd_version(args: argparse.Namespace) -> int:
    """
    Print version information.

    Returns:
        Exit code (always 0)
    """
    print(f"fleetctl version {__version__}")
    print("Fleet Telemetry - health and event-log aggregation for Windows fleets")
    return EXIT_OK


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--hosts", help="Comma-separated list of hosts")
    parser.add_argument("--hosts-file", help="File with one host per line")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument(
        "--adapter",
        choices=["agent", "snapshot"],
        help="Host query adapter (default: agent)",
    )
    parser.add_argument("--snapshot-dir", help="Snapshot directory for the snapshot adapter")
    parser.add_argument("--agent-port", type=int, help="Telemetry agent port (default: 9182)")
    parser.add_argument("--agent-scheme", choices=["http", "https"], help="Telemetry agent scheme")
    parser.add_argument("--output", "-o", help="CSV export path (default: fleet_report.csv)")
    parser.add_argument(
        "--html-report",
        action="store_true",
        default=None,
        help="Also write an HTML report next to the CSV export",
    )
    parser.add_argument("--concurrency", type=int, help="Maximum queries in flight (default: 1)")
    parser.add_argument("--timeout", type=float, help="Per-query timeout in seconds (default: 30)")
    parser.add_argument("--deadline", type=float, help="Deadline for the whole run in seconds")
    parser.add_argument("--retries", type=int, help="Retries for unreachable or timed-out queries (default: 0)")
    parser.add_argument("--backoff", type=float, help="Delay before the first retry in seconds")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")


def _add_health_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--disk-threshold", type=float, help="Disk usage warning threshold in percent (default: 80)")
    parser.add_argument("--memory-threshold", type=float, help="Memory usage warning threshold in percent (default: 90)")
    parser.add_argument("--stale-boot-days", type=float, help="Uptime in days that needs attention (default: 30)")


def _add_event_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--hours", type=float, help="Hours of event history to read (default: 24)")
    parser.add_argument("--logs", help="Comma-separated event logs (default: System,Application)")
    parser.add_argument("--levels", help="Comma-separated levels (default: Critical,Error,Warning)")
    parser.add_argument("--event-ids", help="Comma-separated event ID allow-list")
    parser.add_argument("--max-records", type=int, help="Maximum events per host and log (default: 1000)")
    parser.add_argument("--message-cap", type=int, help="Maximum message length (default: 500)")
    parser.add_argument(
        "--detailed",
        action="store_true",
        default=None,
        help="Include process, thread and user details",
    )
    parser.add_argument(
        "--dedup",
        action="store_true",
        default=None,
        help="Collapse events sharing event ID, source and host",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for fleetctl."""
    parser = argparse.ArgumentParser(
        description="Fleet Telemetry command line interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  fleetctl health --hosts web-01,web-02 --disk-threshold 85
  fleetctl events --hosts-file hosts.txt --logs System --hours 12 --dedup
  fleetctl run --config fleet.yaml --html-report
  fleetctl version

Environment variables:
  FLEET_LOG_LEVEL                    # Logging level (default: INFO)
  FLEET_AGENT_TOKEN                  # Bearer token for the telemetry agent
  FLEET_QUERY_*, FLEET_THRESHOLD_*   # Any query or threshold setting
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    health_parser = subparsers.add_parser("health", help="Collect disk, memory and uptime health")
    _add_common_arguments(health_parser)
    _add_health_arguments(health_parser)

    events_parser = subparsers.add_parser("events", help="Aggregate and filter event-log records")
    _add_common_arguments(events_parser)
    _add_event_arguments(events_parser)

    run_parser = subparsers.add_parser("run", help="Collect health and events in one pass")
    _add_common_arguments(run_parser)
    _add_health_arguments(run_parser)
    _add_event_arguments(run_parser)

    subparsers.add_parser("version", help="Show version information")

    return parser


def main(argv=None):
    """Main entry point for fleetctl CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_OK

    setup_logging(getattr(args, "log_level", None) or get_log_level())

    # Dispatch to command handlers
    if args.command == "health":
        return cmd_collect(args, include_health=True, include_events=False)
    elif args.command == "events":
        return cmd_collect(args, include_health=False, include_events=True)
    elif args.command == "run":
        return cmd_collect(args, include_health=True, include_events=True)
    elif args.command == "version":
        return cmd_version(args)
    else:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
