"""
Aggregate statistics over a fleet run.

Everything here is a pure function of the FleetRunResult; nothing is
cached or mutated, so statistics can always be recomputed.
"""

from collections import Counter
from typing import Dict, List

from pydantic import BaseModel, Field

from fleet_telemetry.adapters.base import QueryFailure
from fleet_telemetry.aggregator.models import FleetRunResult
from fleet_telemetry.classification.models import Status
from fleet_telemetry.records.models import LogEventRecord


class CountEntry(BaseModel):
    """One group in a count breakdown."""

    key: str
    count: int


class HostSummary(BaseModel):
    """One host's line in the summary table."""

    host: str
    status: Status
    total: int = 0
    ok_count: int = 0
    warning_count: int = 0
    error_count: int = 0
    critical_count: int = 0
    logs_processed: int = 0
    logs_skipped: int = 0


class AggregateStats(BaseModel):
    """
    Derived view of a run.

    Every breakdown is sorted by descending count, ties broken by
    ascending key.
    """

    total_records: int = 0
    hosts_total: int = 0
    hosts_failed: int = 0
    hosts_unreachable: int = 0
    by_status: List[CountEntry] = Field(default_factory=list)
    by_level: List[CountEntry] = Field(default_factory=list)
    by_source: List[CountEntry] = Field(default_factory=list)
    by_event_id: List[CountEntry] = Field(default_factory=list)
    hosts: List[HostSummary] = Field(default_factory=list)
    failures: List[QueryFailure] = Field(default_factory=list)


def sort_counts(counts: Dict[str, int]) -> List[CountEntry]:
    """Sort by descending count, then ascending key."""
    return [
        CountEntry(key=key, count=count)
        for key, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]


def top_n(entries: List[CountEntry], n: int) -> List[CountEntry]:
    return entries[: max(n, 0)]


def summarize(result: FleetRunResult) -> AggregateStats:
    """
    Compute aggregate statistics for a run.

    Counts are weighted by occurrences, so a deduplicated run yields the
    same numbers as the original.
    """
    by_status: Counter = Counter()
    by_level: Counter = Counter()
    by_source: Counter = Counter()
    by_event_id: Counter = Counter()

    for item in result.iter_records():
        by_status[item.verdict.status.value] += item.occurrences
        record = item.record
        if isinstance(record, LogEventRecord):
            by_level[record.level.value] += item.occurrences
            by_source[record.source] += item.occurrences
            by_event_id[str(record.event_id)] += item.occurrences

    hosts = []
    hosts_failed = hosts_unreachable = 0
    for host_result in result.per_host.values():
        counters = host_result.counters
        if host_result.query_errors:
            hosts_failed += 1
            if counters.logs_processed == 0:
                hosts_unreachable += 1
        hosts.append(
            HostSummary(
                host=host_result.host,
                status=host_result.status,
                **counters.model_dump(),
            )
        )

    return AggregateStats(
        total_records=result.total_records,
        hosts_total=len(result.per_host),
        hosts_failed=hosts_failed,
        hosts_unreachable=hosts_unreachable,
        by_status=sort_counts(by_status),
        by_level=sort_counts(by_level),
        by_source=sort_counts(by_source),
        by_event_id=sort_counts(by_event_id),
        hosts=hosts,
        failures=result.failures,
    )


def format_summary(result: FleetRunResult, stats: AggregateStats, top: int = 10) -> List[str]:
    """
    Render the summary as plain text lines for the console.

    Every failed query is listed individually.
    """
    lines = [
        f"Hosts: {stats.hosts_total}  "
        f"(failed queries on {stats.hosts_failed}, unreachable {stats.hosts_unreachable})",
        f"Records: {stats.total_records}  Duration: {result.duration_seconds:.1f}s"
        + ("  [deadline reached]" if result.cancelled else ""),
        "",
        f"{'Host':<24} {'Status':<10} {'Total':>6} {'Crit':>5} {'Err':>5} "
        f"{'Warn':>5} {'OK':>5} {'Done':>5} {'Skip':>5}",
        "-" * 80,
    ]
    for host in stats.hosts:
        lines.append(
            f"{host.host:<24} {host.status.value:<10} {host.total:>6} {host.critical_count:>5} "
            f"{host.error_count:>5} {host.warning_count:>5} {host.ok_count:>5} "
            f"{host.logs_processed:>5} {host.logs_skipped:>5}"
        )

    for title, entries in (
        ("By status", stats.by_status),
        ("By level", stats.by_level),
        (f"Top {top} sources", top_n(stats.by_source, top)),
        (f"Top {top} event IDs", top_n(stats.by_event_id, top)),
    ):
        if not entries:
            continue
        lines.append("")
        lines.append(f"{title}:")
        for entry in entries:
            lines.append(f"  {entry.key:<40} {entry.count:>6}")

    if stats.failures:
        lines.append("")
        lines.append(f"Failed queries ({len(stats.failures)}):")
        for failure in stats.failures:
            lines.append(f"  {failure.describe()}")

    return lines
