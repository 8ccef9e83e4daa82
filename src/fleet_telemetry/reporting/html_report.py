"""
HTML report for a fleet run.
"""

import html
import logging
from pathlib import Path
from typing import List, Optional

from fleet_telemetry.aggregator.models import ClassifiedRecord, FleetRunResult
from fleet_telemetry.records.models import HealthRecord

from .exporter import ExportError
from .summary import AggregateStats, CountEntry, summarize, top_n

logger = logging.getLogger(__name__)

STATUS_CLASSES = {
    "OK": "ok",
    "WARNING": "warning",
    "ATTENTION": "attention",
    "ERROR": "error",
}

STYLES = """
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: #fafafa;
            color: #222;
            margin: 0;
            padding: 2rem;
        }
        h1 { margin-top: 0; }
        table { border-collapse: collapse; margin-bottom: 2rem; width: 100%; }
        th, td { border: 1px solid #ddd; padding: 0.35rem 0.6rem; text-align: left; }
        th { background: #333; color: #fff; }
        .ok { color: #2e7d32; }
        .warning { color: #ef6c00; font-weight: bold; }
        .attention { color: #c62828; font-weight: bold; }
        .error { background: #ffebee; color: #b71c1c; font-weight: bold; }
        .meta { color: #666; margin-bottom: 1.5rem; }
"""


def _status_cell(status: str) -> str:
    css = STATUS_CLASSES.get(status, "")
    return f'<td class="{css}">{html.escape(status)}</td>'


def _counts_table(title: str, entries: List[CountEntry]) -> str:
    if not entries:
        return ""
    rows = "".join(
        f"<tr><td>{html.escape(e.key)}</td><td>{e.count}</td></tr>" for e in entries
    )
    return (
        f"<h2>{html.escape(title)}</h2>"
        f"<table><tr><th>Key</th><th>Count</th></tr>{rows}</table>"
    )


def _health_rows(records: List[ClassifiedRecord]) -> str:
    rows = []
    for item in records:
        r = item.record
        rows.append(
            "<tr>"
            f"<td>{html.escape(r.host)}</td>"
            f"<td>{html.escape(r.drive_id)}</td>"
            f"<td>{r.disk_used_percent}%</td>"
            f"<td>{r.mem_used_percent}%</td>"
            f"<td>{r.uptime_days}</td>"
            f"{_status_cell(item.verdict.status.value)}"
            f"<td>{html.escape('; '.join(item.verdict.reasons))}</td>"
            "</tr>"
        )
    return "".join(rows)


def _event_rows(records: List[ClassifiedRecord]) -> str:
    rows = []
    for item in records:
        r = item.record
        rows.append(
            "<tr>"
            f"<td>{html.escape(r.host)}</td>"
            f"<td>{html.escape(r.timestamp_utc.isoformat())}</td>"
            f"<td>{html.escape(r.log_name)}</td>"
            f"<td>{html.escape(r.level.value)}</td>"
            f"<td>{r.event_id}</td>"
            f"<td>{html.escape(r.source)}</td>"
            f"<td>{item.occurrences}</td>"
            f"<td>{html.escape(r.message)}</td>"
            "</tr>"
        )
    return "".join(rows)


def render_html_report(
    result: FleetRunResult,
    stats: Optional[AggregateStats] = None,
    top: int = 10,
) -> str:
    """
    Render a self-contained HTML report.

    Pure: reads the run result only.
    """
    stats = stats or summarize(result)
    records = list(result.iter_records())
    health = [item for item in records if isinstance(item.record, HealthRecord)]
    events = [item for item in records if not isinstance(item.record, HealthRecord)]

    host_rows = "".join(
        "<tr>"
        f"<td>{html.escape(h.host)}</td>"
        f"{_status_cell(h.status.value)}"
        f"<td>{h.total}</td><td>{h.critical_count}</td><td>{h.error_count}</td>"
        f"<td>{h.warning_count}</td><td>{h.ok_count}</td>"
        f"<td>{h.logs_processed}</td><td>{h.logs_skipped}</td>"
        "</tr>"
        for h in stats.hosts
    )

    failure_rows = "".join(
        "<tr>"
        f"<td>{html.escape(f.host)}</td><td>{html.escape(f.query)}</td>"
        f"{_status_cell('ERROR')}<td>{html.escape(f.kind.value)}</td>"
        f"<td>{html.escape(f.message)}</td>"
        "</tr>"
        for f in stats.failures
    )

    sections = [
        "<h2>Hosts</h2>"
        "<table><tr><th>Host</th><th>Status</th><th>Total</th><th>Critical</th>"
        "<th>Error</th><th>Warning</th><th>OK</th><th>Queries done</th>"
        f"<th>Queries skipped</th></tr>{host_rows}</table>",
    ]
    if failure_rows:
        sections.append(
            "<h2>Failed queries</h2>"
            "<table><tr><th>Host</th><th>Query</th><th>Status</th><th>Kind</th>"
            f"<th>Message</th></tr>{failure_rows}</table>"
        )
    if health:
        sections.append(
            "<h2>System health</h2>"
            "<table><tr><th>Host</th><th>Drive</th><th>Disk used</th><th>Memory used</th>"
            "<th>Uptime (days)</th><th>Status</th><th>Reasons</th></tr>"
            f"{_health_rows(health)}</table>"
        )
    sections.append(_counts_table("By level", stats.by_level))
    sections.append(_counts_table(f"Top {top} sources", top_n(stats.by_source, top)))
    sections.append(_counts_table(f"Top {top} event IDs", top_n(stats.by_event_id, top)))
    if events:
        sections.append(
            "<h2>Events</h2>"
            "<table><tr><th>Host</th><th>Time (UTC)</th><th>Log</th><th>Level</th>"
            "<th>Event ID</th><th>Source</th><th>Count</th><th>Message</th></tr>"
            f"{_event_rows(events)}</table>"
        )

    generated = html.escape(result.completed_at.isoformat())
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Fleet Telemetry Report</title>
    <style>{STYLES}</style>
</head>
<body>
    <h1>Fleet Telemetry Report</h1>
    <div class="meta">Generated {generated} &middot; {stats.hosts_total} host(s) &middot;
        {stats.total_records} record(s){' &middot; deduplicated' if result.deduplicated else ''}</div>
    {''.join(sections)}
</body>
</html>
"""


def write_html_report(
    result: FleetRunResult,
    path: Path,
    stats: Optional[AggregateStats] = None,
) -> Path:
    """
    Write the HTML report.

    Raises:
        ExportError: If the file cannot be written
    """
    path = Path(path)
    content = render_html_report(result, stats)
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        raise ExportError(f"Failed to write HTML report {path}: {e}") from e

    logger.info(f"HTML report written to {path}")
    return path
