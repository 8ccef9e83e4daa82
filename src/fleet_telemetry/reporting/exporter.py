"""
CSV export of a fleet run.

One row per record, a fixed column order shared by both record kinds;
columns that do not apply to a record are left empty.
"""

import csv
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Union

from fleet_telemetry.aggregator.models import ClassifiedRecord, FleetRunResult
from fleet_telemetry.records.models import HealthRecord, LogEventRecord

logger = logging.getLogger(__name__)

COLUMNS = [
    "host",
    "domain",
    "timestamp_utc",
    "status",
    "reasons",
    "occurrences",
    # Health
    "drive_id",
    "disk_used_percent",
    "disk_free_bytes",
    "disk_total_bytes",
    "mem_used_percent",
    "mem_free_bytes",
    "mem_total_bytes",
    "uptime_days",
    "last_boot_utc",
    # Log events
    "log_name",
    "level",
    "event_id",
    "source",
    "message",
    "process_id",
    "thread_id",
    "user_id",
]

HEALTH_FIELDS = COLUMNS[6:15]
EVENT_FIELDS = COLUMNS[15:]
REASON_SEPARATOR = "; "


class ExportError(IOError):
    """Raised when the export file cannot be written."""
    pass


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def record_to_row(item: ClassifiedRecord) -> Dict[str, str]:
    """Flatten a classified record into an export row."""
    record: Union[HealthRecord, LogEventRecord] = item.record
    row = {column: "" for column in COLUMNS}
    row.update(
        host=record.host,
        domain=_cell(record.domain),
        timestamp_utc=_cell(record.timestamp_utc),
        status=_cell(item.verdict.status),
        reasons=REASON_SEPARATOR.join(item.verdict.reasons),
        occurrences=str(item.occurrences),
    )

    fields = HEALTH_FIELDS if isinstance(record, HealthRecord) else EVENT_FIELDS
    for name in fields:
        row[name] = _cell(getattr(record, name))
    return row


def export_csv(result: FleetRunResult, path: Path) -> int:
    """
    Write the run result as UTF-8 CSV.

    Args:
        result: Completed fleet run
        path: Destination file

    Returns:
        Number of data rows written

    Raises:
        ExportError: If the file cannot be written
    """
    path = Path(path)
    rows = 0
    try:
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=COLUMNS)
            writer.writeheader()
            for item in result.iter_records():
                writer.writerow(record_to_row(item))
                rows += 1
    except OSError as e:
        raise ExportError(f"Failed to write export {path}: {e}") from e

    logger.info(f"Exported {rows} row(s) to {path}")
    return rows


def read_export(path: Path) -> List[Dict[str, str]]:
    """
    Read an export file back into row dictionaries.

    Raises:
        ExportError: If the file cannot be read or has unexpected columns
    """
    try:
        with open(path, "r", newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            fieldnames = reader.fieldnames
            rows = list(reader)
    except OSError as e:
        raise ExportError(f"Failed to read export {path}: {e}") from e

    if fieldnames != COLUMNS:
        raise ExportError(f"Unexpected columns in {path}: {fieldnames}")
    return rows
