"""
Threshold classification logic.
"""

import logging
from typing import List, Union

from fleet_telemetry.records.models import EventLevel, HealthRecord, LogEventRecord

from .models import Status, Thresholds, Verdict

logger = logging.getLogger(__name__)


def format_percent(value: float) -> str:
    """Render a percentage without trailing zeros (92.0 -> '92%')."""
    return f"{round(value, 2):g}%"


def format_days(value: float) -> str:
    return f"{round(value, 2):g}"


class ThresholdClassifier:
    """
    Produces a verdict for a normalized record.

    Health records are checked for three independent breaches, reported
    in this order:
    - Disk usage above the disk threshold (WARNING)
    - Memory usage above the memory threshold (WARNING)
    - Uptime above the stale-boot limit (ATTENTION)

    Log events take their verdict from the event level alone.

    Classification is a pure function of the record and the thresholds.
    """

    LEVEL_STATUS = {
        EventLevel.CRITICAL: Status.ATTENTION,
        EventLevel.ERROR: Status.ATTENTION,
        EventLevel.WARNING: Status.WARNING,
        EventLevel.INFORMATION: Status.OK,
        EventLevel.VERBOSE: Status.OK,
    }

    def classify(
        self,
        record: Union[HealthRecord, LogEventRecord],
        thresholds: Thresholds,
    ) -> Verdict:
        """
        Classify a record.

        Args:
            record: Normalized record
            thresholds: Thresholds to evaluate health records against

        Returns:
            Verdict with status and ordered reasons
        """
        if isinstance(record, HealthRecord):
            return self.classify_health(record, thresholds)
        return self.classify_event(record)

    def classify_health(self, record: HealthRecord, thresholds: Thresholds) -> Verdict:
        status = Status.OK
        reasons: List[str] = []

        if record.disk_used_percent > thresholds.disk_percent:
            status = status.escalate(Status.WARNING)
            reasons.append(
                f"Disk {record.drive_id} usage at {format_percent(record.disk_used_percent)}"
            )

        if record.mem_used_percent > thresholds.memory_percent:
            status = status.escalate(Status.WARNING)
            reasons.append(f"Memory usage at {format_percent(record.mem_used_percent)}")

        if record.uptime_days > thresholds.stale_boot_days:
            status = status.escalate(Status.ATTENTION)
            reasons.append(
                f"Uptime {format_days(record.uptime_days)} days exceeds "
                f"{format_days(thresholds.stale_boot_days)} days"
            )

        return Verdict(status=status, reasons=reasons)

    def classify_event(self, record: LogEventRecord) -> Verdict:
        status = self.LEVEL_STATUS[record.level]
        if status == Status.OK:
            return Verdict(status=status)
        return Verdict(
            status=status,
            reasons=[f"{record.level.value} event {record.event_id} from {record.source}"],
        )
