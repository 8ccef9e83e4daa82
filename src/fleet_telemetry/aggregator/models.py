"""
Aggregation data models.
"""

from datetime import datetime
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, Field

from fleet_telemetry.adapters.base import QueryFailure
from fleet_telemetry.classification.models import Status, Verdict
from fleet_telemetry.records.models import EventLevel, LogEventRecord, NormalizedRecord

# Counter buckets
OK = "ok"
WARNING = "warning"
ERROR = "error"
CRITICAL = "critical"

_LEVEL_BUCKETS = {
    EventLevel.CRITICAL: CRITICAL,
    EventLevel.ERROR: ERROR,
    EventLevel.WARNING: WARNING,
    EventLevel.INFORMATION: OK,
    EventLevel.VERBOSE: OK,
}
_STATUS_BUCKETS = {
    Status.OK: OK,
    Status.WARNING: WARNING,
    Status.ATTENTION: ERROR,
    Status.ERROR: ERROR,
}


class ClassifiedRecord(BaseModel):
    """A normalized record with its verdict and occurrence count."""

    record: NormalizedRecord
    verdict: Verdict
    occurrences: int = Field(default=1, ge=1)

    @property
    def bucket(self) -> str:
        """
        Counter bucket for this record.

        Log events count by level; health records count by verdict.
        """
        if isinstance(self.record, LogEventRecord):
            return _LEVEL_BUCKETS[self.record.level]
        return _STATUS_BUCKETS[self.verdict.status]


class HostCounters(BaseModel):
    """
    Per-host counters, weighted by occurrences.

    ``logs_processed`` and ``logs_skipped`` count successful and failed
    queries (health queries included).
    """

    total: int = 0
    ok_count: int = 0
    warning_count: int = 0
    error_count: int = 0
    critical_count: int = 0
    logs_processed: int = 0
    logs_skipped: int = 0

    def add_record(self, item: ClassifiedRecord) -> None:
        self.total += item.occurrences
        field_name = f"{item.bucket}_count"
        setattr(self, field_name, getattr(self, field_name) + item.occurrences)


class HostResult(BaseModel):
    """Everything collected from one host during a run."""

    host: str
    records: List[ClassifiedRecord] = Field(default_factory=list)
    query_errors: List[QueryFailure] = Field(default_factory=list)
    counters: HostCounters = Field(default_factory=HostCounters)

    @property
    def query_error(self) -> Optional[QueryFailure]:
        """First recorded failure, if any."""
        return self.query_errors[0] if self.query_errors else None

    @property
    def status(self) -> Status:
        """Worst status on this host; ERROR when any query failed."""
        status = Status.OK
        for item in self.records:
            status = status.escalate(item.verdict.status)
        if self.query_errors:
            status = status.escalate(Status.ERROR)
        return status


def recompute_counters(host_result: HostResult) -> HostCounters:
    """
    Rebuild counters from the stored records and failures.

    ``logs_processed`` is carried over: a successful query may return no
    records, so it cannot be derived from them.
    """
    counters = HostCounters(
        logs_processed=host_result.counters.logs_processed,
        logs_skipped=len(host_result.query_errors),
    )
    for item in host_result.records:
        counters.add_record(item)
    return counters


class FleetRunResult(BaseModel):
    """
    Complete outcome of one aggregation pass.

    ``per_host`` keeps host order. Read-only once the run completes.
    """

    per_host: Dict[str, HostResult] = Field(default_factory=dict)
    started_at: datetime
    completed_at: datetime
    deduplicated: bool = False
    cancelled: bool = False

    def iter_records(self) -> Iterator[ClassifiedRecord]:
        """All records in host order, then query order, then adapter order."""
        for host_result in self.per_host.values():
            yield from host_result.records

    @property
    def failures(self) -> List[QueryFailure]:
        return [
            failure
            for host_result in self.per_host.values()
            for failure in host_result.query_errors
        ]

    @property
    def total_records(self) -> int:
        """Total observations, weighted by occurrences."""
        return sum(h.counters.total for h in self.per_host.values())

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


class RetryPolicy(BaseModel):
    """Bounded retry with exponential backoff. One attempt means no retries."""

    max_attempts: int = Field(default=1, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) attempt."""
        return self.backoff_seconds * (self.backoff_multiplier ** (attempt - 1))
