"""
Host query adapter contract.

An adapter asks one host for records of one kind. Failures come back as
data (``QueryOutcome.error``) rather than as exceptions, so a single bad
host never unwinds the fleet run.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from fleet_telemetry.records.models import EventLevel, HostTarget, RawRecord, RecordDomain
from fleet_telemetry.records.normalizer import parse_timestamp, to_int

logger = logging.getLogger(__name__)

FIXED_DISK = 3


class QueryErrorKind(str, Enum):
    """Per-host, per-query failure kinds. None of them abort the run."""

    UNREACHABLE = "Unreachable"
    ACCESS_DENIED = "AccessDenied"
    TIMEOUT = "Timeout"
    UNSUPPORTED = "Unsupported"

    @property
    def retryable(self) -> bool:
        return self in (QueryErrorKind.UNREACHABLE, QueryErrorKind.TIMEOUT)


class QueryError(Exception):
    """Raised inside adapters; converted to a QueryFailure at the adapter boundary."""

    def __init__(self, kind: QueryErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind


class HealthQuery(BaseModel):
    """Fixed-disk and operating-system counters; no parameters beyond the cap."""

    domain: Literal[RecordDomain.HEALTH] = RecordDomain.HEALTH
    max_records: int = Field(default=64, ge=1)

    @property
    def label(self) -> str:
        return "Health"

    class Config:
        frozen = True


class LogQuery(BaseModel):
    """Event-log query for one log on one host."""

    domain: Literal[RecordDomain.LOG_EVENT] = RecordDomain.LOG_EVENT
    log_name: str = Field(..., min_length=1)
    since_utc: datetime
    levels: FrozenSet[EventLevel] = Field(
        default_factory=lambda: frozenset(
            {EventLevel.CRITICAL, EventLevel.ERROR, EventLevel.WARNING}
        )
    )
    event_ids: Optional[FrozenSet[int]] = None
    max_records: int = Field(default=1000, ge=1)

    @property
    def label(self) -> str:
        return self.log_name

    def matches(self, payload: Dict[str, Any]) -> bool:
        """
        Check an event payload against the level, ID and time filters.

        Events without a parsable timestamp are kept.
        """
        level_value = payload.get("Level")
        if level_value is None:
            level_value = payload.get("LevelDisplayName")
        if EventLevel.coerce(level_value) not in self.levels:
            return False

        # Same conversion as the normalizer, so filtering agrees with the exported ID
        if self.event_ids is not None and to_int(payload.get("Id")) not in self.event_ids:
            return False

        created = parse_timestamp(payload.get("TimeCreated"))
        if created is not None and created < self.since_utc:
            return False
        return True

    class Config:
        frozen = True


QuerySpec = Union[HealthQuery, LogQuery]


class QueryFailure(BaseModel):
    """One failed (host, query) pair, recorded as data."""

    host: str
    query: str
    kind: QueryErrorKind
    message: str = ""

    def describe(self) -> str:
        text = f"{self.host} / {self.query}: {self.kind.value}"
        if self.message:
            text += f" ({self.message})"
        return text

    class Config:
        frozen = True


class QueryOutcome(BaseModel):
    """Result of one adapter call: records, or the failure that prevented them."""

    records: List[RawRecord] = Field(default_factory=list)
    error: Optional[QueryFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(
        cls, host: HostTarget, spec: QuerySpec, kind: QueryErrorKind, message: str = ""
    ) -> "QueryOutcome":
        return cls(
            error=QueryFailure(host=host.name, query=spec.label, kind=kind, message=message)
        )


class HostQueryAdapter(ABC):
    """
    Base class for host query adapters.

    Subclasses implement ``_fetch`` and raise ``QueryError`` on failure.
    ``query`` applies the query filters, caps the result at
    ``spec.max_records`` and turns errors into a failed outcome.
    Adapters are read-only.
    """

    name = "base"

    async def query(self, host: HostTarget, spec: QuerySpec) -> QueryOutcome:
        """
        Ask one host for records.

        Args:
            host: Target host
            spec: Health or log query

        Returns:
            QueryOutcome with the raw records or a failure
        """
        try:
            records = await self._fetch(host, spec)
        except QueryError as e:
            logger.debug(f"{self.name} query {spec.label} on {host} failed: {e.kind.value}: {e}")
            return QueryOutcome.failed(host, spec, e.kind, str(e))

        records = [r for r in records if self._accepts(r, spec)]
        if len(records) > spec.max_records:
            logger.debug(
                f"Capping {spec.label} on {host} from {len(records)} "
                f"to {spec.max_records} record(s)"
            )
            records = records[: spec.max_records]
        return QueryOutcome(records=records)

    def _accepts(self, record: RawRecord, spec: QuerySpec) -> bool:
        if isinstance(spec, LogQuery):
            return spec.matches(record.payload)
        drive_type = record.payload.get("DriveType")
        return drive_type is None or str(drive_type) == str(FIXED_DISK)

    @abstractmethod
    async def _fetch(self, host: HostTarget, spec: QuerySpec) -> List[RawRecord]:
        """Fetch raw records; raise QueryError on failure."""

    async def close(self) -> None:
        """Release adapter resources."""

    async def __aenter__(self):
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        await self.close()
