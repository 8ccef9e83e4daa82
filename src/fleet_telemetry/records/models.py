"""
Record data models.

Raw records are adapter payloads tagged with their domain; normalized
records are the unified schema every later stage works with.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class HostTarget(BaseModel):
    """A machine targeted for a query, by name or address."""

    name: str = Field(..., min_length=1, description="Hostname or address")

    def __str__(self) -> str:
        return self.name

    class Config:
        frozen = True


class RecordDomain(str, Enum):
    """Kinds of observations a host can report."""

    HEALTH = "health"
    LOG_EVENT = "log_event"


class EventLevel(str, Enum):
    """Windows event levels."""

    CRITICAL = "Critical"
    ERROR = "Error"
    WARNING = "Warning"
    INFORMATION = "Information"
    VERBOSE = "Verbose"

    @property
    def code(self) -> int:
        """Numeric level code used by the Windows event log API."""
        return _LEVEL_CODES[self]

    @classmethod
    def from_code(cls, code: int) -> "EventLevel":
        """
        Map a numeric level code to a level.

        Code 0 (LogAlways) and any unknown code map to Information.
        """
        return _CODE_LEVELS.get(code, cls.INFORMATION)

    @classmethod
    def parse(cls, name: str) -> "EventLevel":
        """
        Parse a level name (case-insensitive).

        Raises:
            ValueError: If the name is not a known level
        """
        key = str(name).strip().lower()
        if key in _LEVEL_ALIASES:
            return _LEVEL_ALIASES[key]
        raise ValueError(
            f"Unknown event level '{name}' "
            f"(expected one of: {', '.join(level.value for level in cls)})"
        )

    @classmethod
    def coerce(cls, value: Any) -> "EventLevel":
        """Best-effort mapping from a code or name; never fails."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.from_code(value)
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls.from_code(int(text))
            try:
                return cls.parse(text)
            except ValueError:
                return cls.INFORMATION
        return cls.INFORMATION


_LEVEL_CODES = {
    EventLevel.CRITICAL: 1,
    EventLevel.ERROR: 2,
    EventLevel.WARNING: 3,
    EventLevel.INFORMATION: 4,
    EventLevel.VERBOSE: 5,
}
_CODE_LEVELS = {code: level for level, code in _LEVEL_CODES.items()}
_LEVEL_ALIASES = {level.value.lower(): level for level in EventLevel}
_LEVEL_ALIASES["info"] = EventLevel.INFORMATION


class RawRecord(BaseModel):
    """
    Adapter-specific payload, tagged with its domain.

    Health payloads use the WMI property names of Win32_LogicalDisk and
    Win32_OperatingSystem (``DeviceID``, ``Size``, ``FreeSpace``,
    ``TotalVisibleMemorySize``, ``FreePhysicalMemory``, ``LastBootUpTime``).
    Event payloads use the event log record names (``LogName``, ``Level``,
    ``LevelDisplayName``, ``Id``, ``ProviderName``, ``Message``,
    ``ProcessId``, ``ThreadId``, ``UserId``, ``TimeCreated``).
    """

    domain: RecordDomain
    host: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class HealthRecord(BaseModel):
    """Normalized health sample for one fixed disk of a host."""

    domain: Literal[RecordDomain.HEALTH] = RecordDomain.HEALTH
    host: str
    timestamp_utc: datetime

    drive_id: str
    disk_used_percent: float = Field(..., ge=0.0, le=100.0)
    disk_free_bytes: int = Field(..., ge=0)
    disk_total_bytes: int = Field(..., ge=0)

    mem_used_percent: float = Field(..., ge=0.0, le=100.0)
    mem_free_bytes: int = Field(..., ge=0)
    mem_total_bytes: int = Field(..., ge=0)

    uptime_days: float = Field(..., ge=0.0)
    last_boot_utc: Optional[datetime] = None

    @model_validator(mode="after")
    def check_byte_totals(self) -> "HealthRecord":
        if self.disk_free_bytes > self.disk_total_bytes:
            raise ValueError("disk_free_bytes exceeds disk_total_bytes")
        if self.mem_free_bytes > self.mem_total_bytes:
            raise ValueError("mem_free_bytes exceeds mem_total_bytes")
        return self

    @property
    def disk_used_bytes(self) -> int:
        return self.disk_total_bytes - self.disk_free_bytes

    class Config:
        json_schema_extra = {
            "example": {
                "domain": "health",
                "host": "web-01",
                "timestamp_utc": "2025-01-15T10:30:00Z",
                "drive_id": "C:",
                "disk_used_percent": 92.0,
                "disk_free_bytes": 8589934592,
                "disk_total_bytes": 107374182400,
                "mem_used_percent": 61.25,
                "mem_free_bytes": 6576668672,
                "mem_total_bytes": 17179869184,
                "uptime_days": 12.5,
                "last_boot_utc": "2025-01-03T00:00:00Z",
            }
        }


class LogEventRecord(BaseModel):
    """
    Normalized event-log record.

    ``process_id``, ``thread_id`` and ``user_id`` are always present and
    are None when the run did not ask for details.
    """

    domain: Literal[RecordDomain.LOG_EVENT] = RecordDomain.LOG_EVENT
    host: str
    timestamp_utc: datetime

    log_name: str
    level: EventLevel
    event_id: int
    source: str
    message: str

    process_id: Optional[int] = None
    thread_id: Optional[int] = None
    user_id: Optional[str] = None

    @property
    def dedup_key(self) -> tuple:
        """Events sharing this key collapse into one representative."""
        return (self.event_id, self.source, self.host)

    class Config:
        json_schema_extra = {
            "example": {
                "domain": "log_event",
                "host": "web-01",
                "timestamp_utc": "2025-01-15T10:30:00Z",
                "log_name": "System",
                "level": "Error",
                "event_id": 7,
                "source": "Disk",
                "message": "The device, \\Device\\Harddisk0\\DR0, has a bad block.",
            }
        }


NormalizedRecord = Annotated[
    Union[HealthRecord, LogEventRecord],
    Field(discriminator="domain"),
]
