"""
Record normalizers for adapter payloads.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union

from .models import (
    EventLevel,
    HealthRecord,
    LogEventRecord,
    RawRecord,
    RecordDomain,
)

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_CAP = 500
NO_MESSAGE = "No message available"
NO_USER = "N/A"
UNKNOWN = "Unknown"

_LINE_BREAKS = re.compile(r"\r\n|\r|\n")
# WMI CIM_DATETIME, e.g. 20250103081500.000000+060 (offset in minutes)
_CIM_DATETIME = re.compile(
    r"^(\d{14})(?:\.(\d{1,6}))?([+-]\d{3})?$"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clean_message(message: Any, cap: int = DEFAULT_MESSAGE_CAP) -> str:
    """
    Make an event message safe for tabular export.

    Every line terminator becomes a single space, then the text is cut
    to ``cap`` characters. Empty messages get a placeholder.
    """
    if message is None:
        return NO_MESSAGE
    text = _LINE_BREAKS.sub(" ", str(message)).strip()
    if not text:
        return NO_MESSAGE
    return text[:cap]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 or WMI CIM timestamp into an aware UTC datetime.

    Returns None when the value cannot be parsed or falls outside the
    representable range (e.g. WMI's year-1 placeholder for unset dates).
    """
    if value is None or value == "":
        return None
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        else:
            text = str(value).strip()
            match = _CIM_DATETIME.match(text)
            if match:
                return _parse_cim(match)
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)

        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_cim(match: "re.Match") -> datetime:
    digits, fraction, offset = match.groups()
    parsed = datetime.strptime(digits, "%Y%m%d%H%M%S")
    if fraction:
        parsed = parsed.replace(microsecond=int(fraction.ljust(6, "0")))
    minutes = int(offset) if offset else 0
    return (parsed - timedelta(minutes=minutes)).replace(tzinfo=timezone.utc)


def to_int(value: Any, default: int = 0) -> int:
    """Lenient integer conversion ("7", "7.0", 7.9 -> 7); ``default`` when impossible."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _as_optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    result = to_int(value, default=-1)
    return result if result >= 0 else None


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(min(max(part / whole * 100.0, 0.0), 100.0), 2)


class RecordNormalizer:
    """
    Maps raw adapter records into the unified record schema.

    Normalization never fails on a conforming payload: a missing or
    malformed field is replaced with an explicit default instead of
    dropping the record.
    """

    def __init__(
        self,
        message_cap: int = DEFAULT_MESSAGE_CAP,
        detailed: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the normalizer.

        Args:
            message_cap: Maximum message length kept on log events
            detailed: Keep process, thread and user details on log events
            clock: Source of the current UTC time, read once per record
        """
        self.message_cap = message_cap
        self.detailed = detailed
        self._clock = clock

    def normalize(self, raw: RawRecord) -> Union[HealthRecord, LogEventRecord]:
        """
        Normalize a raw record based on its domain.

        Args:
            raw: Raw record produced by a host query adapter

        Returns:
            HealthRecord or LogEventRecord
        """
        if raw.domain == RecordDomain.HEALTH:
            return self.normalize_health(raw)
        return self.normalize_event(raw)

    def normalize_health(self, raw: RawRecord) -> HealthRecord:
        """
        Normalize a fixed-disk plus operating-system sample.

        Sizes: ``Size``/``FreeSpace`` in bytes, memory counters in KiB.
        """
        payload = raw.payload
        now = self._clock()

        disk_total = max(to_int(payload.get("Size")), 0)
        disk_free = min(max(to_int(payload.get("FreeSpace")), 0), disk_total)

        mem_total = max(to_int(payload.get("TotalVisibleMemorySize")), 0) * 1024
        mem_free = min(max(to_int(payload.get("FreePhysicalMemory")), 0) * 1024, mem_total)

        last_boot = parse_timestamp(payload.get("LastBootUpTime"))
        if last_boot is None:
            logger.debug(f"No usable boot time for {raw.host}, uptime reported as 0")
            uptime_days = 0.0
        else:
            uptime_days = round(max((now - last_boot).total_seconds(), 0.0) / 86400.0, 2)

        return HealthRecord(
            host=raw.host,
            timestamp_utc=now,
            drive_id=str(payload.get("DeviceID") or UNKNOWN),
            disk_used_percent=_percent(disk_total - disk_free, disk_total),
            disk_free_bytes=disk_free,
            disk_total_bytes=disk_total,
            mem_used_percent=_percent(mem_total - mem_free, mem_total),
            mem_free_bytes=mem_free,
            mem_total_bytes=mem_total,
            uptime_days=uptime_days,
            last_boot_utc=last_boot,
        )

    def normalize_event(self, raw: RawRecord) -> LogEventRecord:
        """
        Normalize an event-log record.

        The numeric ``Level`` wins over ``LevelDisplayName``; anything
        unrecognized maps to Information.
        """
        payload = raw.payload

        level_value = payload.get("Level")
        if level_value is None:
            level_value = payload.get("LevelDisplayName")
        level = EventLevel.coerce(level_value)

        timestamp = parse_timestamp(payload.get("TimeCreated"))
        if timestamp is None:
            timestamp = self._clock()

        process_id = thread_id = user_id = None
        if self.detailed:
            process_id = _as_optional_int(payload.get("ProcessId"))
            thread_id = _as_optional_int(payload.get("ThreadId"))
            user = payload.get("UserId")
            user_id = str(user) if user not in (None, "") else NO_USER

        return LogEventRecord(
            host=raw.host,
            timestamp_utc=timestamp,
            log_name=str(payload.get("LogName") or UNKNOWN),
            level=level,
            event_id=to_int(payload.get("Id")),
            source=str(payload.get("ProviderName") or UNKNOWN),
            message=clean_message(payload.get("Message"), self.message_cap),
            process_id=process_id,
            thread_id=thread_id,
            user_id=user_id,
        )
