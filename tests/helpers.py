"""
Shared test helpers: a scripted adapter and payload builders.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from fleet_telemetry.adapters.base import (
    HostQueryAdapter,
    LogQuery,
    QueryError,
    QueryErrorKind,
    QuerySpec,
)
from fleet_telemetry.records.models import HostTarget, RawRecord
from fleet_telemetry.records.normalizer import RecordNormalizer

FIXED_NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def fixed_normalizer(**kwargs) -> RecordNormalizer:
    return RecordNormalizer(clock=fixed_clock, **kwargs)


def event_payload(
    event_id: int = 7,
    source: str = "Disk",
    level: int = 2,
    message: str = "The device has a bad block.",
    minutes_ago: int = 10,
    now: datetime = FIXED_NOW,
    **extra: Any,
) -> Dict[str, Any]:
    payload = {
        "Level": level,
        "Id": event_id,
        "ProviderName": source,
        "Message": message,
        "TimeCreated": (now - timedelta(minutes=minutes_ago)).isoformat(),
    }
    payload.update(extra)
    return payload


def health_payload(
    drive: str = "C:",
    size: int = 100 * 1024 ** 3,
    free: int = 50 * 1024 ** 3,
    mem_total_kb: int = 16 * 1024 ** 2,
    mem_free_kb: int = 8 * 1024 ** 2,
    boot_days_ago: float = 2.0,
    now: datetime = FIXED_NOW,
) -> Dict[str, Any]:
    return {
        "DeviceID": drive,
        "DriveType": 3,
        "Size": size,
        "FreeSpace": free,
        "TotalVisibleMemorySize": mem_total_kb,
        "FreePhysicalMemory": mem_free_kb,
        "LastBootUpTime": (now - timedelta(days=boot_days_ago)).isoformat(),
    }


class ScriptedAdapter(HostQueryAdapter):
    """
    Adapter answering from a table keyed by (host, query label).

    A value is a list of payloads, a QueryErrorKind to fail with, or an
    exception to raise. Missing keys return no records.
    """

    name = "scripted"

    def __init__(
        self,
        responses: Dict[Tuple[str, str], Any],
        delays: Optional[Dict[Tuple[str, str], float]] = None,
    ):
        self.responses = responses
        self.delays = delays or {}
        self.calls: List[Tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _fetch(self, host: HostTarget, spec: QuerySpec) -> List[RawRecord]:
        key = (host.name, spec.label)
        self.calls.append(key)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(key, 0.0)
            if delay:
                await asyncio.sleep(delay)
            response = self.responses.get(key, [])
            if isinstance(response, QueryErrorKind):
                raise QueryError(response, "simulated failure")
            if isinstance(response, Exception):
                raise response
            records = []
            for payload in response:
                if isinstance(spec, LogQuery):
                    payload = dict(payload, LogName=payload.get("LogName", spec.log_name))
                records.append(RawRecord(domain=spec.domain, host=host.name, payload=payload))
            return records
        finally:
            self.in_flight -= 1


class FlakyAdapter(HostQueryAdapter):
    """Fails with ``kind`` for the first ``failures`` calls, then returns one event."""

    name = "flaky"

    def __init__(self, failures: int, kind: QueryErrorKind = QueryErrorKind.UNREACHABLE):
        self.failures = failures
        self.kind = kind
        self.calls = 0

    async def _fetch(self, host: HostTarget, spec: QuerySpec) -> List[RawRecord]:
        self.calls += 1
        if self.calls <= self.failures:
            raise QueryError(self.kind, f"attempt {self.calls} failed")
        return [RawRecord(domain=spec.domain, host=host.name, payload=event_payload())]
