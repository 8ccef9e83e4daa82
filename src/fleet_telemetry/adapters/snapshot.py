"""
Snapshot adapter: serves host data recorded in YAML or JSON files.

One file per host, named ``<host>.yaml``, ``<host>.yml`` or ``<host>.json``:

    health:
      os:
        TotalVisibleMemorySize: 16777216
        FreePhysicalMemory: 4194304
        LastBootUpTime: "2025-01-03T08:15:00Z"
      drives:
        - {DeviceID: "C:", DriveType: 3, Size: 107374182400, FreeSpace: 8589934592}
    events:
      System:
        - {Level: 2, Id: 7, ProviderName: Disk, Message: "...", TimeCreated: "..."}
    failures:
      Application: AccessDenied     # simulate a failed query for one log
    delay_seconds: 0.0              # simulate a slow host
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from fleet_telemetry.records.models import HostTarget, RawRecord, RecordDomain
from fleet_telemetry.records.normalizer import parse_timestamp

from .base import HealthQuery, HostQueryAdapter, QueryError, QueryErrorKind, QuerySpec

logger = logging.getLogger(__name__)


class SnapshotAdapter(HostQueryAdapter):
    """
    Reads recorded host telemetry from a directory of snapshot files.

    A host without a snapshot file is unreachable; a snapshot without the
    requested section does not support the query.
    """

    name = "snapshot"
    SUFFIXES = (".yaml", ".yml", ".json")

    def __init__(self, snapshot_dir: Path):
        """
        Initialize the snapshot adapter.

        Args:
            snapshot_dir: Directory holding one snapshot file per host
        """
        self.snapshot_dir = Path(snapshot_dir)

    def snapshot_path(self, host: HostTarget) -> Optional[Path]:
        for suffix in self.SUFFIXES:
            path = self.snapshot_dir / f"{host.name}{suffix}"
            if path.is_file():
                return path
        return None

    def _load(self, host: HostTarget) -> Dict[str, Any]:
        path = self.snapshot_path(host)
        if path is None:
            raise QueryError(QueryErrorKind.UNREACHABLE, f"No snapshot for host {host}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise QueryError(QueryErrorKind.UNREACHABLE, f"Cannot read {path}: {e}") from e
        except yaml.YAMLError as e:
            raise QueryError(QueryErrorKind.UNSUPPORTED, f"Invalid snapshot {path}: {e}") from e

        if not isinstance(data, dict):
            raise QueryError(QueryErrorKind.UNSUPPORTED, f"Snapshot {path} is not a mapping")
        return data

    async def _fetch(self, host: HostTarget, spec: QuerySpec) -> List[RawRecord]:
        # File I/O and YAML parsing off the event loop, so other queries and timeouts keep running
        data = await asyncio.to_thread(self._load, host)

        delay = float(data.get("delay_seconds") or 0.0)
        if delay > 0:
            await asyncio.sleep(delay)

        failure = (data.get("failures") or {}).get(spec.label)
        if failure:
            try:
                kind = QueryErrorKind(failure)
            except ValueError:
                kind = QueryErrorKind.UNREACHABLE
            raise QueryError(kind, f"Recorded failure for {spec.label}")

        if isinstance(spec, HealthQuery):
            return self._health_records(host, data)
        return self._event_records(host, spec.log_name, data)

    def _health_records(self, host: HostTarget, data: Dict[str, Any]) -> List[RawRecord]:
        health = data.get("health")
        if not isinstance(health, dict):
            raise QueryError(QueryErrorKind.UNSUPPORTED, f"No health data recorded for {host}")

        os_info = health.get("os") or {}
        return [
            RawRecord(domain=RecordDomain.HEALTH, host=host.name, payload={**os_info, **drive})
            for drive in health.get("drives") or []
            if isinstance(drive, dict)
        ]

    def _event_records(
        self, host: HostTarget, log_name: str, data: Dict[str, Any]
    ) -> List[RawRecord]:
        logs = data.get("events") or {}
        if log_name not in logs:
            raise QueryError(QueryErrorKind.UNSUPPORTED, f"Log {log_name} not found on {host}")

        events = [
            dict(event, LogName=event.get("LogName", log_name))
            for event in logs[log_name] or []
            if isinstance(event, dict)
        ]

        # Newest first, like the event log API; undated events keep their place at the end
        dated = [e for e in events if parse_timestamp(e.get("TimeCreated")) is not None]
        undated = [e for e in events if parse_timestamp(e.get("TimeCreated")) is None]
        dated.sort(key=lambda e: parse_timestamp(e.get("TimeCreated")), reverse=True)

        return [
            RawRecord(domain=RecordDomain.LOG_EVENT, host=host.name, payload=payload)
            for payload in dated + undated
        ]
