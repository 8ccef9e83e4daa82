"""
Telemetry agent client.

Each Windows host runs a small read-only agent that exposes WMI counters
and event-log records as JSON:

    GET /api/v1/health
        {"os": {"TotalVisibleMemorySize": ..., "FreePhysicalMemory": ...,
                "LastBootUpTime": "..."},
         "drives": [{"DeviceID": "C:", "DriveType": 3, "Size": ...,
                     "FreeSpace": ...}, ...]}

    GET /api/v1/events?log=System&since=...&levels=1,2,3&ids=41&limit=1000
        {"events": [{"LogName": "System", "Level": 2, "Id": 7, ...}, ...]}
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from fleet_telemetry.records.models import HostTarget, RawRecord, RecordDomain

from .base import HealthQuery, HostQueryAdapter, LogQuery, QueryError, QueryErrorKind, QuerySpec

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/v1/health"
EVENTS_PATH = "/api/v1/events"


class HttpAgentAdapter(HostQueryAdapter):
    """
    Queries the telemetry agent on each host over HTTP.

    Usage:
        async with HttpAgentAdapter(port=9182, token="...") as adapter:
            outcome = await adapter.query(HostTarget(name="web-01"), HealthQuery())
    """

    name = "agent"

    def __init__(
        self,
        port: int = 9182,
        scheme: str = "http",
        token: Optional[str] = None,
        timeout: float = 30.0,
        verify_tls: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the agent client.

        Args:
            port: Agent TCP port
            scheme: http or https
            token: Optional bearer token
            timeout: HTTP request timeout in seconds
            verify_tls: Verify TLS certificates
            transport: Custom httpx transport (used by tests)
        """
        self.port = port
        self.scheme = scheme
        self.timeout = timeout

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        # Create async HTTP client (reused across hosts)
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers=headers,
            verify=verify_tls,
            transport=transport,
        )

    def base_url(self, host: HostTarget) -> str:
        return f"{self.scheme}://{host.name}:{self.port}"

    async def _fetch(self, host: HostTarget, spec: QuerySpec) -> List[RawRecord]:
        if isinstance(spec, HealthQuery):
            data = await self._get(host, HEALTH_PATH, {"limit": spec.max_records})
            return self._health_records(host, data)
        data = await self._get(host, EVENTS_PATH, self._event_params(spec))
        return self._event_records(host, spec, data)

    def _event_params(self, spec: LogQuery) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "log": spec.log_name,
            "since": spec.since_utc.isoformat(),
            "levels": ",".join(str(code) for code in sorted(level.code for level in spec.levels)),
            "limit": spec.max_records,
        }
        if spec.event_ids:
            params["ids"] = ",".join(str(i) for i in sorted(spec.event_ids))
        return params

    async def _get(self, host: HostTarget, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url(host)}{path}"
        try:
            response = await self.client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise QueryError(QueryErrorKind.TIMEOUT, f"Agent timeout after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise QueryError(QueryErrorKind.UNREACHABLE, f"Cannot connect to agent: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise QueryError(QueryErrorKind.ACCESS_DENIED, f"Agent returned status {status}")
        if status in (404, 405, 501):
            raise QueryError(QueryErrorKind.UNSUPPORTED, f"Agent returned status {status}")
        if status >= 400:
            raise QueryError(QueryErrorKind.UNREACHABLE, f"Agent returned status {status}")

        try:
            data = response.json()
        except ValueError as e:
            raise QueryError(QueryErrorKind.UNSUPPORTED, "Agent returned invalid JSON") from e
        if not isinstance(data, dict):
            raise QueryError(QueryErrorKind.UNSUPPORTED, "Agent response is not an object")
        return data

    def _health_records(self, host: HostTarget, data: Dict[str, Any]) -> List[RawRecord]:
        os_info = data.get("os") or {}
        drives = data.get("drives")
        if not isinstance(drives, list) or not isinstance(os_info, dict):
            raise QueryError(QueryErrorKind.UNSUPPORTED, "Malformed health response")

        # One record per drive, each carrying the host-wide OS counters
        return [
            RawRecord(domain=RecordDomain.HEALTH, host=host.name, payload={**os_info, **drive})
            for drive in drives
            if isinstance(drive, dict)
        ]

    def _event_records(
        self, host: HostTarget, spec: LogQuery, data: Dict[str, Any]
    ) -> List[RawRecord]:
        events = data.get("events")
        if not isinstance(events, list):
            raise QueryError(QueryErrorKind.UNSUPPORTED, "Malformed events response")

        records = []
        for event in events:
            if not isinstance(event, dict):
                continue
            payload = dict(event)
            payload.setdefault("LogName", spec.log_name)
            records.append(
                RawRecord(domain=RecordDomain.LOG_EVENT, host=host.name, payload=payload)
            )
        return records

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
