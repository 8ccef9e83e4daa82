"""
Host query adapters.

An adapter asks one host for health samples or event-log records and
reports failures as data.
"""

from .base import (
    HealthQuery,
    HostQueryAdapter,
    LogQuery,
    QueryError,
    QueryErrorKind,
    QueryFailure,
    QueryOutcome,
    QuerySpec,
)
from .http_agent import HttpAgentAdapter
from .snapshot import SnapshotAdapter

__all__ = [
    "HealthQuery",
    "HostQueryAdapter",
    "LogQuery",
    "QueryError",
    "QueryErrorKind",
    "QueryFailure",
    "QueryOutcome",
    "QuerySpec",
    "HttpAgentAdapter",
    "SnapshotAdapter",
]
