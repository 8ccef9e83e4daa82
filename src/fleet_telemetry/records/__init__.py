"""
Record models and normalization.

Raw adapter payloads (health samples, event-log records) are mapped into
one schema shared by the classifier, aggregator and reporters.
"""

from .models import (
    EventLevel,
    HealthRecord,
    HostTarget,
    LogEventRecord,
    NormalizedRecord,
    RawRecord,
    RecordDomain,
)
from .normalizer import RecordNormalizer, clean_message, parse_timestamp

__all__ = [
    "EventLevel",
    "HealthRecord",
    "HostTarget",
    "LogEventRecord",
    "NormalizedRecord",
    "RawRecord",
    "RecordDomain",
    "RecordNormalizer",
    "clean_message",
    "parse_timestamp",
]
