"""
Fleet-wide aggregation: query every host, collect, count and deduplicate.
"""

from .dedup import deduplicate, deduplicate_records
from .models import (
    ClassifiedRecord,
    FleetRunResult,
    HostCounters,
    HostResult,
    RetryPolicy,
    recompute_counters,
)
from .service import FleetAggregator, plan_queries

__all__ = [
    "ClassifiedRecord",
    "FleetAggregator",
    "FleetRunResult",
    "HostCounters",
    "HostResult",
    "RetryPolicy",
    "deduplicate",
    "deduplicate_records",
    "plan_queries",
    "recompute_counters",
]
