"""
Deduplication of repeated log events.

Events sharing ``(event_id, source, host)`` collapse into the first one
met in iteration order (host order, then query order, then the order the
adapter returned them). Message text is not part of the key, so distinct
messages under the same ID and source collapse too. Health records are
never collapsed.
"""

import logging
from typing import Dict, List, Sequence

from fleet_telemetry.records.models import LogEventRecord

from .models import ClassifiedRecord, FleetRunResult

logger = logging.getLogger(__name__)


def deduplicate_records(records: Sequence[ClassifiedRecord]) -> List[ClassifiedRecord]:
    """
    Collapse repeated log events, summing their occurrence counts.

    Idempotent: a deduplicated sequence is returned unchanged.
    """
    collapsed: List[ClassifiedRecord] = []
    positions: Dict[tuple, int] = {}

    for item in records:
        if not isinstance(item.record, LogEventRecord):
            collapsed.append(item)
            continue

        key = item.record.dedup_key
        if key in positions:
            index = positions[key]
            representative = collapsed[index]
            collapsed[index] = representative.model_copy(
                update={"occurrences": representative.occurrences + item.occurrences}
            )
        else:
            positions[key] = len(collapsed)
            collapsed.append(item)

    return collapsed


def deduplicate(result: FleetRunResult) -> FleetRunResult:
    """
    Deduplicate every host's records.

    Counters are occurrence-weighted, so they carry over unchanged.
    """
    per_host = {}
    for name, host_result in result.per_host.items():
        records = deduplicate_records(host_result.records)
        if len(records) != len(host_result.records):
            logger.debug(
                f"Collapsed {len(host_result.records)} record(s) into {len(records)} on {name}"
            )
        per_host[name] = host_result.model_copy(update={"records": records})

    return result.model_copy(update={"per_host": per_host, "deduplicated": True})
