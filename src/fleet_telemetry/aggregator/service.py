"""
Fleet aggregation service.

Runs the query, normalize and classify pipeline for every (host, query)
pair and assembles one FleetRunResult.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from fleet_telemetry.adapters.base import (
    HealthQuery,
    HostQueryAdapter,
    LogQuery,
    QueryErrorKind,
    QueryFailure,
    QueryOutcome,
    QuerySpec,
)
from fleet_telemetry.classification.classifier import ThresholdClassifier
from fleet_telemetry.classification.models import Thresholds
from fleet_telemetry.records.models import EventLevel, HostTarget, RawRecord
from fleet_telemetry.records.normalizer import RecordNormalizer, utc_now

from .dedup import deduplicate
from .models import ClassifiedRecord, FleetRunResult, HostCounters, HostResult, RetryPolicy

logger = logging.getLogger(__name__)


class PairResult(BaseModel):
    """Processed outcome of one (host, query) pair."""

    records: List[ClassifiedRecord] = Field(default_factory=list)
    failure: Optional[QueryFailure] = None


class HostResultBuilder:
    """
    Collects one host's pair results and keeps its counters current.

    Each builder is owned by a single host; builders never share state.
    """

    def __init__(self, host: HostTarget):
        self.host = host
        self.records: List[ClassifiedRecord] = []
        self.failures: List[QueryFailure] = []
        self.counters = HostCounters()

    def add(self, pair: PairResult) -> None:
        if pair.failure is not None:
            self.failures.append(pair.failure)
            self.counters.logs_skipped += 1
            return

        self.counters.logs_processed += 1
        for item in pair.records:
            self.records.append(item)
            self.counters.add_record(item)

    def build(self) -> HostResult:
        return HostResult(
            host=self.host.name,
            records=self.records,
            query_errors=self.failures,
            counters=self.counters,
        )


def plan_queries(
    log_names: Sequence[str],
    levels: Sequence[Union[str, EventLevel]],
    hours_back: float,
    event_ids: Optional[Sequence[int]] = None,
    max_records: int = 1000,
    include_health: bool = False,
    include_events: bool = True,
    health_max_records: int = 64,
    now: Optional[datetime] = None,
) -> List[QuerySpec]:
    """
    Build the query list for a run.

    The look-back window is converted once into an absolute UTC start time.
    The health query, when requested, comes first.
    """
    now = now or utc_now()
    specs: List[QuerySpec] = []

    if include_health:
        specs.append(HealthQuery(max_records=health_max_records))

    if include_events:
        since = now - timedelta(hours=hours_back)
        level_set = frozenset(
            level if isinstance(level, EventLevel) else EventLevel.parse(level)
            for level in levels
        )
        id_set = frozenset(event_ids) if event_ids else None
        for log_name in log_names:
            specs.append(
                LogQuery(
                    log_name=log_name,
                    since_utc=since,
                    levels=level_set,
                    event_ids=id_set,
                    max_records=max_records,
                )
            )

    return specs


class FleetAggregator:
    """
    Queries a host fleet and aggregates the results.

    Queries run as asyncio tasks, at most ``max_concurrency`` at a time
    (1 runs them one after another). Results are assembled in host order,
    then query order, then adapter order, whatever order they finish in.

    Usage:
        aggregator = FleetAggregator(adapter, max_concurrency=8, timeout=30)
        result = await aggregator.run(hosts, specs, Thresholds())
    """

    def __init__(
        self,
        adapter: HostQueryAdapter,
        normalizer: Optional[RecordNormalizer] = None,
        classifier: Optional[ThresholdClassifier] = None,
        max_concurrency: int = 1,
        timeout: float = 30.0,
        deadline: Optional[float] = None,
        retry: Optional[RetryPolicy] = None,
        dedup: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the aggregator.

        Args:
            adapter: Host query adapter
            normalizer: Record normalizer (default settings if omitted)
            classifier: Threshold classifier
            max_concurrency: Maximum queries in flight
            timeout: Per-query timeout in seconds
            deadline: Optional deadline for the whole run in seconds
            retry: Retry policy (single attempt if omitted)
            dedup: Collapse repeated log events
            clock: Source of run start/end times
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.adapter = adapter
        self.normalizer = normalizer or RecordNormalizer()
        self.classifier = classifier or ThresholdClassifier()
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self.deadline = deadline
        self.retry = retry or RetryPolicy()
        self.dedup = dedup
        self._clock = clock

    async def run(
        self,
        hosts: Sequence[HostTarget],
        specs: Sequence[QuerySpec],
        thresholds: Thresholds,
    ) -> FleetRunResult:
        """
        Run every query against every host.

        A failed pair is recorded on its host and never affects other
        pairs. When the deadline passes, unfinished pairs are abandoned and
        recorded as timeouts; everything already collected is kept.

        Args:
            hosts: Hosts to query (repeats are ignored)
            specs: Queries to run on each host
            thresholds: Thresholds for health classification

        Returns:
            FleetRunResult
        """
        hosts = list(dict.fromkeys(hosts))
        started_at = self._clock()
        logger.info(
            f"Querying {len(hosts)} host(s) x {len(specs)} quer(ies) "
            f"(concurrency {self.max_concurrency}, timeout {self.timeout}s)"
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks: Dict[asyncio.Task, Tuple[int, int]] = {}
        for host_index, host in enumerate(hosts):
            for spec_index, spec in enumerate(specs):
                task = asyncio.create_task(self._run_pair(host, spec, thresholds, semaphore))
                tasks[task] = (host_index, spec_index)

        done, pending = set(), set()
        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=self.deadline)

        results: Dict[Tuple[int, int], PairResult] = {}
        for task in done:
            results[tasks[task]] = task.result()

        if pending:
            logger.warning(
                f"Run deadline of {self.deadline}s reached, abandoning {len(pending)} quer(ies)"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in pending:
                host_index, spec_index = tasks[task]
                outcome = QueryOutcome.failed(
                    hosts[host_index],
                    specs[spec_index],
                    QueryErrorKind.TIMEOUT,
                    "Abandoned at run deadline",
                )
                results[(host_index, spec_index)] = PairResult(failure=outcome.error)

        per_host: Dict[str, HostResult] = {}
        for host_index, host in enumerate(hosts):
            builder = HostResultBuilder(host)
            for spec_index in range(len(specs)):
                pair = results[(host_index, spec_index)]
                if pair.failure is not None:
                    logger.warning(f"Query failed: {pair.failure.describe()}")
                builder.add(pair)
            per_host[host.name] = builder.build()

        result = FleetRunResult(
            per_host=per_host,
            started_at=started_at,
            completed_at=self._clock(),
            cancelled=bool(pending),
        )
        if self.dedup:
            result = deduplicate(result)

        logger.info(
            f"Run complete: {result.total_records} record(s), "
            f"{len(result.failures)} failed quer(ies) in {result.duration_seconds:.1f}s"
        )
        return result

    def run_sync(
        self,
        hosts: Sequence[HostTarget],
        specs: Sequence[QuerySpec],
        thresholds: Thresholds,
    ) -> FleetRunResult:
        """Blocking wrapper around ``run``."""
        return asyncio.run(self.run(hosts, specs, thresholds))

    async def _run_pair(
        self,
        host: HostTarget,
        spec: QuerySpec,
        thresholds: Thresholds,
        semaphore: asyncio.Semaphore,
    ) -> PairResult:
        outcome = await self._query_with_retry(host, spec, semaphore)
        if not outcome.ok:
            return PairResult(failure=outcome.error)

        records = [self._classify_raw(raw, thresholds) for raw in outcome.records]

        logger.debug(f"{host} / {spec.label}: {len(records)} record(s)")
        return PairResult(records=records)

    def _classify_raw(self, raw: RawRecord, thresholds: Thresholds) -> ClassifiedRecord:
        """
        Normalize and classify one raw record.

        A payload the normalizer still cannot handle is replaced by an
        empty one, so the record survives with default fields.
        """
        try:
            record = self.normalizer.normalize(raw)
        except Exception as e:
            logger.warning(
                f"Malformed {raw.domain.value} payload from {raw.host}, using defaults: {e}"
            )
            record = self.normalizer.normalize(raw.model_copy(update={"payload": {}}))
        verdict = self.classifier.classify(record, thresholds)
        return ClassifiedRecord(record=record, verdict=verdict)

    async def _query_with_retry(
        self,
        host: HostTarget,
        spec: QuerySpec,
        semaphore: asyncio.Semaphore,
    ) -> QueryOutcome:
        attempt = 1
        while True:
            async with semaphore:
                outcome = await self._query_once(host, spec)

            if outcome.ok or not outcome.error.kind.retryable:
                return outcome
            if attempt >= self.retry.max_attempts:
                return outcome

            delay = self.retry.delay_for(attempt)
            logger.info(
                f"Retrying {spec.label} on {host} in {delay:.1f}s "
                f"(attempt {attempt + 1}/{self.retry.max_attempts}): {outcome.error.kind.value}"
            )
            await asyncio.sleep(delay)
            attempt += 1

    async def _query_once(self, host: HostTarget, spec: QuerySpec) -> QueryOutcome:
        try:
            return await asyncio.wait_for(self.adapter.query(host, spec), timeout=self.timeout)
        except asyncio.TimeoutError:
            return QueryOutcome.failed(
                host, spec, QueryErrorKind.TIMEOUT, f"No response within {self.timeout}s"
            )
        except Exception as e:
            # Adapter failures must never unwind past the aggregator
            logger.exception(f"Unexpected adapter error for {spec.label} on {host}")
            return QueryOutcome.failed(
                host, spec, QueryErrorKind.UNREACHABLE, f"Unexpected adapter error: {e}"
            )
