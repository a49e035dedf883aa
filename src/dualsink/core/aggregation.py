"""Rolls stored metric rows up into hourly, daily and weekly summaries.

Aggregation is idempotent: re-running a window recomputes every figure from
the stored rows and overwrites the rollup under the same key, so a rerun over
unchanged rows yields an identical AggregatedMetricRow.
"""

import math
from collections import Counter
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from dualsink.core.logs import get_logger
from dualsink.core.models import (
    AggregatedMetricRow,
    ExceptionDetails,
    Granularity,
    JobDetails,
    MetricRow,
    QueryDetails,
    RequestDetails,
)
from dualsink.core.ports import AggregateStoragePort, MetricStoragePort
from dualsink.core.transform import TIMESTAMP_FORMAT

logger = get_logger(__name__)

TOP_EXCEPTIONS_LIMIT = 5

_COMPLETED_JOB_STATUSES = frozenset({"completed", "processed", "done"})


def percentile(sorted_values: list[float], pct: float) -> float | None:
    """Nearest-rank percentile of an ascending list."""
    if not sorted_values:
        return None
    rank = max(1, math.ceil(pct / 100 * len(sorted_values)))
    return sorted_values[rank - 1]


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 3)


def _mean(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def window_bounds(granularity: Granularity, at: datetime) -> tuple[datetime, datetime]:
    """Return the [start, end) window of the given granularity containing `at`."""
    if at.tzinfo is None:
        at = at.replace(tzinfo=UTC)
    at = at.astimezone(UTC)
    if granularity is Granularity.HOURLY:
        start = at.replace(minute=0, second=0, microsecond=0)
        return start, start + timedelta(hours=1)
    day = at.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity is Granularity.DAILY:
        return day, day + timedelta(days=1)
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=7)


def summarize(
    rows: Iterable[MetricRow],
    granularity: Granularity,
    event_type: str,
    metric_date: str,
    metric_hour: int | None = None,
) -> AggregatedMetricRow:
    """Compute one rollup row from the metric rows of a single event type.

    Args:
        rows: Rows of `event_type` inside the window.
        granularity: Window size the rollup is stored under.
        event_type: Event type being summarized.
        metric_date: ISO date of the window start.
        metric_hour: Hour of the window start, hourly rollups only.

    Returns:
        AggregatedMetricRow with every statistic rounded to 3 decimals.
    """
    rows = list(rows)
    durations = sorted(d for r in rows if (d := r.total_duration) is not None)

    status = Counter[str]()
    memory: list[int] = []
    query_durations: list[float] = []
    exceptions = Counter[str]()
    jobs = Counter[str]()
    total_queries = 0
    total_exceptions = 0

    for row in rows:
        details = row.details
        if isinstance(details, RequestDetails):
            if details.status_code is not None and 200 <= details.status_code < 600:
                status[f"{details.status_code // 100}xx"] += 1
            if details.memory_usage is not None:
                memory.append(details.memory_usage)
        elif isinstance(details, QueryDetails):
            total_queries += 1
            if details.query_duration is not None:
                query_durations.append(details.query_duration)
        elif isinstance(details, ExceptionDetails):
            total_exceptions += 1
            exceptions[details.exception_class or "unknown"] += 1
        elif isinstance(details, JobDetails):
            job_status = (details.job_status or "").lower()
            if job_status in _COMPLETED_JOB_STATUSES:
                jobs["completed"] += 1
            elif job_status == "failed":
                jobs["failed"] += 1
            elif job_status == "queued":
                jobs["queued"] += 1

    top_exceptions = None
    if exceptions:
        ranked = sorted(exceptions.items(), key=lambda item: (-item[1], item[0]))
        top_exceptions = [[name, count] for name, count in ranked[:TOP_EXCEPTIONS_LIMIT]]

    avg_memory = _mean([float(m) for m in memory])

    return AggregatedMetricRow(
        metric_type=granularity.value,
        event_type=event_type,
        metric_date=metric_date,
        metric_hour=metric_hour,
        total_events=len(rows),
        unique_users=len({str(r.user_id) for r in rows if r.user_id is not None}),
        unique_sessions=len({r.session_id for r in rows if r.session_id is not None}),
        avg_duration=_round(_mean(durations)),
        min_duration=_round(durations[0] if durations else None),
        max_duration=_round(durations[-1] if durations else None),
        p95_duration=_round(percentile(durations, 95)),
        p99_duration=_round(percentile(durations, 99)),
        status_2xx=status["2xx"],
        status_3xx=status["3xx"],
        status_4xx=status["4xx"],
        status_5xx=status["5xx"],
        total_queries=total_queries,
        avg_query_duration=_round(_mean(query_durations)),
        total_exceptions=total_exceptions,
        top_exceptions=top_exceptions,
        jobs_queued=jobs["queued"],
        jobs_completed=jobs["completed"],
        jobs_failed=jobs["failed"],
        avg_memory_usage=None if avg_memory is None else int(round(avg_memory)),
        peak_memory_usage=max(memory) if memory else None,
    )


class Aggregator:
    """Computes rollups from metric storage and upserts them.

    Args:
        metrics: Source of metric rows.
        aggregates: Destination for rollup rows.
        batch_size: Rows fetched per round trip while reading a window.
    """

    def __init__(
        self,
        metrics: MetricStoragePort,
        aggregates: AggregateStoragePort,
        batch_size: int = 10000,
    ) -> None:
        self._metrics = metrics
        self._aggregates = aggregates
        self._batch_size = batch_size

    async def aggregate(
        self, granularity: Granularity, at: datetime
    ) -> list[AggregatedMetricRow]:
        """Aggregate the window of `granularity` containing `at`.

        Returns:
            The upserted rollups, one per event type present in the window.
        """
        start, end = window_bounds(granularity, at)
        lower = start.strftime(TIMESTAMP_FORMAT)
        upper = end.strftime(TIMESTAMP_FORMAT)
        metric_hour = start.hour if granularity is Granularity.HOURLY else None

        results: list[AggregatedMetricRow] = []
        for event_type in await self._metrics.event_types_in_window(lower, upper):
            rows = [
                row
                async for row in self._metrics.read_window(
                    lower, upper, event_type=event_type, batch_size=self._batch_size
                )
            ]
            rollup = summarize(
                rows, granularity, event_type, start.date().isoformat(), metric_hour
            )
            await self._aggregates.upsert(rollup)
            results.append(rollup)

        logger.info(
            "aggregated %s window %s: %d event types",
            granularity.value,
            lower,
            len(results),
        )
        return results

    async def run(self, now: datetime | None = None) -> list[AggregatedMetricRow]:
        """Scheduled entry point.

        Aggregates the previous full hour, then refreshes the day and week
        containing it.
        """
        now = now or datetime.now(tz=UTC)
        previous_hour = window_bounds(Granularity.HOURLY, now)[0] - timedelta(hours=1)
        results: list[AggregatedMetricRow] = []
        for granularity in Granularity:
            results.extend(await self.aggregate(granularity, previous_hour))
        return results
