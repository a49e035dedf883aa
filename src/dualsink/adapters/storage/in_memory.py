"""In-memory storage adapters for metric rows and rollups."""

import time
from collections.abc import AsyncIterable

from dualsink.core.models import AggregatedMetricRow, MetricRow
from dualsink.core.transform import format_timestamp


class InMemoryMetricStorage:
    """In-memory implementation of MetricStoragePort.

    Stores metric rows in a list. Suitable for testing and
    low-volume applications where persistence is not required.
    """

    def __init__(self) -> None:
        self._rows: list[MetricRow] = []

    async def store(self, row: MetricRow) -> None:
        """Insert a metric row."""
        self._rows.append(row)

    def store_sync(self, row: MetricRow) -> None:
        self._rows.append(row)

    async def read_window(
        self,
        start: str,
        end: str,
        event_type: str | None = None,
        batch_size: int = 10000,
    ) -> AsyncIterable[MetricRow]:
        """Read rows with start <= event_timestamp < end, in insertion order."""
        for row in list(self._rows):
            if not start <= row.event_timestamp < end:
                continue
            if event_type is not None and row.event_type != event_type:
                continue
            yield row

    def read_sync(self) -> list[MetricRow]:
        return list(self._rows)

    async def event_types_in_window(self, start: str, end: str) -> list[str]:
        return sorted(
            {r.event_type for r in self._rows if start <= r.event_timestamp < end}
        )

    async def recent(self, limit: int = 5) -> list[MetricRow]:
        indexed = sorted(
            enumerate(self._rows),
            key=lambda item: (item[1].event_timestamp, item[0]),
            reverse=True,
        )
        return [row for _, row in indexed[:limit]]

    async def count(self) -> int:
        return len(self._rows)

    def count_sync(self) -> int:
        return len(self._rows)

    async def count_by_event_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for row in self._rows:
            counts[row.event_type] = counts.get(row.event_type, 0) + 1
        return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))

    async def delete_older_than(
        self, retention_days: int, batch_size: int = 1000, now: float | None = None
    ) -> int:
        """Delete rows older than retention_days and return how many were removed."""
        now = time.time() if now is None else now
        cutoff = format_timestamp(now - retention_days * 86400)
        kept = [r for r in self._rows if r.event_timestamp >= cutoff]
        deleted = len(self._rows) - len(kept)
        self._rows = kept
        return deleted

    async def clear(self) -> None:
        self._rows.clear()

    async def ping(self) -> None:
        return None

    def ping_sync(self) -> None:
        return None


class InMemoryAggregateStorage:
    """In-memory implementation of AggregateStoragePort, keyed by row.key."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str, str, int | None], AggregatedMetricRow] = {}

    async def upsert(self, row: AggregatedMetricRow) -> None:
        self._rows[row.key] = row

    async def get(
        self,
        metric_type: str,
        event_type: str,
        metric_date: str,
        metric_hour: int | None = None,
    ) -> AggregatedMetricRow | None:
        return self._rows.get((metric_type, event_type, metric_date, metric_hour))

    async def read(
        self, metric_type: str | None = None, event_type: str | None = None
    ) -> list[AggregatedMetricRow]:
        """Return stored rollups, optionally filtered, ordered by date and hour."""
        rows = [
            r
            for r in self._rows.values()
            if (metric_type is None or r.metric_type == metric_type)
            and (event_type is None or r.event_type == event_type)
        ]
        return sorted(
            rows,
            key=lambda r: (
                r.metric_date,
                -1 if r.metric_hour is None else r.metric_hour,
                r.metric_type,
                r.event_type,
            ),
        )

    async def count(self) -> int:
        return len(self._rows)
