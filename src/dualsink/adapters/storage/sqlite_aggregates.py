"""SQLite storage adapter for aggregated rollups."""

from collections.abc import Sequence
from dataclasses import fields
from typing import Any

from dualsink.adapters.storage.sqlite_base import (
    SQLiteStorageBase,
    _json_dumps,
    _safe_json_loads,
)
from dualsink.core.models import AggregatedMetricRow

# SQLite treats NULLs as distinct inside UNIQUE constraints, so daily and
# weekly rows store this sentinel instead of a NULL hour.
_NO_HOUR = -1

_AGGREGATES_SCHEMA = """
CREATE TABLE IF NOT EXISTS dualsink_aggregated_metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    metric_type TEXT NOT NULL,
    event_type TEXT NOT NULL,
    metric_date TEXT NOT NULL,
    metric_hour INTEGER NOT NULL DEFAULT -1,
    total_events INTEGER NOT NULL DEFAULT 0,
    unique_users INTEGER NOT NULL DEFAULT 0,
    unique_sessions INTEGER NOT NULL DEFAULT 0,
    avg_duration REAL,
    min_duration REAL,
    max_duration REAL,
    p95_duration REAL,
    p99_duration REAL,
    status_2xx INTEGER NOT NULL DEFAULT 0,
    status_3xx INTEGER NOT NULL DEFAULT 0,
    status_4xx INTEGER NOT NULL DEFAULT 0,
    status_5xx INTEGER NOT NULL DEFAULT 0,
    total_queries INTEGER NOT NULL DEFAULT 0,
    avg_query_duration REAL,
    total_exceptions INTEGER NOT NULL DEFAULT 0,
    top_exceptions TEXT,
    jobs_queued INTEGER NOT NULL DEFAULT 0,
    jobs_completed INTEGER NOT NULL DEFAULT 0,
    jobs_failed INTEGER NOT NULL DEFAULT 0,
    avg_memory_usage INTEGER,
    peak_memory_usage INTEGER,
    UNIQUE (metric_type, event_type, metric_date, metric_hour)
);
CREATE INDEX IF NOT EXISTS idx_dualsink_aggregates_type_date
    ON dualsink_aggregated_metrics(event_type, metric_date);
CREATE INDEX IF NOT EXISTS idx_dualsink_aggregates_date_hour
    ON dualsink_aggregated_metrics(metric_date, metric_hour);
"""

_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(AggregatedMetricRow))
_KEY_COLUMNS = ("metric_type", "event_type", "metric_date", "metric_hour")

_UPSERT_AGGREGATE = f"""
INSERT INTO dualsink_aggregated_metrics ({', '.join(_COLUMNS)})
VALUES ({', '.join('?' for _ in _COLUMNS)})
ON CONFLICT ({', '.join(_KEY_COLUMNS)}) DO UPDATE SET
{', '.join(f'{c} = excluded.{c}' for c in _COLUMNS if c not in _KEY_COLUMNS)}
"""

_SELECT_AGGREGATES = f"SELECT {', '.join(_COLUMNS)} FROM dualsink_aggregated_metrics"

_ORDER = " ORDER BY metric_date ASC, metric_hour ASC, metric_type ASC, event_type ASC"

_SELECT_BY_KEY = f"""
{_SELECT_AGGREGATES}
WHERE metric_type = ? AND event_type = ? AND metric_date = ? AND metric_hour = ?
"""

_COUNT_AGGREGATES = """
SELECT COUNT(*) FROM dualsink_aggregated_metrics
"""


def _to_row(row: AggregatedMetricRow) -> tuple[Any, ...]:
    values = row.to_dict()
    values["top_exceptions"] = _json_dumps(values["top_exceptions"])
    if values["metric_hour"] is None:
        values["metric_hour"] = _NO_HOUR
    return tuple(values[c] for c in _COLUMNS)


def _from_row(db_row: Sequence[Any]) -> AggregatedMetricRow:
    values = dict(zip(_COLUMNS, db_row, strict=True))
    values["top_exceptions"] = _safe_json_loads(values["top_exceptions"])
    if values["metric_hour"] == _NO_HOUR:
        values["metric_hour"] = None
    return AggregatedMetricRow(**values)


class SQLiteAggregateStorage(SQLiteStorageBase):
    """SQLite implementation of AggregateStoragePort.

    Upserts are keyed by (metric_type, event_type, metric_date, metric_hour)
    through a UNIQUE constraint, so re-running aggregation overwrites.
    """

    _schema = _AGGREGATES_SCHEMA

    async def upsert(self, row: AggregatedMetricRow) -> None:
        """Insert or overwrite the row stored under row.key."""
        async with self.async_connection() as db:
            await db.execute(_UPSERT_AGGREGATE, _to_row(row))
            await db.commit()

    async def get(
        self,
        metric_type: str,
        event_type: str,
        metric_date: str,
        metric_hour: int | None = None,
    ) -> AggregatedMetricRow | None:
        hour = _NO_HOUR if metric_hour is None else metric_hour
        async with self.async_connection() as db:
            async with db.execute(
                _SELECT_BY_KEY, (metric_type, event_type, metric_date, hour)
            ) as cursor:
                db_row = await cursor.fetchone()
        return _from_row(db_row) if db_row else None

    async def read(
        self, metric_type: str | None = None, event_type: str | None = None
    ) -> list[AggregatedMetricRow]:
        """Return stored rollups, optionally filtered, ordered by date and hour."""
        clauses: list[str] = []
        params: list[str] = []
        if metric_type is not None:
            clauses.append("metric_type = ?")
            params.append(metric_type)
        if event_type is not None:
            clauses.append("event_type = ?")
            params.append(event_type)
        query = _SELECT_AGGREGATES
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        async with self.async_connection() as db:
            async with db.execute(query + _ORDER, params) as cursor:
                return [_from_row(db_row) async for db_row in cursor]

    async def count(self) -> int:
        async with self.async_connection() as db:
            async with db.execute(_COUNT_AGGREGATES) as cursor:
                db_row = await cursor.fetchone()
                return db_row[0] if db_row else 0
