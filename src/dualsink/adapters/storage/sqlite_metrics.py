"""SQLite storage adapter for metric rows."""

import time
from collections.abc import AsyncIterable, Sequence
from dataclasses import fields
from typing import Any

from dualsink.adapters.storage.sqlite_base import (
    SQLiteStorageBase,
    _json_dumps,
    _safe_json_loads,
)
from dualsink.core.models import (
    COMMON_COLUMNS,
    MetricRow,
    detail_columns,
    details_type_for,
)
from dualsink.core.transform import format_timestamp

_METRICS_SCHEMA = """
CREATE TABLE IF NOT EXISTS dualsink_metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    event_timestamp TEXT NOT NULL,
    trace_id TEXT,
    session_id TEXT,
    user_id TEXT,
    environment TEXT,
    server_name TEXT,
    app_version TEXT,
    raw_payload TEXT,
    method TEXT,
    url TEXT,
    route_name TEXT,
    route_path TEXT,
    status_code INTEGER,
    duration REAL,
    memory_usage INTEGER,
    request_size INTEGER,
    response_size INTEGER,
    bootstrap_duration REAL,
    before_middleware_duration REAL,
    action_duration REAL,
    render_duration REAL,
    after_middleware_duration REAL,
    terminating_duration REAL,
    sql TEXT,
    connection TEXT,
    query_duration REAL,
    bindings TEXT,
    exception_class TEXT,
    exception_message TEXT,
    exception_file TEXT,
    exception_line INTEGER,
    exception_trace TEXT,
    job_class TEXT,
    queue TEXT,
    job_status TEXT,
    attempts INTEGER,
    job_duration REAL,
    cache_key TEXT,
    cache_operation TEXT,
    cache_store TEXT,
    mail_class TEXT,
    mail_to TEXT,
    mail_subject TEXT,
    log_level TEXT,
    log_message TEXT,
    log_context TEXT,
    custom_metadata TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_dualsink_metrics_type_ts
    ON dualsink_metrics(event_type, event_timestamp);
CREATE INDEX IF NOT EXISTS idx_dualsink_metrics_ts ON dualsink_metrics(event_timestamp);
CREATE INDEX IF NOT EXISTS idx_dualsink_metrics_status_ts
    ON dualsink_metrics(status_code, event_timestamp);
CREATE INDEX IF NOT EXISTS idx_dualsink_metrics_exception_ts
    ON dualsink_metrics(exception_class, event_timestamp);
CREATE INDEX IF NOT EXISTS idx_dualsink_metrics_job_status_ts
    ON dualsink_metrics(job_status, event_timestamp);
"""

_COLUMNS: tuple[str, ...] = (*COMMON_COLUMNS, *detail_columns())

_JSON_COLUMNS = frozenset(
    {
        "raw_payload",
        "bindings",
        "exception_trace",
        "mail_to",
        "log_context",
        "custom_metadata",
    }
)

_INSERT_METRIC = (
    f"INSERT INTO dualsink_metrics ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
)

_SELECT_COLUMNS = f"SELECT id, {', '.join(_COLUMNS)} FROM dualsink_metrics"

_SELECT_WINDOW = f"""
{_SELECT_COLUMNS}
WHERE event_timestamp >= ? AND event_timestamp < ? AND id > ?
ORDER BY id ASC
LIMIT ?
"""

_SELECT_WINDOW_BY_TYPE = f"""
{_SELECT_COLUMNS}
WHERE event_timestamp >= ? AND event_timestamp < ? AND event_type = ? AND id > ?
ORDER BY id ASC
LIMIT ?
"""

_SELECT_EVENT_TYPES_IN_WINDOW = """
SELECT DISTINCT event_type FROM dualsink_metrics
WHERE event_timestamp >= ? AND event_timestamp < ?
ORDER BY event_type ASC
"""

_SELECT_RECENT = f"""
{_SELECT_COLUMNS}
ORDER BY event_timestamp DESC, id DESC
LIMIT ?
"""

_COUNT_METRICS = """
SELECT COUNT(*) FROM dualsink_metrics
"""

_COUNT_BY_EVENT_TYPE = """
SELECT event_type, COUNT(*) FROM dualsink_metrics
GROUP BY event_type
ORDER BY COUNT(*) DESC, event_type ASC
"""

_DELETE_BATCH_BEFORE = """
DELETE FROM dualsink_metrics WHERE id IN (
    SELECT id FROM dualsink_metrics WHERE event_timestamp < ? ORDER BY id LIMIT ?
)
"""

_CLEAR_METRICS = """
DELETE FROM dualsink_metrics
"""


def _to_row(row: MetricRow) -> tuple[Any, ...]:
    columns = row.columns()
    values = []
    for name in _COLUMNS:
        value = columns.get(name)
        if name in _JSON_COLUMNS:
            value = _json_dumps(value)
        elif name == "user_id" and value is not None:
            value = str(value)
        values.append(value)
    return tuple(values)


def _from_row(db_row: Sequence[Any]) -> MetricRow:
    values = dict(zip(_COLUMNS, db_row[1:], strict=True))
    for name in _JSON_COLUMNS:
        values[name] = _safe_json_loads(values[name])
    variant = details_type_for(values["event_type"])
    detail_values = {f.name: values[f.name] for f in fields(variant)}
    if "custom_metadata" in detail_values and detail_values["custom_metadata"] is None:
        detail_values["custom_metadata"] = {}
    return MetricRow(
        event_type=values["event_type"],
        event_timestamp=values["event_timestamp"],
        details=variant(**detail_values),
        trace_id=values["trace_id"],
        session_id=values["session_id"],
        user_id=values["user_id"],
        environment=values["environment"],
        server_name=values["server_name"],
        app_version=values["app_version"],
        raw_payload=values["raw_payload"] or {},
    )


class SQLiteMetricStorage(SQLiteStorageBase):
    """SQLite implementation of MetricStoragePort.

    The ingest path writes through the sync methods (store_sync, ping_sync);
    the aggregator, retention and status surfaces use the async ones. Point
    both at the same database file to share rows.
    """

    _schema = _METRICS_SCHEMA

    async def store(self, row: MetricRow) -> None:
        """Insert a metric row."""
        async with self.async_connection() as db:
            await db.execute(_INSERT_METRIC, _to_row(row))
            await db.commit()

    def store_sync(self, row: MetricRow) -> None:
        """Synchronous insert for the ingest path."""
        with self.sync_connection() as conn:
            conn.execute(_INSERT_METRIC, _to_row(row))
            conn.commit()

    async def read_window(
        self,
        start: str,
        end: str,
        event_type: str | None = None,
        batch_size: int = 10000,
    ) -> AsyncIterable[MetricRow]:
        """Read rows with start <= event_timestamp < end, in id order.

        Rows are fetched in pages of batch_size using keyset pagination.
        """
        last_id = 0
        while True:
            if event_type is None:
                query, params = _SELECT_WINDOW, (start, end, last_id, batch_size)
            else:
                query = _SELECT_WINDOW_BY_TYPE
                params = (start, end, event_type, last_id, batch_size)
            async with self.async_connection() as db:
                async with db.execute(query, params) as cursor:
                    page = list(await cursor.fetchall())
            for db_row in page:
                yield _from_row(db_row)
            if len(page) < batch_size:
                return
            last_id = page[-1][0]

    def read_sync(self) -> list[MetricRow]:
        """Synchronous read of every row in id order (testing, CLI)."""
        with self.sync_connection() as conn:
            cursor = conn.execute(f"{_SELECT_COLUMNS} ORDER BY id ASC")
            return [_from_row(db_row) for db_row in cursor]

    async def event_types_in_window(self, start: str, end: str) -> list[str]:
        async with self.async_connection() as db:
            async with db.execute(_SELECT_EVENT_TYPES_IN_WINDOW, (start, end)) as cursor:
                return [db_row[0] async for db_row in cursor]

    async def recent(self, limit: int = 5) -> list[MetricRow]:
        async with self.async_connection() as db:
            async with db.execute(_SELECT_RECENT, (limit,)) as cursor:
                return [_from_row(db_row) async for db_row in cursor]

    async def count(self) -> int:
        """Return total number of stored rows."""
        async with self.async_connection() as db:
            async with db.execute(_COUNT_METRICS) as cursor:
                db_row = await cursor.fetchone()
                return db_row[0] if db_row else 0

    def count_sync(self) -> int:
        with self.sync_connection() as conn:
            db_row = conn.execute(_COUNT_METRICS).fetchone()
            return db_row[0] if db_row else 0

    async def count_by_event_type(self) -> dict[str, int]:
        async with self.async_connection() as db:
            async with db.execute(_COUNT_BY_EVENT_TYPE) as cursor:
                return {db_row[0]: db_row[1] async for db_row in cursor}

    async def delete_older_than(
        self, retention_days: int, batch_size: int = 1000, now: float | None = None
    ) -> int:
        """Delete rows older than retention_days, batch_size rows per transaction.

        Returns:
            Total number of rows deleted.
        """
        now = time.time() if now is None else now
        cutoff = format_timestamp(now - retention_days * 86400)
        total = 0
        while True:
            async with self.async_connection() as db:
                cursor = await db.execute(_DELETE_BATCH_BEFORE, (cutoff, batch_size))
                deleted = cursor.rowcount
                await db.commit()
            total += deleted
            if deleted < batch_size:
                return total

    async def clear(self) -> None:
        """Clear all rows from storage."""
        async with self.async_connection() as db:
            await db.execute(_CLEAR_METRICS)
            await db.commit()

    def clear_sync(self) -> None:
        """Synchronous clear for non-async contexts (testing, CLI)."""
        with self.sync_connection() as conn:
            conn.execute(_CLEAR_METRICS)
            conn.commit()
