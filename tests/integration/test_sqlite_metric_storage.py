"""Tests for SQLite metric storage adapter."""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest

from dualsink.adapters.storage import SQLiteMetricStorage
from dualsink.core.errors import StorageUnavailableError
from dualsink.core.models import (
    CustomDetails,
    ExceptionDetails,
    LogDetails,
    MetricRow,
    QueryDetails,
    RequestDetails,
    TransformContext,
)
from dualsink.core.transform import transform

# All tests in this module are tier 2 (integration tests with file I/O)
pytestmark = pytest.mark.tier(2)

JAN_15_1030 = 1705314600


@pytest.fixture
async def storage(metrics_db_path: str) -> AsyncGenerator[SQLiteMetricStorage]:
    storage = SQLiteMetricStorage(metrics_db_path)
    yield storage
    await storage.close()


@pytest.fixture
async def memory_storage() -> AsyncGenerator[SQLiteMetricStorage]:
    """In-memory metric storage with proper cleanup."""
    storage = SQLiteMetricStorage(":memory:")
    yield storage
    await storage.close()


async def _window(
    storage: SQLiteMetricStorage, event_type: str | None = None, batch_size: int = 10000
) -> list[MetricRow]:
    return [
        row
        async for row in storage.read_window(
            "2024-01-15 00:00:00",
            "2024-01-16 00:00:00",
            event_type=event_type,
            batch_size=batch_size,
        )
    ]


class TestSQLiteMetricStorage:
    """Tests for SQLiteMetricStorage adapter."""

    @pytest.mark.storage
    async def test_store_and_read_round_trip(
        self,
        storage: SQLiteMetricStorage,
        make_row: Callable[..., MetricRow],
        context: TransformContext,
    ) -> None:
        row = make_row(
            "request",
            context=context,
            method="GET",
            url="/orders",
            status_code=201,
            duration=12.5,
            trace_id="tr-1",
        )
        await storage.store(row)

        (stored,) = await _window(storage)

        assert stored.event_timestamp == "2024-01-15 10:30:00"
        assert isinstance(stored.details, RequestDetails)
        assert stored.details.status_code == 201
        assert stored.details.duration == 12.5
        assert stored.trace_id == "tr-1"
        assert stored.session_id == "sess-1"
        assert stored.raw_payload == row.raw_payload

    @pytest.mark.storage
    async def test_user_id_is_stored_as_text(
        self,
        storage: SQLiteMetricStorage,
        make_row: Callable[..., MetricRow],
        context: TransformContext,
    ) -> None:
        await storage.store(make_row(context=context))

        (stored,) = await _window(storage)

        assert stored.user_id == "42"

    @pytest.mark.storage
    async def test_json_columns_round_trip(
        self, storage: SQLiteMetricStorage, make_row: Callable[..., MetricRow]
    ) -> None:
        await storage.store(make_row("query", sql="select ?", bindings=[1, "a"], duration=3))
        await storage.store(
            make_row("exception", **{"class": "KeyError", "trace": [{"file": "a.py"}]})
        )
        await storage.store(
            transform(
                {"t": "log", "timestamp": JAN_15_1030, "level": "info", "context": {"k": [1, 2]}}
            )
        )
        await storage.store(make_row("notification", channel="slack"))

        query, exception, log, custom = await _window(storage)

        assert isinstance(query.details, QueryDetails)
        assert query.details.bindings == [1, "a"]
        assert isinstance(exception.details, ExceptionDetails)
        assert exception.details.exception_trace == [{"file": "a.py"}]
        assert isinstance(log.details, LogDetails)
        assert log.details.log_context == {"k": [1, 2]}
        assert isinstance(custom.details, CustomDetails)
        assert custom.details.custom_metadata == {"channel": "slack"}

    @pytest.mark.storage
    async def test_read_window_pages_with_small_batches(
        self, storage: SQLiteMetricStorage, make_row: Callable[..., MetricRow]
    ) -> None:
        for n in range(7):
            await storage.store(make_row(timestamp=JAN_15_1030 + n, url=f"/r/{n}"))

        rows = await _window(storage, batch_size=3)

        assert [r.details.url for r in rows] == [f"/r/{n}" for n in range(7)]

    @pytest.mark.storage
    async def test_read_window_excludes_upper_bound(
        self, storage: SQLiteMetricStorage, make_row: Callable[..., MetricRow]
    ) -> None:
        await storage.store(make_row(timestamp=JAN_15_1030 - 10 * 3600 - 1800))
        await storage.store(make_row(timestamp=JAN_15_1030 + 13 * 3600 + 1800))

        (row,) = await _window(storage)

        assert row.event_timestamp == "2024-01-15 00:00:00"

    @pytest.mark.storage
    async def test_read_window_filters_event_type(
        self, storage: SQLiteMetricStorage, make_row: Callable[..., MetricRow]
    ) -> None:
        await storage.store(make_row("request"))
        await storage.store(make_row("cache", key="k"))

        rows = await _window(storage, event_type="cache")

        assert [r.event_type for r in rows] == ["cache"]
        assert await storage.event_types_in_window(
            "2024-01-15 00:00:00", "2024-01-16 00:00:00"
        ) == ["cache", "request"]

    @pytest.mark.storage
    async def test_counts_and_recent(
        self, storage: SQLiteMetricStorage, make_row: Callable[..., MetricRow]
    ) -> None:
        for offset, t in enumerate(["query", "request", "query"]):
            await storage.store(make_row(t, timestamp=JAN_15_1030 + offset))

        assert await storage.count() == 3
        assert await storage.count_by_event_type() == {"query": 2, "request": 1}
        recent = await storage.recent(limit=2)
        assert [r.event_timestamp for r in recent] == [
            "2024-01-15 10:30:02",
            "2024-01-15 10:30:01",
        ]

    @pytest.mark.storage
    async def test_sync_and_async_paths_share_a_file(
        self, storage: SQLiteMetricStorage, make_row: Callable[..., MetricRow]
    ) -> None:
        storage.store_sync(make_row())

        assert await storage.count() == 1
        assert storage.count_sync() == 1

    @pytest.mark.storage
    async def test_delete_older_than_runs_in_batches(
        self, storage: SQLiteMetricStorage, make_row: Callable[..., MetricRow]
    ) -> None:
        for n in range(5):
            await storage.store(make_row(timestamp=JAN_15_1030 - 40 * 86400 + n))
        await storage.store(make_row(timestamp=JAN_15_1030))

        deleted = await storage.delete_older_than(30, batch_size=2, now=JAN_15_1030)

        assert deleted == 5
        assert await storage.count() == 1

    @pytest.mark.storage
    async def test_clear(
        self, memory_storage: SQLiteMetricStorage, make_row: Callable[..., MetricRow]
    ) -> None:
        await memory_storage.store(make_row())
        await memory_storage.clear()
        assert await memory_storage.count() == 0

    @pytest.mark.storage
    async def test_ping_succeeds_on_writable_path(self, storage: SQLiteMetricStorage) -> None:
        await storage.ping()
        storage.ping_sync()

    @pytest.mark.storage
    async def test_ping_raises_when_directory_is_missing(self, tmp_path: Path) -> None:
        storage = SQLiteMetricStorage(str(tmp_path / "missing" / "metrics.db"))

        with pytest.raises(StorageUnavailableError):
            await storage.ping()
        with pytest.raises(StorageUnavailableError):
            storage.ping_sync()
