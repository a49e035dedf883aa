"""Port interfaces for sinks, buffers and storage adapters.

These protocols define the contracts that adapters must implement.
The core pipeline depends only on these interfaces, not concrete implementations.
"""

from collections.abc import AsyncIterable, Iterable
from typing import Protocol, runtime_checkable

from dualsink.core.models import AggregatedMetricRow, MetricRow, PendingRecord, Record


@runtime_checkable
class IngestPort(Protocol):
    """Port for anything that consumes the agent's record stream.

    Both the external monitoring agent and DatabaseIngest satisfy it, which
    is what lets CompositeIngest fan out to the two.
    """

    def write(self, record: Record) -> None:
        """Accept a record for eventual delivery."""
        ...

    def write_now(self, record: Record) -> None:
        """Accept a record and deliver it immediately."""
        ...

    def ping(self) -> None:
        """Check that the sink's backend is reachable."""
        ...

    def digest(self) -> object:
        """Deliver whatever is buffered."""
        ...

    def flush(self) -> None:
        """Discard whatever is buffered."""
        ...

    def should_digest(self, flag: bool = True) -> None:
        """Allow or forbid digesting."""
        ...


@runtime_checkable
class RecordBufferPort(Protocol):
    """Port for the pending-record buffer.

    Adapters must make append and drain atomic with respect to each other so
    concurrent writers can neither lose appends nor drain the same batch twice.
    Examples: InMemoryRecordBuffer, SQLiteRecordBuffer, RedisRecordBuffer.
    """

    def append(self, pending: PendingRecord) -> int:
        """Append a record and return the buffer length after the append."""
        ...

    def drain(self) -> list[PendingRecord]:
        """Remove and return every unexpired record, oldest first."""
        ...

    def clear(self) -> None:
        """Discard every buffered record."""
        ...

    def count(self) -> int:
        """Return the number of unexpired buffered records."""
        ...


@runtime_checkable
class MetricStoragePort(Protocol):
    """Port for metric row storage.

    Examples: InMemoryMetricStorage, SQLiteMetricStorage.
    """

    async def store(self, row: MetricRow) -> None:
        """Insert a metric row."""
        ...

    def store_sync(self, row: MetricRow) -> None:
        """Insert a metric row from synchronous code (the ingest path)."""
        ...

    def read_window(
        self,
        start: str,
        end: str,
        event_type: str | None = None,
        batch_size: int = 10000,
    ) -> AsyncIterable[MetricRow]:
        """Read rows with start <= event_timestamp < end.

        Args:
            start: Inclusive lower bound, YYYY-MM-DD HH:MM:SS.
            end: Exclusive upper bound, YYYY-MM-DD HH:MM:SS.
            event_type: Restrict to one event type when given.
            batch_size: Rows fetched per round trip.
        """
        ...

    async def event_types_in_window(self, start: str, end: str) -> list[str]:
        """Return the distinct event types present in the window."""
        ...

    async def recent(self, limit: int = 5) -> list[MetricRow]:
        """Return the newest rows, newest first."""
        ...

    async def count(self) -> int:
        """Return the total number of stored rows."""
        ...

    async def count_by_event_type(self) -> dict[str, int]:
        """Return row counts grouped by event type."""
        ...

    async def delete_older_than(
        self, retention_days: int, batch_size: int = 1000, now: float | None = None
    ) -> int:
        """Delete rows older than the retention window in fixed-size batches."""
        ...

    async def ping(self) -> None:
        """Raise StorageUnavailableError if the backend cannot be reached."""
        ...

    def ping_sync(self) -> None:
        """Synchronous connectivity check."""
        ...


@runtime_checkable
class AggregateStoragePort(Protocol):
    """Port for aggregated rollup storage."""

    async def upsert(self, row: AggregatedMetricRow) -> None:
        """Insert or overwrite the row stored under row.key."""
        ...

    async def get(
        self,
        metric_type: str,
        event_type: str,
        metric_date: str,
        metric_hour: int | None = None,
    ) -> AggregatedMetricRow | None:
        """Return the row stored under the given key, if any."""
        ...

    async def read(
        self, metric_type: str | None = None, event_type: str | None = None
    ) -> Iterable[AggregatedMetricRow]:
        """Return stored rollups, ordered by date and hour."""
        ...
