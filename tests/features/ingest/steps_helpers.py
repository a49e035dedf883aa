"""Shared state and helpers for the ingest and aggregation scenarios."""

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from dualsink.adapters.buffers import InMemoryRecordBuffer
from dualsink.adapters.storage import InMemoryAggregateStorage, InMemoryMetricStorage
from dualsink.core.aggregation import Aggregator
from dualsink.core.filters import RecordFilter
from dualsink.core.transform import TIMESTAMP_FORMAT
from dualsink.ingest import CompositeIngest, DatabaseIngest
from tests.fakes import FailingIngest, RecordingIngest

T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion from a synchronous step."""
    return asyncio.run(coro)


def parse_utc(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=UTC)


@dataclass
class IngestScenarioContext:
    """State carried between steps of one scenario.

    The composite sink is built on first use so Given steps can still
    adjust the filter or the agent before any record is written.
    """

    calls: list[tuple[str, Any]] = field(default_factory=list)
    agent_fails: bool = False
    buffer_size: int = 100
    disabled_types: list[str] = field(default_factory=list)
    buffer: InMemoryRecordBuffer = field(default_factory=InMemoryRecordBuffer)
    metrics: InMemoryMetricStorage = field(default_factory=InMemoryMetricStorage)
    aggregates: InMemoryAggregateStorage = field(default_factory=InMemoryAggregateStorage)
    last_rollup: Any = None
    _ingest: CompositeIngest | None = None

    @property
    def database(self) -> DatabaseIngest:
        return self.ingest.secondary  # type: ignore[return-value]

    @property
    def ingest(self) -> CompositeIngest:
        if self._ingest is None:
            agent_type = FailingIngest if self.agent_fails else RecordingIngest
            database = DatabaseIngest(
                self.buffer,
                self.metrics,
                record_filter=RecordFilter(disabled_types=self.disabled_types),
                buffer_size=self.buffer_size,
            )
            self._ingest = CompositeIngest(agent_type("agent", self.calls), database)
        return self._ingest

    def agent_writes(self) -> int:
        return sum(1 for _, op, _ in self.calls if op == "write")

    @property
    def aggregator(self) -> Aggregator:
        return Aggregator(self.metrics, self.aggregates)
