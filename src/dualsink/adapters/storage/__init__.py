"""Storage adapters for metric rows and rollups."""

from dualsink.adapters.storage.in_memory import (
    InMemoryAggregateStorage,
    InMemoryMetricStorage,
)
from dualsink.adapters.storage.sqlite_aggregates import SQLiteAggregateStorage
from dualsink.adapters.storage.sqlite_metrics import SQLiteMetricStorage

__all__ = [
    "InMemoryAggregateStorage",
    "InMemoryMetricStorage",
    "SQLiteAggregateStorage",
    "SQLiteMetricStorage",
]
