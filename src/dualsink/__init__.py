"""dualsink: mirror an APM agent's record stream into SQLite.

Example:
    ```python
    from dualsink import DualSinkSettings, build_pipeline

    pipeline = build_pipeline(DualSinkSettings(database_path="metrics.db"))
    ingest = pipeline.decorate(agent_ingest)
    ingest.write({"t": "request", "method": "GET", "status_code": 200})
    ```
"""

from dualsink.adapters.buffers import (
    InMemoryRecordBuffer,
    RedisRecordBuffer,
    SQLiteRecordBuffer,
)
from dualsink.adapters.logging import IngestLogHandler
from dualsink.adapters.storage import (
    InMemoryAggregateStorage,
    InMemoryMetricStorage,
    SQLiteAggregateStorage,
    SQLiteMetricStorage,
)
from dualsink.config import DualSinkSettings
from dualsink.core.aggregation import Aggregator, summarize
from dualsink.core.errors import DualSinkError, StorageUnavailableError, TransformError
from dualsink.core.filters import RecordFilter
from dualsink.core.models import (
    AggregatedMetricRow,
    EventType,
    Granularity,
    MetricRow,
    PendingRecord,
    TransformContext,
)
from dualsink.core.ports import (
    AggregateStoragePort,
    IngestPort,
    MetricStoragePort,
    RecordBufferPort,
)
from dualsink.core.transform import transform
from dualsink.ingest import CompositeIngest, DatabaseIngest
from dualsink.wiring import Pipeline, build_pipeline

__all__ = [
    "AggregateStoragePort",
    "AggregatedMetricRow",
    "Aggregator",
    "CompositeIngest",
    "DatabaseIngest",
    "DualSinkError",
    "DualSinkSettings",
    "EventType",
    "Granularity",
    "InMemoryAggregateStorage",
    "InMemoryMetricStorage",
    "InMemoryRecordBuffer",
    "IngestLogHandler",
    "IngestPort",
    "MetricRow",
    "MetricStoragePort",
    "PendingRecord",
    "Pipeline",
    "RecordBufferPort",
    "RecordFilter",
    "RedisRecordBuffer",
    "SQLiteAggregateStorage",
    "SQLiteMetricStorage",
    "SQLiteRecordBuffer",
    "StorageUnavailableError",
    "TransformContext",
    "TransformError",
    "build_pipeline",
    "summarize",
    "transform",
]
