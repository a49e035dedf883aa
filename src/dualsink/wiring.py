"""Builds the ingest pipeline from DualSinkSettings."""

import random
import socket
from collections.abc import Callable
from dataclasses import dataclass

from dualsink.adapters.buffers import (
    InMemoryRecordBuffer,
    RedisRecordBuffer,
    SQLiteRecordBuffer,
)
from dualsink.adapters.storage import SQLiteAggregateStorage, SQLiteMetricStorage
from dualsink.config import DualSinkSettings
from dualsink.core.aggregation import Aggregator
from dualsink.core.filters import RecordFilter
from dualsink.core.logs import get_logger
from dualsink.core.models import TransformContext
from dualsink.core.ports import IngestPort, RecordBufferPort
from dualsink.ingest import CompositeIngest, DatabaseIngest

logger = get_logger(__name__)


def build_buffer(settings: DualSinkSettings) -> RecordBufferPort:
    """Return the buffer adapter selected by settings.buffer_backend."""
    ttl = settings.buffer_ttl_seconds
    if settings.buffer_backend == "memory":
        return InMemoryRecordBuffer(ttl_seconds=ttl)
    if settings.buffer_backend == "redis":
        return RedisRecordBuffer.from_url(
            settings.redis_url, key=settings.buffer_key, ttl_seconds=ttl
        )
    return SQLiteRecordBuffer(settings.database_path, ttl_seconds=ttl)


def default_context_provider(
    settings: DualSinkSettings,
) -> Callable[[], TransformContext]:
    """Context provider carrying only process-wide values.

    Hosts with sessions or authenticated users pass their own provider to
    build_pipeline instead.
    """
    context = TransformContext(
        environment=settings.environment,
        server_name=socket.gethostname() or "unknown",
        app_version=settings.app_version,
    )
    return lambda: context


@dataclass
class Pipeline:
    """Everything build_pipeline wires together."""

    settings: DualSinkSettings
    metrics: SQLiteMetricStorage
    aggregates: SQLiteAggregateStorage
    database_ingest: DatabaseIngest
    aggregator: Aggregator

    def decorate(self, primary: IngestPort) -> IngestPort:
        """Wrap the host's agent sink so records also reach the database.

        Returns the primary unchanged when auto_configure is off.
        """
        if not self.settings.auto_configure:
            return primary
        return CompositeIngest(primary, self.database_ingest)


def build_pipeline(
    settings: DualSinkSettings | None = None,
    context_provider: Callable[[], TransformContext] | None = None,
    rng: random.Random | None = None,
) -> Pipeline:
    """Build storage, buffer, filter, database sink and aggregator.

    Args:
        settings: Settings to use; read from the environment when omitted.
        context_provider: Supplies per-unit-of-work context to the sink.
        rng: Random source for sampling.
    """
    settings = settings or DualSinkSettings()
    metrics = SQLiteMetricStorage(settings.database_path)
    aggregates = SQLiteAggregateStorage(settings.database_path)
    ingest = DatabaseIngest(
        buffer=build_buffer(settings),
        storage=metrics,
        record_filter=RecordFilter.from_settings(settings.filters, rng=rng),
        enabled=settings.enabled,
        buffer_size=settings.buffer_size,
        context_provider=context_provider or default_context_provider(settings),
    )
    aggregator = Aggregator(
        metrics, aggregates, batch_size=settings.aggregation.batch_size
    )
    logger.info(
        "pipeline built: enabled=%s buffer=%s size=%d database=%s",
        settings.enabled,
        settings.buffer_backend,
        settings.buffer_size,
        settings.database_path,
    )
    return Pipeline(
        settings=settings,
        metrics=metrics,
        aggregates=aggregates,
        database_ingest=ingest,
        aggregator=aggregator,
    )
