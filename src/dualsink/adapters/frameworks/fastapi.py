"""FastAPI adapter for the operator status and export endpoints."""

from fastapi import APIRouter, HTTPException, Query, Response
from fastapi.concurrency import run_in_threadpool

from dualsink.core.encoding.ndjson import encode_aggregates, encode_rows
from dualsink.core.errors import StorageUnavailableError
from dualsink.core.models import Granularity
from dualsink.core.ports import AggregateStoragePort, MetricStoragePort
from dualsink.core.transform import format_timestamp
from dualsink.ingest.database import DatabaseIngest

_FAR_FUTURE = "9999-12-31 23:59:59"
# Epoch seconds of _FAR_FUTURE
_MAX_SINCE = 253402300799


def create_status_router(
    ingest: DatabaseIngest,
    metrics: MetricStoragePort,
    aggregates: AggregateStoragePort,
) -> APIRouter:
    """Create a FastAPI router with /status, /metrics/rows and /metrics/aggregates.

    Args:
        ingest: The database sink whose buffer and settings are reported.
        metrics: Storage adapter implementing MetricStoragePort.
        aggregates: Storage adapter implementing AggregateStoragePort.

    Returns:
        APIRouter with the three endpoints configured.
    """
    router = APIRouter()

    @router.get("/status")
    async def get_status() -> dict[str, object]:
        """Return sink configuration, buffer state and row counts."""
        try:
            await metrics.ping()
        except StorageUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {
            "enabled": ingest.is_enabled,
            "buffer_size": ingest.buffer_size,
            "buffer_count": await run_in_threadpool(ingest.buffer_count),
            "digest_allowed": ingest.digest_allowed,
            "total_rows": await metrics.count(),
            "rows_by_event_type": await metrics.count_by_event_type(),
        }

    @router.get("/metrics/rows")
    async def get_rows(
        since: float = Query(default=0, ge=0, le=_MAX_SINCE),
        event_type: str | None = Query(default=None),
    ) -> Response:
        """Return metric rows in NDJSON format.

        Args:
            since: Unix timestamp. Returns rows stamped at or after it.
            event_type: Restrict to one event type.
        """
        rows = [
            row
            async for row in metrics.read_window(
                format_timestamp(since), _FAR_FUTURE, event_type=event_type
            )
        ]
        return Response(content=encode_rows(rows), media_type="application/x-ndjson")

    @router.get("/metrics/aggregates")
    async def get_aggregates(
        granularity: Granularity | None = Query(default=None),
        event_type: str | None = Query(default=None),
    ) -> Response:
        """Return rollup rows in NDJSON format."""
        rows = await aggregates.read(
            metric_type=granularity.value if granularity is not None else None,
            event_type=event_type,
        )
        return Response(
            content=encode_aggregates(rows),
            media_type="application/x-ndjson",
        )

    return router
