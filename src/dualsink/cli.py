"""CLI entrypoint.

Commands:
- `dualsink install`: create the metric and rollup tables
- `dualsink status [--detailed]`: configuration, connectivity and row counts
- `dualsink test [--no-filters]`: write a synthetic record and verify it was stored
- `dualsink aggregate [--at ISO-8601]`: roll stored rows up
- `dualsink cleanup [--retention-days N]`: delete rows past the retention window

Settings come from DUALSINK_* environment variables; --database overrides
the database path for a single invocation.
"""

import argparse
import asyncio
import logging
import time
import uuid
from datetime import UTC, datetime

from dualsink.config import DualSinkSettings, FilterSettings
from dualsink.core.errors import StorageUnavailableError
from dualsink.core.models import Granularity
from dualsink.wiring import Pipeline, build_pipeline


def _status_lines(pipeline: Pipeline, detailed: bool) -> list[str]:
    settings = pipeline.settings
    ingest = pipeline.database_ingest
    lines = [
        f"enabled: {'yes' if settings.enabled else 'no'}",
        f"auto configure: {'yes' if settings.auto_configure else 'no'}",
        f"database: {settings.database_path}",
    ]
    if detailed:
        filters = settings.filters
        lines += [
            f"buffer backend: {settings.buffer_backend}",
            f"buffer ttl: {settings.buffer_ttl_seconds:g}s",
            f"cleanup: {'enabled' if settings.cleanup.enabled else 'disabled'}"
            f" (retention {settings.cleanup.retention_days} days)",
            f"aggregation: {'enabled' if settings.aggregation.enabled else 'disabled'}"
            f" (schedule {settings.aggregation.schedule!r})",
            "monitored event types: "
            + (", ".join(filters.event_types) if filters.event_types else "all"),
        ]
        if filters.disabled_types:
            lines.append("disabled event types: " + ", ".join(filters.disabled_types))
        for event_type, rate in sorted(filters.sampling_rates.items()):
            lines.append(f"sampling {event_type}: {rate * 100:g}%")
    if ingest.is_enabled:
        lines.append(
            f"database ingest: active (buffer {ingest.buffer_count()}/{ingest.buffer_size})"
        )
    else:
        lines.append("database ingest: disabled")
    return lines


async def _status(pipeline: Pipeline, detailed: bool) -> int:
    for line in _status_lines(pipeline, detailed):
        print(line)
    try:
        await pipeline.metrics.ping()
    except StorageUnavailableError as exc:
        print(f"database: connection failed - {exc}")
        return 1
    print("database: connected")

    print(f"total rows: {await pipeline.metrics.count():,}")
    counts = await pipeline.metrics.count_by_event_type()
    if counts:
        print("top event types:")
        for event_type, count in list(counts.items())[:5]:
            print(f"  {event_type}: {count:,}")
    recent = await pipeline.metrics.recent(limit=5)
    if recent:
        print("recent activity:")
        for row in recent:
            print(f"  {row.event_timestamp}  {row.event_type}")
    return 0


async def _install(pipeline: Pipeline) -> int:
    await pipeline.metrics.initialize()
    await pipeline.aggregates.initialize()
    print(f"tables ready in {pipeline.settings.database_path}")
    return 0


def _test(pipeline: Pipeline) -> int:
    ingest = pipeline.database_ingest
    try:
        ingest.ping()
    except StorageUnavailableError as exc:
        print(f"database: connection failed - {exc}")
        return 1

    test_id = uuid.uuid4().hex
    before = pipeline.metrics.count_sync()
    ingest.write_now(
        {
            "t": "test",
            "timestamp": time.time(),
            "message": "dualsink test record",
            "test_id": test_id,
        }
    )
    after = pipeline.metrics.count_sync()
    if after != before + 1:
        print("test record was not stored (is the test event type filtered out?)")
        return 1
    print(f"test record {test_id} stored")
    return 0


async def _aggregate(pipeline: Pipeline, at: datetime | None) -> int:
    if not pipeline.settings.aggregation.enabled:
        print("aggregation is disabled")
        return 0
    if at is None:
        rollups = await pipeline.aggregator.run()
    else:
        rollups = []
        for granularity in Granularity:
            rollups.extend(await pipeline.aggregator.aggregate(granularity, at))
    for granularity in Granularity:
        written = sum(1 for r in rollups if r.metric_type == granularity.value)
        print(f"{granularity.value}: {written} rollups")
    return 0


async def _cleanup(pipeline: Pipeline, retention_days: int | None) -> int:
    cleanup = pipeline.settings.cleanup
    if not cleanup.enabled:
        print("cleanup is disabled")
        return 0
    days = cleanup.retention_days if retention_days is None else retention_days
    deleted = await pipeline.metrics.delete_older_than(
        days, batch_size=cleanup.batch_size
    )
    print(f"deleted {deleted:,} rows older than {days} days")
    return 0


def _parse_at(value: str) -> datetime:
    at = datetime.fromisoformat(value)
    return at if at.tzinfo else at.replace(tzinfo=UTC)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dualsink")
    p.add_argument("--database", help="Override DUALSINK_DATABASE_PATH")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("install", help="Create the database tables")

    ps = sub.add_parser("status", help="Show configuration and stored row counts")
    ps.add_argument("--detailed", action="store_true", help="Show detailed configuration")

    pt = sub.add_parser("test", help="Write a synthetic record and verify it was stored")
    pt.add_argument(
        "--no-filters", action="store_true", help="Accept every event type for this run"
    )

    pa = sub.add_parser("aggregate", help="Roll stored rows up")
    pa.add_argument(
        "--at",
        type=_parse_at,
        metavar="ISO-8601",
        help="Aggregate the windows containing this time (default: previous hour)",
    )

    pc = sub.add_parser("cleanup", help="Delete rows older than the retention window")
    pc.add_argument("--retention-days", type=_positive_int, metavar="DAYS")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = DualSinkSettings()
    overrides: dict[str, object] = {}
    if args.database:
        overrides["database_path"] = args.database
    if args.cmd == "test" and args.no_filters:
        overrides["filters"] = FilterSettings(event_types=[])
    if overrides:
        settings = settings.model_copy(update=overrides)

    pipeline = build_pipeline(settings)
    if args.cmd == "install":
        return asyncio.run(_install(pipeline))
    if args.cmd == "status":
        return asyncio.run(_status(pipeline, args.detailed))
    if args.cmd == "test":
        return _test(pipeline)
    if args.cmd == "aggregate":
        return asyncio.run(_aggregate(pipeline, args.at))
    return asyncio.run(_cleanup(pipeline, args.retention_days))


if __name__ == "__main__":
    raise SystemExit(main())
