"""BDD step definitions for the ingest and aggregation features."""

import pytest
from pytest_bdd import given, parsers, then, when
from tests.features.ingest.steps_helpers import (
    IngestScenarioContext,
    parse_utc,
    run_async,
)

from dualsink.core.models import Granularity
from dualsink.core.transform import transform


@pytest.fixture
def ctx() -> IngestScenarioContext:
    """Fresh scenario context for each test."""
    return IngestScenarioContext()


# === Sink setup ===
@given("an agent sink")
def step_agent_sink(ctx: IngestScenarioContext) -> None:
    ctx.agent_fails = False


@given("the agent sink fails")
def step_agent_fails(ctx: IngestScenarioContext) -> None:
    ctx.agent_fails = True


@given(parsers.parse("a database sink with buffer size {size:d}"))
def step_database_sink(ctx: IngestScenarioContext, size: int) -> None:
    ctx.buffer_size = size


@given(parsers.parse('event type "{event_type}" is disabled'))
def step_disable_type(ctx: IngestScenarioContext, event_type: str) -> None:
    ctx.disabled_types.append(event_type)


@given("digesting is deferred")
def step_defer_digest(ctx: IngestScenarioContext) -> None:
    ctx.ingest.should_digest_when_buffer_is_full(False)


@when("digesting is allowed")
def step_allow_digest(ctx: IngestScenarioContext) -> None:
    ctx.ingest.should_digest(True)


# === Writing ===
@when(parsers.parse("{n:d} {event_type} records are written"))
def step_write_n(ctx: IngestScenarioContext, n: int, event_type: str) -> None:
    for i in range(n):
        ctx.ingest.write({"t": event_type, "timestamp": 1705314600 + i, "url": f"/r/{i}"})


@when(parsers.parse('a request record with duration "{duration}" is written'))
def step_write_malformed(ctx: IngestScenarioContext, duration: str) -> None:
    ctx.ingest.write({"t": "request", "duration": duration})


@when("a request record is written immediately")
def step_write_now(ctx: IngestScenarioContext) -> None:
    ctx.ingest.write_now({"t": "request", "timestamp": 1705314600})


@when("the sink is flushed")
def step_flush(ctx: IngestScenarioContext) -> None:
    ctx.ingest.flush()


@when("the sink is digested")
def step_digest(ctx: IngestScenarioContext) -> None:
    ctx.ingest.digest()


# === Ingest assertions ===
@then(parsers.parse("the database holds {n:d} rows"))
def step_database_rows(ctx: IngestScenarioContext, n: int) -> None:
    assert ctx.metrics.count_sync() == n


@then(parsers.parse("the buffer holds {n:d} records"))
def step_buffer_records(ctx: IngestScenarioContext, n: int) -> None:
    assert ctx.database.buffer_count() == n


@then(parsers.parse("the agent received {n:d} records"))
def step_agent_records(ctx: IngestScenarioContext, n: int) -> None:
    assert ctx.agent_writes() == n


# === Aggregation ===
@given(parsers.parse('request rows at "{at}" with statuses "{statuses}"'))
@when(parsers.parse('request rows at "{at}" with statuses "{statuses}"'))
def step_request_rows(ctx: IngestScenarioContext, at: str, statuses: str) -> None:
    timestamp = parse_utc(at).timestamp()
    for status in statuses.split(","):
        row = transform(
            {"t": "request", "timestamp": timestamp, "status_code": int(status.strip())}
        )
        ctx.metrics.store_sync(row)


@when(parsers.parse('the {granularity} window containing "{at}" is aggregated'))
def step_aggregate(ctx: IngestScenarioContext, granularity: str, at: str) -> None:
    run_async(ctx.aggregator.aggregate(Granularity(granularity), parse_utc(at)))


@then(
    parsers.parse(
        'the hourly {event_type} rollup for "{date}" hour {hour:d} has {n:d} events'
    )
)
def step_hourly_rollup(
    ctx: IngestScenarioContext, event_type: str, date: str, hour: int, n: int
) -> None:
    rollup = run_async(ctx.aggregates.get("hourly", event_type, date, hour))
    assert rollup is not None
    assert rollup.total_events == n
    ctx.last_rollup = rollup


@then(parsers.parse('the {granularity} {event_type} rollup for "{date}" has {n:d} events'))
def step_rollup(
    ctx: IngestScenarioContext, granularity: str, event_type: str, date: str, n: int
) -> None:
    rollup = run_async(ctx.aggregates.get(granularity, event_type, date))
    assert rollup is not None
    assert rollup.total_events == n
    ctx.last_rollup = rollup


@then(
    parsers.parse(
        "that rollup counts {s2:d} 2xx, {s3:d} 3xx, {s4:d} 4xx and {s5:d} 5xx responses"
    )
)
def step_status_classes(
    ctx: IngestScenarioContext, s2: int, s3: int, s4: int, s5: int
) -> None:
    rollup = ctx.last_rollup
    assert (rollup.status_2xx, rollup.status_3xx, rollup.status_4xx, rollup.status_5xx) == (
        s2,
        s3,
        s4,
        s5,
    )


@then(parsers.parse("there is {n:d} {granularity} rollup"))
def step_rollup_count(ctx: IngestScenarioContext, n: int, granularity: str) -> None:
    assert len(run_async(ctx.aggregates.read(metric_type=granularity))) == n
