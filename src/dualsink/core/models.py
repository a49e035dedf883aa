"""Core domain models for mirrored telemetry."""

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any

# A raw record as produced by the monitoring agent.
Record = Mapping[str, Any]


class EventType(str, Enum):
    """Event-type tags the agent is known to emit."""

    REQUEST = "request"
    QUERY = "query"
    EXCEPTION = "exception"
    JOB = "job"
    QUEUED_JOB = "queued_job"
    CACHE = "cache"
    MAIL = "mail"
    LOG = "log"
    NOTIFICATION = "notification"
    SCHEDULED_TASK = "scheduled_task"
    TEST = "test"
    UNKNOWN = "unknown"


class Granularity(str, Enum):
    """Rollup window size for aggregated rows."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass(frozen=True)
class TransformContext:
    """Application context captured alongside a record.

    Attributes:
        session_id: Session identifier of the unit of work, if any.
        user_id: Authenticated user identifier, if any.
        environment: Deployment environment (e.g., production).
        server_name: Host name of the emitting process.
        app_version: Version string of the host application.
    """

    session_id: str | None = None
    user_id: str | int | None = None
    environment: str | None = None
    server_name: str | None = None
    app_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TransformContext":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class PendingRecord:
    """A buffered record together with the context it was written under."""

    record: dict[str, Any]
    context: TransformContext = field(default_factory=TransformContext)

    def to_dict(self) -> dict[str, Any]:
        return {"record": self.record, "context": self.context.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PendingRecord":
        return cls(
            record=dict(data.get("record", {})),
            context=TransformContext.from_dict(data.get("context", {})),
        )


# --- Per-category detail variants ---


@dataclass(frozen=True)
class RequestDetails:
    method: str | None = None
    url: str | None = None
    route_name: str | None = None
    route_path: str | None = None
    status_code: int | None = None
    duration: float | None = None
    memory_usage: int | None = None
    request_size: int | None = None
    response_size: int | None = None
    bootstrap_duration: float | None = None
    before_middleware_duration: float | None = None
    action_duration: float | None = None
    render_duration: float | None = None
    after_middleware_duration: float | None = None
    terminating_duration: float | None = None


@dataclass(frozen=True)
class QueryDetails:
    sql: str | None = None
    connection: str | None = None
    query_duration: float | None = None
    bindings: list[Any] | None = None


@dataclass(frozen=True)
class ExceptionDetails:
    exception_class: str | None = None
    exception_message: str | None = None
    exception_file: str | None = None
    exception_line: int | None = None
    exception_trace: list[Any] | None = None


@dataclass(frozen=True)
class JobDetails:
    job_class: str | None = None
    queue: str | None = None
    job_status: str | None = None
    attempts: int | None = None
    job_duration: float | None = None


@dataclass(frozen=True)
class CacheDetails:
    cache_key: str | None = None
    cache_operation: str | None = None
    cache_store: str | None = None


@dataclass(frozen=True)
class MailDetails:
    mail_class: str | None = None
    mail_to: list[Any] | None = None
    mail_subject: str | None = None


@dataclass(frozen=True)
class LogDetails:
    log_level: str | None = None
    log_message: str | None = None
    log_context: Any = None


@dataclass(frozen=True)
class CustomDetails:
    """Opaque metadata for event types without dedicated columns."""

    custom_metadata: dict[str, Any] = field(default_factory=dict)


Details = (
    RequestDetails
    | QueryDetails
    | ExceptionDetails
    | JobDetails
    | CacheDetails
    | MailDetails
    | LogDetails
    | CustomDetails
)

DETAILS_BY_EVENT_TYPE: dict[str, type] = {
    EventType.REQUEST.value: RequestDetails,
    EventType.QUERY.value: QueryDetails,
    EventType.EXCEPTION.value: ExceptionDetails,
    EventType.JOB.value: JobDetails,
    EventType.QUEUED_JOB.value: JobDetails,
    EventType.CACHE.value: CacheDetails,
    EventType.MAIL.value: MailDetails,
    EventType.LOG.value: LogDetails,
}

COMMON_COLUMNS = (
    "event_type",
    "event_timestamp",
    "trace_id",
    "session_id",
    "user_id",
    "environment",
    "server_name",
    "app_version",
    "raw_payload",
)


def details_type_for(event_type: str) -> type:
    """Return the detail variant used for the given event type."""
    return DETAILS_BY_EVENT_TYPE.get(event_type, CustomDetails)


def detail_columns() -> list[str]:
    """Return every category column across all variants, in schema order."""
    seen: dict[str, None] = {}
    for variant in (*DETAILS_BY_EVENT_TYPE.values(), CustomDetails):
        for f in fields(variant):
            seen.setdefault(f.name, None)
    return list(seen)


@dataclass(frozen=True)
class MetricRow:
    """The normalized, persisted representation of a record.

    Attributes:
        event_type: Event-type tag of the source record.
        event_timestamp: UTC timestamp, second precision (YYYY-MM-DD HH:MM:SS).
        trace_id: Trace identifier, if the record carried one.
        session_id: Session identifier from the transform context.
        user_id: User identifier from the transform context.
        environment: Environment from the transform context.
        server_name: Host name from the transform context.
        app_version: Application version from the transform context.
        raw_payload: The untouched source record.
        details: Category fields for this event type only.
    """

    event_type: str
    event_timestamp: str
    details: Details
    trace_id: str | None = None
    session_id: str | None = None
    user_id: str | int | None = None
    environment: str | None = None
    server_name: str | None = None
    app_version: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    def columns(self) -> dict[str, Any]:
        """Flatten into column values: common fields plus this row's variant."""
        values = {name: getattr(self, name) for name in COMMON_COLUMNS}
        values.update(asdict(self.details))
        return values

    def is_request(self) -> bool:
        return self.event_type == EventType.REQUEST.value

    def is_query(self) -> bool:
        return self.event_type == EventType.QUERY.value

    def is_exception(self) -> bool:
        return self.event_type == EventType.EXCEPTION.value

    def is_job(self) -> bool:
        return self.event_type in (EventType.JOB.value, EventType.QUEUED_JOB.value)

    def is_error(self) -> bool:
        if not isinstance(self.details, RequestDetails):
            return False
        status = self.details.status_code
        return status is not None and status >= 400

    @property
    def total_duration(self) -> float | None:
        """Duration of the row's primary operation in milliseconds."""
        details = self.details
        if isinstance(details, RequestDetails):
            return details.duration
        if isinstance(details, QueryDetails):
            return details.query_duration
        if isinstance(details, JobDetails):
            return details.job_duration
        return None

    def is_slow(self, threshold: float = 1000.0) -> bool:
        duration = self.total_duration
        return duration is not None and duration > threshold


@dataclass(frozen=True)
class AggregatedMetricRow:
    """A rollup of metric rows for one (granularity, event type, window).

    metric_hour is set only for hourly rows; weekly rows are keyed by the
    Monday that starts the week.
    """

    metric_type: str
    event_type: str
    metric_date: str
    metric_hour: int | None = None
    total_events: int = 0
    unique_users: int = 0
    unique_sessions: int = 0
    avg_duration: float | None = None
    min_duration: float | None = None
    max_duration: float | None = None
    p95_duration: float | None = None
    p99_duration: float | None = None
    status_2xx: int = 0
    status_3xx: int = 0
    status_4xx: int = 0
    status_5xx: int = 0
    total_queries: int = 0
    avg_query_duration: float | None = None
    total_exceptions: int = 0
    top_exceptions: list[list[Any]] | None = None
    jobs_queued: int = 0
    jobs_completed: int = 0
    jobs_failed: int = 0
    avg_memory_usage: int | None = None
    peak_memory_usage: int | None = None

    @property
    def key(self) -> tuple[str, str, str, int | None]:
        return (self.metric_type, self.event_type, self.metric_date, self.metric_hour)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def error_rate(self) -> float:
        """Percentage of 4xx/5xx responses for request rollups."""
        if self.event_type != EventType.REQUEST.value or self.total_events == 0:
            return 0.0
        errors = self.status_4xx + self.status_5xx
        return round(errors / self.total_events * 100, 2)

    def job_success_rate(self) -> float:
        """Percentage of completed jobs among finished ones."""
        if self.event_type not in (EventType.JOB.value, EventType.QUEUED_JOB.value):
            return 0.0
        finished = self.jobs_completed + self.jobs_failed
        if finished == 0:
            return 100.0
        return round(self.jobs_completed / finished * 100, 2)
