"""Maps raw agent records to normalized metric rows.

The agent's schema has drifted across versions, so each column reads an
ordered list of candidate keys and takes the first one present.
"""

import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from dualsink.core.errors import TransformError
from dualsink.core.filters import event_type_of
from dualsink.core.models import (
    CacheDetails,
    CustomDetails,
    Details,
    EventType,
    ExceptionDetails,
    JobDetails,
    LogDetails,
    MailDetails,
    MetricRow,
    QueryDetails,
    Record,
    RequestDetails,
    TransformContext,
)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Keys consumed by the common columns; everything else is custom metadata.
_COMMON_RECORD_KEYS = frozenset({"t", "event_type", "timestamp", "trace", "trace_id"})

_MISSING = object()


def _first(record: Record, *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = record.get(key, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return default


def _coerce(value: Any, kind: Callable[[Any], Any], column: str) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError(f"{column} must be numeric, got bool")
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise TypeError(f"{column} must be numeric, got {value!r}") from exc


def _int(record: Record, column: str, *keys: str) -> int | None:
    value = _first(record, *keys)
    if isinstance(value, float) and not value.is_integer():
        raise TypeError(f"{column} must be an integer, got {value!r}")
    return _coerce(value, int, column)


def _float(record: Record, column: str, *keys: str) -> float | None:
    return _coerce(_first(record, *keys), float, column)


def _str(record: Record, *keys: str, default: str | None = None) -> str | None:
    value = _first(record, *keys, default=default)
    return None if value is None else str(value)


def _as_list(value: Any, column: str) -> list[Any] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, Mapping):
        return [dict(value)]
    raise TypeError(f"{column} must be a list, got {type(value).__name__}")


def _list(record: Record, column: str, *keys: str) -> list[Any] | None:
    return _as_list(_first(record, *keys), column)


def format_timestamp(value: Any) -> str:
    """Format an epoch timestamp as UTC with second precision.

    Sub-second precision is dropped to match the stored column.
    """
    if value is None:
        value = time.time()
    seconds = _coerce(value, float, "timestamp")
    return datetime.fromtimestamp(int(seconds), tz=UTC).strftime(TIMESTAMP_FORMAT)


def _trace_id(record: Record, event_type: str) -> str | None:
    trace_id = record.get("trace_id")
    if trace_id is not None:
        return str(trace_id)
    # "trace" is the stack trace on exception records
    if event_type == EventType.EXCEPTION.value:
        return None
    trace = record.get("trace")
    if isinstance(trace, (str, int)) and not isinstance(trace, bool):
        return str(trace)
    return None


def _request(record: Record) -> RequestDetails:
    return RequestDetails(
        method=_str(record, "method"),
        url=_str(record, "url"),
        route_name=_str(record, "route_name"),
        route_path=_str(record, "route_path"),
        status_code=_int(record, "status_code", "status_code", "status"),
        duration=_float(record, "duration", "duration"),
        memory_usage=_int(record, "memory_usage", "memory_usage", "peak_memory_usage"),
        request_size=_int(record, "request_size", "request_size"),
        response_size=_int(record, "response_size", "response_size"),
        bootstrap_duration=_float(record, "bootstrap_duration", "bootstrap"),
        before_middleware_duration=_float(
            record, "before_middleware_duration", "before_middleware"
        ),
        action_duration=_float(record, "action_duration", "action"),
        render_duration=_float(record, "render_duration", "render"),
        after_middleware_duration=_float(
            record, "after_middleware_duration", "after_middleware"
        ),
        terminating_duration=_float(record, "terminating_duration", "terminating"),
    )


def _query(record: Record) -> QueryDetails:
    return QueryDetails(
        sql=_str(record, "sql"),
        connection=_str(record, "connection"),
        query_duration=_float(record, "query_duration", "duration", "time"),
        bindings=_list(record, "bindings", "bindings"),
    )


def _exception(record: Record) -> ExceptionDetails:
    trace = _first(record, "stack_trace", "trace")
    return ExceptionDetails(
        exception_class=_str(record, "exception_class", "class"),
        exception_message=_str(record, "exception_message", "message"),
        exception_file=_str(record, "file"),
        exception_line=_int(record, "exception_line", "line"),
        exception_trace=_as_list(trace, "exception_trace"),
    )


def _job(record: Record) -> JobDetails:
    return JobDetails(
        job_class=_str(record, "job_class", "job"),
        queue=_str(record, "queue"),
        job_status=_str(record, "status", "job_status", default="queued"),
        attempts=_int(record, "attempts", "attempts"),
        job_duration=_float(record, "job_duration", "duration"),
    )


def _cache(record: Record) -> CacheDetails:
    return CacheDetails(
        cache_key=_str(record, "key", "cache_key"),
        cache_operation=_str(record, "operation", "type"),
        cache_store=_str(record, "store"),
    )


def _mail(record: Record) -> MailDetails:
    return MailDetails(
        mail_class=_str(record, "mail_class", "mailable"),
        mail_to=_list(record, "mail_to", "to"),
        mail_subject=_str(record, "subject"),
    )


def _log(record: Record) -> LogDetails:
    return LogDetails(
        log_level=_str(record, "level"),
        log_message=_str(record, "message"),
        log_context=record.get("context"),
    )


def _custom(record: Record) -> CustomDetails:
    return CustomDetails(
        custom_metadata={
            k: v for k, v in record.items() if k not in _COMMON_RECORD_KEYS
        }
    )


_PROJECTIONS: dict[str, Callable[[Record], Details]] = {
    EventType.REQUEST.value: _request,
    EventType.QUERY.value: _query,
    EventType.EXCEPTION.value: _exception,
    EventType.JOB.value: _job,
    EventType.QUEUED_JOB.value: _job,
    EventType.CACHE.value: _cache,
    EventType.MAIL.value: _mail,
    EventType.LOG.value: _log,
}


def transform(record: Record, context: TransformContext | None = None) -> MetricRow:
    """Transform a raw record into a metric row.

    Args:
        record: The agent record.
        context: Application context captured when the record was written.

    Returns:
        MetricRow whose details hold only the fields for its event type.

    Raises:
        TransformError: If the record is not a mapping or a field has the
            wrong shape. Callers drop the record and carry on.
    """
    if not isinstance(record, Mapping):
        raise TransformError(f"record must be a mapping, got {type(record).__name__}")

    event_type = event_type_of(record)
    ctx = context or TransformContext()
    try:
        project = _PROJECTIONS.get(event_type, _custom)
        return MetricRow(
            event_type=event_type,
            event_timestamp=format_timestamp(record.get("timestamp")),
            details=project(record),
            trace_id=_trace_id(record, event_type),
            session_id=ctx.session_id,
            user_id=ctx.user_id,
            environment=ctx.environment,
            server_name=ctx.server_name,
            app_version=ctx.app_version,
            raw_payload=dict(record),
        )
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        raise TransformError(str(exc), event_type=event_type) from exc
