"""Python logging handler adapter for dualsink.

This adapter bridges Python's standard library logging module to an
IngestPort, turning each log record into a `log` event for the pipeline.
"""

import logging
import traceback

from dualsink.core.models import EventType
from dualsink.core.ports import IngestPort

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

_DEFAULT_INCLUDE_ATTRS = ["logger", "funcName", "lineno"]


class IngestLogHandler(logging.Handler):
    """Logging handler that writes log records to an IngestPort as `log` events.

    The pipeline's own diagnostics carry the internal marker, which the
    record filter rejects, so attaching this handler to the root logger does
    not feed dualsink's logs back into itself.

    Example:
        ```python
        from dualsink import IngestLogHandler

        handler = IngestLogHandler(ingest, level=logging.WARNING)
        logging.getLogger().addHandler(handler)
        ```
    """

    def __init__(
        self,
        ingest: IngestPort,
        include_attrs: list[str] | None = None,
        level: int = logging.NOTSET,
    ) -> None:
        """Initialize the handler with an ingest sink.

        Args:
            ingest: Sink implementing IngestPort.
            include_attrs: LogRecord attributes copied into the event context.
                Defaults to ["logger", "funcName", "lineno"].
            level: Minimum level handled.
        """
        super().__init__(level=level)
        self._ingest = ingest
        self._include_attrs = include_attrs or _DEFAULT_INCLUDE_ATTRS

    def to_event(self, record: logging.LogRecord) -> dict[str, object]:
        """Convert a LogRecord into a `log` event record."""
        attr_mapping: dict[str, str | int | float | bool] = {
            "logger": record.name,
            "funcName": record.funcName or "",
            "lineno": record.lineno,
            "pathname": record.pathname,
        }
        context: dict[str, object] = {
            key: attr_mapping[key] for key in self._include_attrs if key in attr_mapping
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_LOGRECORD_ATTRS and isinstance(
                value, (str, int, float, bool)
            ):
                context[key] = value

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None:
                context["exc_type"] = exc_type.__name__
            if exc_value is not None:
                context["exc_message"] = str(exc_value)
            if exc_tb is not None:
                context["exc_traceback"] = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )

        return {
            "t": EventType.LOG.value,
            "timestamp": record.created,
            "level": record.levelname.lower(),
            "message": record.getMessage(),
            "context": context,
        }

    def emit(self, record: logging.LogRecord) -> None:
        """Forward a log record to the ingest sink.

        Args:
            record: The log record to emit.
        """
        try:
            self._ingest.write(self.to_event(record))
        except Exception:
            self.handleError(record)
