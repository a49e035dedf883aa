"""Dual-write decorator over a primary and a secondary sink."""

from typing import Any

from dualsink.core.filters import event_type_of
from dualsink.core.logs import get_logger, log_exception
from dualsink.core.models import Record
from dualsink.core.ports import IngestPort

logger = get_logger(__name__)


class CompositeIngest:
    """Forwards every operation to the primary sink, then the secondary.

    Each forwarded call is attempted independently; an exception from either
    sink is logged and swallowed, so neither sink can fail the other or the
    caller.

    Example:
        ```python
        ingest = CompositeIngest(agent_ingest, database_ingest)
        ingest.write({"t": "request", "status_code": 200})
        ```
    """

    def __init__(self, primary: IngestPort, secondary: IngestPort) -> None:
        self._primary = primary
        self._secondary = secondary

    @property
    def primary(self) -> IngestPort:
        return self._primary

    @property
    def secondary(self) -> IngestPort:
        return self._secondary

    def _forward(self, operation: str, *args: Any, **attributes: Any) -> None:
        for role, sink in (("primary", self._primary), ("secondary", self._secondary)):
            method = getattr(sink, operation, None)
            if method is None:
                continue
            try:
                method(*args)
            except Exception:
                log_exception(
                    logger,
                    f"{role} sink {operation} failed",
                    sink=role,
                    **attributes,
                )

    def write(self, record: Record) -> None:
        self._forward("write", record, event_type=event_type_of(record))

    def write_now(self, record: Record) -> None:
        self._forward("write_now", record, event_type=event_type_of(record))

    def ping(self) -> None:
        self._forward("ping")

    def digest(self) -> None:
        self._forward("digest")

    def flush(self) -> None:
        self._forward("flush")

    def should_digest(self, flag: bool = True) -> None:
        self._forward("should_digest", flag)

    def should_digest_when_buffer_is_full(self, flag: bool = True) -> None:
        self._forward("should_digest_when_buffer_is_full", flag)
