"""Fake ingest sinks shared across test modules."""

from typing import Any

from dualsink.core.models import Record


class RecordingIngest:
    """IngestPort fake that records every call it receives."""

    def __init__(self, name: str = "recording", calls: list[tuple[str, Any]] | None = None):
        self.name = name
        self.calls = calls if calls is not None else []

    def _record(self, operation: str, arg: Any = None) -> None:
        self.calls.append((self.name, operation, arg))

    def write(self, record: Record) -> None:
        self._record("write", record)

    def write_now(self, record: Record) -> None:
        self._record("write_now", record)

    def ping(self) -> None:
        self._record("ping")

    def digest(self) -> None:
        self._record("digest")

    def flush(self) -> None:
        self._record("flush")

    def should_digest(self, flag: bool = True) -> None:
        self._record("should_digest", flag)

    def should_digest_when_buffer_is_full(self, flag: bool = True) -> None:
        self._record("should_digest_when_buffer_is_full", flag)


class FailingIngest(RecordingIngest):
    """IngestPort fake that records each call and then raises."""

    def _record(self, operation: str, arg: Any = None) -> None:
        super()._record(operation, arg)
        raise RuntimeError(f"{self.name} {operation} exploded")
