"""Exception hierarchy for the ingest pipeline."""


class DualSinkError(Exception):
    """Base class for all dualsink errors."""


class TransformError(DualSinkError):
    """A record could not be mapped to a metric row."""

    def __init__(self, message: str, event_type: str = "unknown") -> None:
        super().__init__(message)
        self.event_type = event_type


class StorageUnavailableError(DualSinkError):
    """The storage backend could not be reached."""
