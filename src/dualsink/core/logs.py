"""Logging helpers for dualsink's own diagnostics.

Every message logged through these helpers carries INTERNAL_LOG_MARKER so
the record filter can recognize (and drop) the pipeline's own logs when
they come back around as telemetry.
"""

import logging
from collections.abc import MutableMapping
from typing import Any

INTERNAL_LOG_MARKER = "[dualsink]"


class MarkedLoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """LoggerAdapter that prefixes every message with the internal marker."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        return f"{INTERNAL_LOG_MARKER} {msg}", kwargs


def get_logger(name: str) -> MarkedLoggerAdapter:
    """Return a marked logger for the given module name."""
    return MarkedLoggerAdapter(logging.getLogger(name), {})


def log_exception(
    logger: MarkedLoggerAdapter | logging.Logger,
    message: str,
    **attributes: str | int | float | bool | None,
) -> None:
    """Log the exception currently being handled with structured extras.

    Args:
        logger: Logger to write to.
        message: Human-readable description of what failed.
        **attributes: Additional structured fields (e.g., event_type).
    """
    logger.warning(message, exc_info=True, extra={"dualsink": attributes})
