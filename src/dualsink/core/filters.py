"""Decides which records are worth persisting."""

import random
from collections.abc import Collection, Mapping
from typing import Any

from dualsink.config import FilterSettings
from dualsink.core.logs import INTERNAL_LOG_MARKER
from dualsink.core.models import EventType, Record


def event_type_of(record: Record) -> str:
    """Return the record's event-type tag, or "unknown" when it has none."""
    tag = record.get("t")
    if tag is None:
        tag = record.get("event_type")
    return str(tag) if tag is not None else EventType.UNKNOWN.value


def _is_internal_log(record: Record) -> bool:
    message = record.get("message")
    if isinstance(message, str) and INTERNAL_LOG_MARKER in message:
        return True
    context = record.get("context")
    first: Any = None
    if isinstance(context, (list, tuple)) and context:
        first = context[0]
    elif isinstance(context, Mapping) and context:
        first = next(iter(context.values()))
    return isinstance(first, str) and INTERNAL_LOG_MARKER in first


class RecordFilter:
    """Sampling plus allow/deny policy applied before buffering.

    Args:
        event_types: Allow-list; empty or None accepts every type.
        disabled_types: Deny-list, checked before the allow-list.
        sampling_rates: Per-type acceptance probability, default 1.0.
        rng: Random source for sampling draws.
    """

    def __init__(
        self,
        event_types: Collection[str] | None = None,
        disabled_types: Collection[str] | None = None,
        sampling_rates: Mapping[str, float] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._allowed = frozenset(event_types or ())
        self._denied = frozenset(disabled_types or ())
        self._rates = dict(sampling_rates or {})
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls, settings: FilterSettings, rng: random.Random | None = None
    ) -> "RecordFilter":
        """Build a filter from a FilterSettings instance."""
        return cls(
            event_types=settings.event_types,
            disabled_types=settings.disabled_types,
            sampling_rates=settings.sampling_rates,
            rng=rng,
        )

    def sampling_rate(self, event_type: str) -> float:
        return self._rates.get(event_type, 1.0)

    def should_accept(self, record: Record) -> bool:
        """Return True if the record should be persisted."""
        event_type = event_type_of(record)

        if event_type == EventType.LOG.value and _is_internal_log(record):
            return False
        if event_type in self._denied:
            return False
        if self._allowed and event_type not in self._allowed:
            return False

        rate = self.sampling_rate(event_type)
        if rate >= 1.0:
            return True
        if rate <= 0.0:
            return False
        return self._rng.random() < rate
