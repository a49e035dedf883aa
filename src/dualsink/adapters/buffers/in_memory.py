"""Process-local record buffer."""

import threading
import time
from collections.abc import Callable

from dualsink.core.models import PendingRecord


class InMemoryRecordBuffer:
    """In-memory implementation of RecordBufferPort.

    Holds pending records in a list guarded by a lock. The whole buffer
    expires ttl_seconds after its most recent append, like a cache entry
    that is rewritten on every write.

    Args:
        ttl_seconds: Lifetime of the buffer after the last append.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: list[PendingRecord] = []
        self._expires_at = 0.0

    def _expire(self) -> None:
        if self._pending and self._clock() >= self._expires_at:
            self._pending.clear()

    def append(self, pending: PendingRecord) -> int:
        with self._lock:
            self._expire()
            self._pending.append(pending)
            self._expires_at = self._clock() + self._ttl
            return len(self._pending)

    def drain(self) -> list[PendingRecord]:
        with self._lock:
            self._expire()
            drained, self._pending = self._pending, []
            return drained

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()

    def count(self) -> int:
        with self._lock:
            self._expire()
            return len(self._pending)
