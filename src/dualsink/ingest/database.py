"""Buffered secondary sink that persists records as metric rows."""

from collections.abc import Callable

from dualsink.core.errors import TransformError
from dualsink.core.filters import RecordFilter, event_type_of
from dualsink.core.logs import get_logger, log_exception
from dualsink.core.models import PendingRecord, Record, TransformContext
from dualsink.core.ports import MetricStoragePort, RecordBufferPort
from dualsink.core.transform import transform

logger = get_logger(__name__)


class DatabaseIngest:
    """IngestPort implementation that buffers records and writes them to storage.

    Records pass the filter, are buffered together with the context captured
    at write time, and are transformed and stored once the buffer reaches
    buffer_size. Failures are logged and never reach the caller, except from
    ping, which raises StorageUnavailableError.

    Args:
        buffer: Pending-record buffer.
        storage: Destination for metric rows.
        record_filter: Sampling and allow/deny policy.
        enabled: When False every operation is a no-op.
        buffer_size: Buffer length that triggers a digest.
        context_provider: Returns the application context for the current
            unit of work. Called once per accepted record.
    """

    def __init__(
        self,
        buffer: RecordBufferPort,
        storage: MetricStoragePort,
        record_filter: RecordFilter | None = None,
        enabled: bool = True,
        buffer_size: int = 100,
        context_provider: Callable[[], TransformContext] | None = None,
    ) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self._buffer = buffer
        self._storage = storage
        self._filter = record_filter or RecordFilter()
        self._enabled = enabled
        self._buffer_size = buffer_size
        self._context_provider = context_provider or TransformContext
        self._should_digest = True

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @property
    def digest_allowed(self) -> bool:
        return self._should_digest

    def buffer_count(self) -> int:
        """Return the number of records currently waiting in the buffer."""
        return self._buffer.count()

    def _accepts(self, record: Record) -> bool:
        return self._enabled and self._filter.should_accept(record)

    def write(self, record: Record) -> None:
        """Buffer an accepted record, digesting once the buffer is full."""
        if not self._accepts(record):
            return
        try:
            length = self._buffer.append(self._pending(record))
        except Exception:
            log_exception(
                logger,
                "failed to buffer record",
                event_type=event_type_of(record),
            )
            return

        if length >= self._buffer_size and self._should_digest:
            logger.debug("buffer full (%d/%d), digesting", length, self._buffer_size)
            self.digest()

    def write_now(self, record: Record) -> None:
        """Transform and store an accepted record immediately, skipping the buffer."""
        if not self._accepts(record):
            return
        try:
            self._persist(self._pending(record))
        except Exception:
            log_exception(
                logger,
                "failed to write record immediately",
                event_type=event_type_of(record),
            )

    def ping(self) -> None:
        """Check storage connectivity.

        Raises:
            StorageUnavailableError: If the storage backend cannot be reached.
        """
        if not self._enabled:
            return
        self._storage.ping_sync()

    def should_digest(self, flag: bool = True) -> None:
        self._should_digest = flag

    def should_digest_when_buffer_is_full(self, flag: bool = True) -> None:
        self._should_digest = flag

    def digest(self) -> int:
        """Drain the buffer and persist every record in it.

        A record that fails to transform or store is logged and skipped; the
        rest of the batch is still persisted.

        Returns:
            Number of rows stored.
        """
        if not self._enabled or not self._should_digest:
            return 0
        try:
            batch = self._buffer.drain()
        except Exception:
            log_exception(logger, "failed to drain buffer")
            return 0
        if not batch:
            return 0

        stored = 0
        for pending in batch:
            try:
                self._persist(pending)
            except TransformError as exc:
                logger.warning(
                    "dropping record that failed to transform: %s",
                    exc,
                    extra={"dualsink": {"event_type": exc.event_type}},
                )
            except Exception:
                log_exception(
                    logger,
                    "failed to store record",
                    event_type=event_type_of(pending.record),
                )
            else:
                stored += 1

        logger.info("digested %d records, stored %d", len(batch), stored)
        return stored

    def flush(self) -> None:
        """Discard buffered records without persisting them."""
        try:
            self._buffer.clear()
        except Exception:
            log_exception(logger, "failed to clear buffer")

    def _pending(self, record: Record) -> PendingRecord:
        return PendingRecord(record=dict(record), context=self._context_provider())

    def _persist(self, pending: PendingRecord) -> None:
        row = transform(pending.record, pending.context)
        self._storage.store_sync(row)
