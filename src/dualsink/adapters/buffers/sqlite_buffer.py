"""SQLite-backed record buffer shared by every process using the same file."""

import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from dualsink.adapters.storage.sqlite_base import (
    SyncConnectionManager,
    _json_dumps,
    _safe_json_loads,
)
from dualsink.core.logs import get_logger
from dualsink.core.models import PendingRecord

logger = get_logger(__name__)

_BUFFER_SCHEMA = """
CREATE TABLE IF NOT EXISTS dualsink_record_buffer (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    payload TEXT NOT NULL,
    expires_at REAL NOT NULL
);
"""

_PURGE_EXPIRED = """
DELETE FROM dualsink_record_buffer WHERE expires_at <= ?
"""

_INSERT_PENDING = """
INSERT INTO dualsink_record_buffer (payload, expires_at) VALUES (?, ?)
"""

_REFRESH_EXPIRY = """
UPDATE dualsink_record_buffer SET expires_at = ?
"""

_COUNT_LIVE = """
SELECT COUNT(*) FROM dualsink_record_buffer WHERE expires_at > ?
"""

_SELECT_LIVE = """
SELECT payload FROM dualsink_record_buffer WHERE expires_at > ? ORDER BY id ASC
"""

_CLEAR_BUFFER = """
DELETE FROM dualsink_record_buffer
"""


@contextmanager
def _immediate(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block inside BEGIN IMMEDIATE, holding the write lock throughout."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


class SQLiteRecordBuffer:
    """SQLite implementation of RecordBufferPort.

    Every append and drain runs in a single BEGIN IMMEDIATE transaction, so
    concurrent writers serialize on the database write lock: an append can
    never be lost between a read and a rewrite, and a batch is drained once.
    Each append pushes the expiry of the whole buffer to now + ttl_seconds.

    Args:
        db_path: Database file path, or ":memory:" for a process-local buffer.
        ttl_seconds: Lifetime of the buffer after the last append.
        clock: Returns the current wall-clock time in seconds.
    """

    def __init__(
        self,
        db_path: str,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = db_path
        self._ttl = ttl_seconds
        self._clock = clock
        self._manager = SyncConnectionManager(
            db_path, _BUFFER_SCHEMA, isolation_level=None
        )

    @property
    def db_path(self) -> str:
        return self._db_path

    def append(self, pending: PendingRecord) -> int:
        now = self._clock()
        payload = _json_dumps(pending.to_dict())
        with self._manager.connection() as conn, _immediate(conn):
            conn.execute(_PURGE_EXPIRED, (now,))
            conn.execute(_INSERT_PENDING, (payload, now + self._ttl))
            conn.execute(_REFRESH_EXPIRY, (now + self._ttl,))
            db_row = conn.execute(_COUNT_LIVE, (now,)).fetchone()
        return db_row[0] if db_row else 0

    def drain(self) -> list[PendingRecord]:
        now = self._clock()
        with self._manager.connection() as conn, _immediate(conn):
            payloads = [db_row[0] for db_row in conn.execute(_SELECT_LIVE, (now,))]
            conn.execute(_CLEAR_BUFFER)

        drained: list[PendingRecord] = []
        for payload in payloads:
            data = _safe_json_loads(payload)
            if not isinstance(data, dict):
                logger.warning("discarding unreadable buffered record")
                continue
            drained.append(PendingRecord.from_dict(data))
        return drained

    def clear(self) -> None:
        with self._manager.connection() as conn, _immediate(conn):
            conn.execute(_CLEAR_BUFFER)

    def count(self) -> int:
        with self._manager.connection() as conn:
            db_row = conn.execute(_COUNT_LIVE, (self._clock(),)).fetchone()
        return db_row[0] if db_row else 0

    def close(self) -> None:
        self._manager.close()
