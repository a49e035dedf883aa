"""Base class and connection managers for SQLite adapters."""

import asyncio
import json
import sqlite3
import threading
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import aiosqlite

from dualsink.core.errors import StorageUnavailableError


def _safe_json_loads(data: str | None, default: Any = None) -> Any:
    """Safely parse JSON data, returning default on decode error.

    Args:
        data: JSON string to parse, or None for a NULL column.
        default: Value to return if the column is NULL or unparseable.

    Returns:
        Parsed JSON value, or default.
    """
    if data is None:
        return default
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return default


def _json_dumps(value: Any) -> str | None:
    """Serialize a JSON column, keeping NULL for absent values."""
    if value is None:
        return None
    return json.dumps(value, default=str)


class AsyncConnectionManager:
    """Manages async (aiosqlite) database connections.

    Handles schema initialization and connection lifecycle for async contexts.
    For :memory: databases, maintains a persistent connection since SQLite
    in-memory databases are connection-scoped.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    @property
    def _should_close_connection(self) -> bool:
        return self._db_path != ":memory:"

    async def _ensure_initialized(self) -> None:
        """Initialize database schema once."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._db_path == ":memory:":
                self._persistent_conn = await aiosqlite.connect(":memory:")
                await self._persistent_conn.executescript(self._schema)
            else:
                async with aiosqlite.connect(self._db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
            self._initialized = True

    async def _get_connection(self) -> aiosqlite.Connection:
        await self._ensure_initialized()
        if self._db_path == ":memory:":
            if self._persistent_conn is None:
                raise RuntimeError("Memory database connection not initialized")
            return self._persistent_conn
        return await aiosqlite.connect(self._db_path)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections.

        Automatically closes connections for file-based databases.
        For :memory: databases, keeps connections open (they're persistent).
        """
        db = await self._get_connection()
        try:
            yield db
        finally:
            if self._should_close_connection:
                await db.close()

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False


class SyncConnectionManager:
    """Manages sync (sqlite3) database connections.

    For :memory: databases this keeps its own persistent connection, which is
    a separate database from the one AsyncConnectionManager holds.

    Args:
        db_path: Database file path or ":memory:".
        schema: DDL script run once on first use.
        isolation_level: Passed to sqlite3.connect. None puts connections in
            autocommit mode so callers can issue BEGIN IMMEDIATE themselves.
    """

    def __init__(
        self, db_path: str, schema: str, isolation_level: str | None = ""
    ) -> None:
        self._db_path = db_path
        self._schema = schema
        self._isolation_level = isolation_level
        self._initialized = False
        self._lock = threading.Lock()
        self._persistent_conn: sqlite3.Connection | None = None

    @property
    def _should_close_connection(self) -> bool:
        return self._db_path != ":memory:"

    def _connect(self, path: str) -> sqlite3.Connection:
        return sqlite3.connect(path, isolation_level=self._isolation_level)

    def _ensure_initialized(self) -> None:
        """Initialize database schema synchronously."""
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            if self._db_path == ":memory:":
                self._persistent_conn = self._connect(":memory:")
                self._persistent_conn.executescript(self._schema)
            else:
                db = self._connect(self._db_path)
                try:
                    db.execute("PRAGMA journal_mode=WAL")
                    db.executescript(self._schema)
                    db.commit()
                finally:
                    db.close()
            self._initialized = True

    def _get_connection(self) -> sqlite3.Connection:
        self._ensure_initialized()
        if self._db_path == ":memory:":
            if self._persistent_conn is None:
                raise RuntimeError("Sync memory database connection not initialized")
            return self._persistent_conn
        return self._connect(self._db_path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for sync database connections.

        Automatically closes connections for file-based databases.
        For :memory: databases, keeps connections open (they're persistent).
        """
        conn = self._get_connection()
        try:
            yield conn
        finally:
            if self._should_close_connection:
                conn.close()

    def close(self) -> None:
        if self._persistent_conn is not None:
            self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False


class SQLiteStorageBase:
    """Base class for SQLite storage adapters.

    Delegates connection lifecycle to AsyncConnectionManager and
    SyncConnectionManager. Subclasses provide the schema and domain methods.

    IMPORTANT - :memory: Database Isolation:
    When using :memory: databases, the sync (sqlite3) and async (aiosqlite)
    connections are COMPLETELY SEPARATE and do NOT share data. Use a file
    path when the ingest path (sync) and the aggregator (async) must see the
    same rows.
    """

    _schema: str = ""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._async_manager = AsyncConnectionManager(db_path, self._schema)
        self._sync_manager = SyncConnectionManager(db_path, self._schema)

    @property
    def db_path(self) -> str:
        return self._db_path

    async def close(self) -> None:
        """Close persistent connections (for :memory: databases)."""
        await self._async_manager.close()
        self._sync_manager.close()

    @asynccontextmanager
    async def async_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._async_manager.connection() as conn:
            yield conn

    @contextmanager
    def sync_connection(self) -> Iterator[sqlite3.Connection]:
        with self._sync_manager.connection() as conn:
            yield conn

    async def initialize(self) -> None:
        """Create the schema without writing anything."""
        async with self.async_connection():
            pass

    async def ping(self) -> None:
        """Raise StorageUnavailableError if the database cannot be opened."""
        try:
            async with self.async_connection() as db:
                await db.execute("SELECT 1")
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailableError(
                f"SQLite database {self._db_path!r} is unavailable: {exc}"
            ) from exc

    def ping_sync(self) -> None:
        """Synchronous connectivity check."""
        try:
            with self.sync_connection() as conn:
                conn.execute("SELECT 1")
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailableError(
                f"SQLite database {self._db_path!r} is unavailable: {exc}"
            ) from exc
