"""Pending-record buffers."""

from dualsink.adapters.buffers.in_memory import InMemoryRecordBuffer
from dualsink.adapters.buffers.redis_buffer import RedisRecordBuffer
from dualsink.adapters.buffers.sqlite_buffer import SQLiteRecordBuffer

__all__ = ["InMemoryRecordBuffer", "RedisRecordBuffer", "SQLiteRecordBuffer"]
