"""Redis-backed record buffer shared across hosts."""

import json
import math

import redis

from dualsink.core.logs import get_logger
from dualsink.core.models import PendingRecord

logger = get_logger(__name__)


class RedisRecordBuffer:
    """Redis implementation of RecordBufferPort.

    Pending records live in a Redis list. Appends run RPUSH and EXPIRE in one
    MULTI/EXEC block, and drains run LRANGE and DEL in another, so the server
    applies each as a unit and no append can fall between a read and a delete.

    Args:
        client: Synchronous Redis client.
        key: List key holding the buffer.
        ttl_seconds: Lifetime of the list after the last append.
    """

    def __init__(
        self,
        client: redis.Redis,
        key: str = "dualsink:buffer",
        ttl_seconds: float = 3600,
    ) -> None:
        self._client = client
        self._key = key
        self._ttl = max(1, math.ceil(ttl_seconds))

    @classmethod
    def from_url(
        cls, url: str, key: str = "dualsink:buffer", ttl_seconds: float = 3600
    ) -> "RedisRecordBuffer":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        return cls(client, key=key, ttl_seconds=ttl_seconds)

    @property
    def key(self) -> str:
        return self._key

    def append(self, pending: PendingRecord) -> int:
        payload = json.dumps(pending.to_dict(), default=str)
        pipe = self._client.pipeline(transaction=True)
        pipe.rpush(self._key, payload)
        pipe.expire(self._key, self._ttl)
        length, _ = pipe.execute()
        return int(length)

    def drain(self) -> list[PendingRecord]:
        pipe = self._client.pipeline(transaction=True)
        pipe.lrange(self._key, 0, -1)
        pipe.delete(self._key)
        items, _ = pipe.execute()

        drained: list[PendingRecord] = []
        for item in items:
            try:
                data = json.loads(item)
            except json.JSONDecodeError:
                logger.warning("discarding unreadable buffered record")
                continue
            drained.append(PendingRecord.from_dict(data))
        return drained

    def clear(self) -> None:
        self._client.delete(self._key)

    def count(self) -> int:
        return int(self._client.llen(self._key))
