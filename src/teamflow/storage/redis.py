"""Redis-based key-value store implementation.

Provides persistent, shared storage using Redis.  Requires redis-py
(asyncio support).  Staged writes are applied in a single MULTI/EXEC
pipeline so a commit is all-or-nothing.

Usage:
    store = RedisKeyValueStore(redis_url="redis://localhost:6379/0")
    async with store.transaction() as txn:
        txn.put("workflow:1", {...})
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from teamflow.storage.base import KeyValueStore, Value

if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed key-value store with connection pooling.

    Every engine key is stored as a JSON string under ``{namespace}:{key}``.

    Args:
        redis_url: Redis connection URL (e.g., redis://localhost:6379/0)
        redis_client: Optional pre-configured Redis client
        namespace: Prefix isolating this store's keys from other tenants
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        redis_client: Redis[Any] | None = None,
        namespace: str = "teamflow",
    ) -> None:
        super().__init__()
        self._redis_url = redis_url
        self._redis: Redis[Any] | None = redis_client
        self._namespace = namespace
        self._initialized = False

    async def _ensure_initialized(self) -> Redis[Any]:
        """Lazy initialization of Redis connection."""
        if not self._initialized:
            if self._redis is None:
                try:
                    from redis.asyncio import from_url
                except ImportError as exc:
                    raise RuntimeError(
                        "redis package not installed. Install with: pip install redis"
                    ) from exc
                self._redis = from_url(self._redis_url, decode_responses=True)
            self._initialized = True
            logger.info("Redis store connected to %s", self._redis_url)
        assert self._redis is not None
        return self._redis

    def _full_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def _read(self, key: str) -> Value | None:
        redis = await self._ensure_initialized()
        data = await redis.get(self._full_key(key))
        if data is None:
            return None
        return json.loads(data)

    async def _scan(self, prefix: str) -> dict[str, Value]:
        redis = await self._ensure_initialized()
        pattern = _GLOB_SPECIAL.sub(r"\\\1", self._full_key(prefix)) + "*"
        full_keys = [k async for k in redis.scan_iter(match=pattern)]
        if not full_keys:
            return {}
        values = await redis.mget(full_keys)
        strip = len(self._namespace) + 1
        return {
            full_key[strip:]: json.loads(raw)
            for full_key, raw in zip(full_keys, values, strict=True)
            if raw is not None
        }

    async def _commit(self, writes: dict[str, Value], deletes: set[str]) -> None:
        redis = await self._ensure_initialized()
        async with redis.pipeline(transaction=True) as pipe:
            for key in deletes:
                pipe.delete(self._full_key(key))
            for key, value in writes.items():
                pipe.set(self._full_key(key), json.dumps(value))
            await pipe.execute()
        logger.debug("Committed %d writes, %d deletes to Redis", len(writes), len(deletes))

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
