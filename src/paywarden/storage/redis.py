"""
Redis Storage Backend.

Storage backend using Redis sorted sets scored by entry timestamp.
Lets several worker processes share one spending view; it does not make
accounting exact across instances.
"""

from __future__ import annotations

import json
import os
import uuid
from typing import Any

import redis.asyncio as redis

from paywarden.storage.base import StorageBackend, register_storage_backend


class RedisStorage(StorageBackend):
    """
    Redis storage backend.

    Each sequence is a sorted set whose members are JSON entries and whose
    scores are the entry timestamps, so window queries and pruning are
    single ZRANGEBYSCORE / ZREMRANGEBYSCORE calls.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        prefix: str = "paywarden",
    ) -> None:
        """
        Initialize Redis storage.

        Args:
            redis_url: Redis connection URL (or from PAYWARDEN_REDIS_URL env)
            prefix: Key prefix for all storage keys
        """
        self._redis_url = redis_url or os.environ.get(
            "PAYWARDEN_REDIS_URL",
            "redis://localhost:6379/0",
        )
        self._prefix = prefix
        self._client: redis.Redis | None = None

    def _get_client(self) -> redis.Redis:
        """Lazy-load Redis client."""
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def _make_key(self, collection: str, key: str) -> str:
        """Create Redis key from collection and key."""
        return f"{self._prefix}:{collection}:{key}"

    def _index_key(self, collection: str) -> str:
        return f"{self._prefix}:{collection}:_index"

    async def append(
        self,
        collection: str,
        key: str,
        entry: dict[str, Any],
    ) -> None:
        """Append entry to the sorted set."""
        client = self._get_client()
        # Members must be unique even for identical amounts at the same ms
        member = json.dumps({**entry, "_id": uuid.uuid4().hex}, sort_keys=True)
        await client.zadd(self._make_key(collection, key), {member: entry["ts"]})
        await client.sadd(self._index_key(collection), key)

    async def get(
        self,
        collection: str,
        key: str,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        """Get entries from Redis, oldest first."""
        client = self._get_client()
        low = "-inf" if since_ms is None else f"({since_ms}"
        members = await client.zrangebyscore(self._make_key(collection, key), low, "+inf")

        entries = []
        for member in members:
            entry = json.loads(member)
            entry.pop("_id", None)
            entries.append(entry)
        return entries

    async def prune(
        self,
        collection: str,
        key: str,
        before_ms: int,
    ) -> int:
        """Drop expired entries."""
        client = self._get_client()
        removed = await client.zremrangebyscore(self._make_key(collection, key), "-inf", before_ms)
        return int(removed)

    async def keys(self, collection: str) -> list[str]:
        """List keys from the collection index."""
        client = self._get_client()
        return sorted(await client.smembers(self._index_key(collection)))

    async def clear(self, collection: str) -> int:
        """Clear all sequences in a collection."""
        client = self._get_client()
        index_key = self._index_key(collection)
        keys = await client.smembers(index_key)

        for key in keys:
            await client.delete(self._make_key(collection, key))
        await client.delete(index_key)

        return len(keys)

    # Lua script for safe lock release: only delete if token matches
    _RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    async def acquire_lock(
        self,
        key: str,
        ttl: int = 30,
    ) -> str | None:
        """
        Acquire a lock with ownership token (Redis SET NX).

        Args:
            key: Lock key (e.g. "lock:spending:daily:outgoing:global")
            ttl: TTL in seconds

        Returns:
            Unique ownership token if acquired, None if already held
        """
        client = self._get_client()
        redis_key = f"{self._prefix}:locks:{key}"
        token = str(uuid.uuid4())

        result = await client.set(redis_key, token, nx=True, ex=ttl)
        if result:
            return token
        return None

    async def release_lock(
        self,
        key: str,
        token: str,
    ) -> bool:
        """
        Release a lock safely using Lua script.

        Only deletes the key if the stored value matches our token.
        """
        client = self._get_client()
        redis_key = f"{self._prefix}:locks:{key}"
        result = await client.eval(self._RELEASE_LOCK_SCRIPT, 1, redis_key, token)
        return int(result) > 0

    async def health_check(self) -> bool:
        """Check Redis connection."""
        try:
            client = self._get_client()
            await client.ping()
            return True
        except redis.RedisError:
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


# Register backend
register_storage_backend("redis", RedisStorage)
