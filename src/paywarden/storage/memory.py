"""
In-Memory Storage Backend.

Default storage backend that keeps all data in memory.
Matches the single-process reference behaviour: state is lost when the
process ends and is not shared between server instances.
"""

from __future__ import annotations

import time
import uuid
from copy import deepcopy
from typing import Any

from paywarden.storage.base import StorageBackend, register_storage_backend


class InMemoryStorage(StorageBackend):
    """
    In-memory storage backend.

    Stores sequences in Python dicts: collection -> key -> list of entries.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, list[dict[str, Any]]]] = {}
        self._locks: dict[str, tuple[str, float]] = {}

    def _ensure_collection(self, collection: str) -> dict[str, list[dict[str, Any]]]:
        """Ensure collection exists and return it."""
        if collection not in self._data:
            self._data[collection] = {}
        return self._data[collection]

    async def append(
        self,
        collection: str,
        key: str,
        entry: dict[str, Any],
    ) -> None:
        """Append entry to memory."""
        coll = self._ensure_collection(collection)
        coll.setdefault(key, []).append(deepcopy(entry))

    async def get(
        self,
        collection: str,
        key: str,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        """Get entries from memory."""
        entries = self._ensure_collection(collection).get(key, [])
        if since_ms is not None:
            entries = [e for e in entries if e["ts"] > since_ms]
        return deepcopy(entries)

    async def prune(
        self,
        collection: str,
        key: str,
        before_ms: int,
    ) -> int:
        """Drop expired entries."""
        coll = self._ensure_collection(collection)
        entries = coll.get(key)
        if not entries:
            return 0

        kept = [e for e in entries if e["ts"] > before_ms]
        coll[key] = kept
        return len(entries) - len(kept)

    async def keys(self, collection: str) -> list[str]:
        """List keys in insertion order."""
        return list(self._ensure_collection(collection))

    async def clear(self, collection: str) -> int:
        """Clear all sequences from a collection."""
        coll = self._ensure_collection(collection)
        count = len(coll)
        coll.clear()
        return count

    async def acquire_lock(
        self,
        key: str,
        ttl: int = 30,
    ) -> str | None:
        """Acquire lock (expires after ttl seconds)."""
        now = time.monotonic()

        held = self._locks.get(key)
        if held is not None and now < held[1]:
            return None

        token = str(uuid.uuid4())
        self._locks[key] = (token, now + ttl)
        return token

    async def release_lock(
        self,
        key: str,
        token: str,
    ) -> bool:
        """Release lock if the token matches."""
        held = self._locks.get(key)
        if held is None or held[0] != token:
            return False
        del self._locks[key]
        return True

    async def health_check(self) -> bool:
        """Always healthy for in-memory."""
        return True


# Register as default backend
register_storage_backend("memory", InMemoryStorage)
