"""
Abstract Storage Backend for paywarden.

Pluggable persistence for the spending ledger and rate-limit counters.
Both keep ordered, timestamped entries per key, so the interface is a small
append / get / prune store plus ownership-token locks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    Entries are JSON-serializable dicts carrying an integer millisecond
    timestamp under "ts". Implementations can use any persistence layer
    (memory, Redis, SQL, ...).
    """

    @abstractmethod
    async def append(
        self,
        collection: str,
        key: str,
        entry: dict[str, Any],
    ) -> None:
        """
        Append an entry to the sequence stored at key.

        Args:
            collection: Collection name ("spending", "rate_limits", ...)
            key: Sequence key within the collection
            entry: Entry data, must contain an integer "ts"
        """
        ...

    @abstractmethod
    async def get(
        self,
        collection: str,
        key: str,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Get entries stored at key, oldest first.

        Args:
            collection: Collection name
            key: Sequence key
            since_ms: Only entries with ts strictly greater than this

        Returns:
            List of entries (empty if the key does not exist)
        """
        ...

    @abstractmethod
    async def prune(
        self,
        collection: str,
        key: str,
        before_ms: int,
    ) -> int:
        """
        Drop entries with ts <= before_ms.

        Returns:
            Number of entries removed
        """
        ...

    @abstractmethod
    async def keys(self, collection: str) -> list[str]:
        """
        List the sequence keys of a collection.

        A key may be listed even if all its entries were pruned.
        """
        ...

    @abstractmethod
    async def clear(self, collection: str) -> int:
        """
        Clear all sequences in a collection.

        Returns:
            Number of keys deleted
        """
        ...

    @abstractmethod
    async def acquire_lock(
        self,
        key: str,
        ttl: int = 30,
    ) -> str | None:
        """
        Acquire a lock with an ownership token.

        Args:
            key: Lock key
            ttl: Time-to-live in seconds

        Returns:
            Ownership token if acquired, None if already held
        """
        ...

    @abstractmethod
    async def release_lock(
        self,
        key: str,
        token: str,
    ) -> bool:
        """
        Release a lock if the token still owns it.

        Returns:
            True if released, False if missing or owned by someone else
        """
        ...

    async def health_check(self) -> bool:
        """
        Check if storage is healthy and connected.

        Returns:
            True if healthy
        """
        return True


# Storage backend registry for dependency injection
_STORAGE_BACKENDS: dict[str, type[StorageBackend]] = {}


def register_storage_backend(name: str, backend_class: type[StorageBackend]) -> None:
    """Register a storage backend by name."""
    _STORAGE_BACKENDS[name.lower()] = backend_class


def get_storage_backend(name: str) -> type[StorageBackend] | None:
    """Get a registered storage backend by name."""
    return _STORAGE_BACKENDS.get(name)


def list_storage_backends() -> list[str]:
    """List all registered storage backend names."""
    return list(_STORAGE_BACKENDS.keys())
