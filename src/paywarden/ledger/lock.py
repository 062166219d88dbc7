"""
Per-scope lock service.

Serialises the read-then-write sequences of the spending ledger and the
rate limiter for one (group, scope, direction) key at a time, so two
concurrent requests cannot both observe a total just under the limit.
Unrelated scopes never contend with each other.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from paywarden.core.exceptions import LockTimeoutError
from paywarden.core.logging import get_logger

if TYPE_CHECKING:
    from paywarden.storage.base import StorageBackend

logger = get_logger("lock")


class ScopeLockService:
    """
    Service for managing per-scope locks (mutexes).

    Implements the lock pattern on top of the storage backend, so the same
    code guards an in-process map or a shared Redis instance.
    """

    def __init__(
        self,
        storage: StorageBackend,
        ttl: int = 5,
        retry_count: int = 50,
        retry_delay: float = 0.01,
    ) -> None:
        """
        Initialize lock service.

        Args:
            storage: Storage backend (Redis/Memory)
            ttl: Lock time-to-live in seconds
            retry_count: Number of retries if lock is held
            retry_delay: Delay between retries in seconds
        """
        self._storage = storage
        self._ttl = ttl
        self._retry_count = retry_count
        self._retry_delay = retry_delay

    async def acquire(self, key: str) -> str | None:
        """
        Acquire the lock for a scope key.

        Args:
            key: Scope key to lock

        Returns:
            lock_token (str) if successful, None if failed
        """
        lock_key = f"lock:{key}"

        for i in range(self._retry_count + 1):
            token = await self._storage.acquire_lock(lock_key, self._ttl)
            if token:
                return token

            if i < self._retry_count:
                await asyncio.sleep(self._retry_delay)

        logger.warning(f"Failed to acquire lock for {key} after {self._retry_count} retries")
        return None

    async def release(self, key: str, lock_token: str) -> bool:
        """
        Release a previously acquired lock.

        Args:
            key: The scope key the lock was acquired for
            lock_token: The ownership token returned by acquire()

        Returns:
            True if released, False if not found or token mismatch
        """
        result = await self._storage.release_lock(f"lock:{key}", lock_token)
        if not result:
            logger.warning(f"Lock for {key} expired before release")
        return result

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[str]:
        """
        Hold the lock for a scope key for the duration of the block.

        Raises:
            LockTimeoutError: If the lock cannot be acquired
        """
        token = await self.acquire(key)
        if token is None:
            raise LockTimeoutError(f"Timed out waiting for lock on {key}", key=key)
        try:
            yield token
        finally:
            await self.release(key, token)
