"""
Rate limiter.

Sliding-window attempt counter per (policy group, scope). An admitted
attempt counts toward the window whether or not the transfer eventually
succeeds, which bounds retry storms.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from paywarden.ledger.ledger import now_ms
from paywarden.ledger.lock import ScopeLockService
from paywarden.storage.memory import InMemoryStorage

if TYPE_CHECKING:
    from paywarden.storage.base import StorageBackend


class RateLimiter:
    """
    Rate limiter backed by StorageBackend.

    Tracks attempt timestamps and prunes everything older than the window
    before each decision.
    """

    COLLECTION = "rate_limits"

    def __init__(
        self,
        storage: StorageBackend | None = None,
        locks: ScopeLockService | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._storage = storage or InMemoryStorage()
        self._locks = locks or ScopeLockService(self._storage)
        self._clock = clock or now_ms

    @staticmethod
    def make_key(group: str, scope: str) -> str:
        return f"{group}:{scope}"

    async def allow(
        self,
        group: str,
        scope: str,
        max_payments: int,
        window_ms: int,
    ) -> bool:
        """
        Count an attempt if the window has room.

        Args:
            group: Policy group name
            scope: Counter scope
            max_payments: Attempts allowed per window
            window_ms: Window length in milliseconds

        Returns:
            True (and the attempt is counted) if fewer than max_payments
            attempts fall in the window, False otherwise
        """
        key = self.make_key(group, scope)

        async with self._locks.hold(f"{self.COLLECTION}:{key}"):
            now = self._clock()
            await self._storage.prune(self.COLLECTION, key, now - window_ms)
            entries = await self._storage.get(self.COLLECTION, key)

            if len(entries) >= max_payments:
                return False

            await self._storage.append(self.COLLECTION, key, {"ts": now})
            return True

    async def check(
        self,
        group: str,
        scope: str,
        max_payments: int,
        window_ms: int,
    ) -> bool:
        """Same decision as allow() without counting the attempt."""
        return await self.current_count(group, scope, window_ms) < max_payments

    async def current_count(self, group: str, scope: str, window_ms: int) -> int:
        """Attempts within the window (read-only)."""
        key = self.make_key(group, scope)
        entries = await self._storage.get(
            self.COLLECTION, key, since_ms=self._clock() - window_ms
        )
        return len(entries)

    async def clear(self) -> int:
        """Clear all rate limit data."""
        return await self._storage.clear(self.COLLECTION)
