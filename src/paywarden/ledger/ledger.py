"""
Spending ledger.

Append-only record of completed transfers per (policy group, scope,
direction), queried for "total spent in window" and pruned lazily when a
windowed limit is checked. Uses the unified StorageBackend for persistence.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from paywarden.core.logging import get_logger
from paywarden.core.types import Direction, format_usd, usd_to_base_units
from paywarden.ledger.lock import ScopeLockService
from paywarden.storage.memory import InMemoryStorage

if TYPE_CHECKING:
    from paywarden.storage.base import StorageBackend

logger = get_logger("ledger")

_KEY_PATTERN = re.compile(r"^(?P<group>.+?):(?P<direction>outgoing|incoming):(?P<scope>.+)$")


def now_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class SpendingEntry:
    """
    A single recorded transfer.

    Attributes:
        amount: Amount in base units (always positive)
        timestamp: Recording time in epoch milliseconds
    """

    amount: int
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"amount": self.amount, "ts": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SpendingEntry:
        return cls(amount=int(data["amount"]), timestamp=int(data["ts"]))


@dataclass(frozen=True)
class PaymentRecord:
    """A recorded transfer together with the ledger key it belongs to."""

    group: str
    direction: Direction
    scope: str
    amount: int
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "groupName": self.group,
            "direction": self.direction.value,
            "scope": self.scope,
            "amount": self.amount,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class LimitCheck:
    """Outcome of a total-spending check."""

    allowed: bool
    current_total: int
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


class SpendingLedger:
    """
    Spending ledger using StorageBackend.

    Every read-then-write runs under the lock of its own ledger key, so
    check_limit and record are atomic per scope.
    """

    COLLECTION = "spending"

    def __init__(
        self,
        storage: StorageBackend | None = None,
        locks: ScopeLockService | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """
        Initialize ledger.

        Args:
            storage: Storage backend (defaults to a fresh InMemoryStorage)
            locks: Lock service (defaults to one over the same storage)
            clock: Millisecond clock, injectable for tests
        """
        self._storage = storage or InMemoryStorage()
        self._locks = locks or ScopeLockService(self._storage)
        self._clock = clock or now_ms

    @staticmethod
    def make_key(group: str, scope: str, direction: Direction) -> str:
        """Ledger key for a (group, scope, direction) triple."""
        return f"{group}:{direction.value}:{scope}"

    @staticmethod
    def parse_key(key: str) -> tuple[str, Direction, str] | None:
        """Split a ledger key into (group, direction, scope); None if malformed."""
        match = _KEY_PATTERN.match(key)
        if match is None:
            return None
        return match["group"], Direction(match["direction"]), match["scope"]

    async def _sum(self, key: str, window_ms: int | None) -> int:
        since = None if window_ms is None else self._clock() - window_ms
        entries = await self._storage.get(self.COLLECTION, key, since_ms=since)
        return sum(int(e["amount"]) for e in entries)

    async def check_limit(
        self,
        group: str,
        scope: str,
        max_total_usd: Decimal | int | str,
        window_ms: int | None,
        requested_amount: int,
        direction: Direction = Direction.OUTGOING,
    ) -> LimitCheck:
        """
        Check whether a transfer fits within a total spending limit.

        Args:
            group: Policy group name
            scope: Ledger scope ("global", counterparty, or endpoint URL)
            max_total_usd: Limit in USD
            window_ms: Rolling window; None means lifetime since process start
            requested_amount: Amount of the proposed transfer in base units
            direction: Transfer direction

        Returns:
            LimitCheck with the current total and, when denied, a reason
        """
        limit_units = usd_to_base_units(max_total_usd)
        key = self.make_key(group, scope, direction)

        async with self._locks.hold(f"{self.COLLECTION}:{key}"):
            if window_ms is not None:
                await self._storage.prune(self.COLLECTION, key, self._clock() - window_ms)
            current_total = await self._sum(key, window_ms)

        if current_total + requested_amount > limit_units:
            return LimitCheck(
                allowed=False,
                current_total=current_total,
                reason=(
                    f'Total spending limit exceeded for policy group "{group}" '
                    f'at scope "{scope}". '
                    f"Current: {format_usd(current_total)}, "
                    f"Requested: {format_usd(requested_amount)}, "
                    f"Limit: {format_usd(limit_units)}"
                ),
            )

        return LimitCheck(allowed=True, current_total=current_total)

    async def record(
        self,
        group: str,
        scope: str,
        amount: int,
        direction: Direction = Direction.OUTGOING,
    ) -> None:
        """
        Record a completed transfer.

        Zero and negative amounts are ignored.
        """
        if amount <= 0:
            return

        key = self.make_key(group, scope, direction)
        entry = SpendingEntry(amount=amount, timestamp=self._clock())

        async with self._locks.hold(f"{self.COLLECTION}:{key}"):
            await self._storage.append(self.COLLECTION, key, entry.to_dict())

        logger.debug(f"Recorded {format_usd(amount)} for {key}")

    async def entries(
        self,
        group: str,
        scope: str,
        window_ms: int | None = None,
        direction: Direction = Direction.OUTGOING,
    ) -> list[SpendingEntry]:
        """Entries for a scope, oldest first (read-only)."""
        key = self.make_key(group, scope, direction)
        since = None if window_ms is None else self._clock() - window_ms
        raw = await self._storage.get(self.COLLECTION, key, since_ms=since)
        return [SpendingEntry.from_dict(e) for e in raw]

    async def records(
        self,
        window_ms: int | None = None,
        direction: Direction | None = None,
    ) -> list[PaymentRecord]:
        """
        Every recorded transfer across all groups and scopes, oldest first.

        Args:
            window_ms: Only transfers within this rolling window
            direction: Only transfers in this direction

        Returns:
            PaymentRecord list for reporting (read-only)
        """
        since = None if window_ms is None else self._clock() - window_ms
        records = []
        for key in await self._storage.keys(self.COLLECTION):
            parsed = self.parse_key(key)
            if parsed is None:
                logger.warning(f"Skipping malformed ledger key {key!r}")
                continue
            group, key_direction, scope = parsed
            if direction is not None and key_direction != direction:
                continue
            for raw in await self._storage.get(self.COLLECTION, key, since_ms=since):
                entry = SpendingEntry.from_dict(raw)
                records.append(
                    PaymentRecord(group, key_direction, scope, entry.amount, entry.timestamp)
                )
        records.sort(key=lambda r: r.timestamp)
        return records

    async def current_total(
        self,
        group: str,
        scope: str,
        window_ms: int | None = None,
        direction: Direction = Direction.OUTGOING,
    ) -> int | None:
        """
        Get the current total for a scope (read-only, for reporting).

        Returns:
            Total in base units, or None if nothing was ever recorded
        """
        key = self.make_key(group, scope, direction)
        if not await self._storage.get(self.COLLECTION, key):
            return None
        return await self._sum(key, window_ms)

    async def clear(self) -> int:
        """
        Clear all ledger entries.

        Returns:
            Number of scopes cleared
        """
        return await self._storage.clear(self.COLLECTION)
