"""
Guard base classes.

Each policy group is enforced by a fixed sequence of guards. A guard
inspects one proposed transfer against one group and either passes it or
explains why it is blocked.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from paywarden.core.types import Direction

if TYPE_CHECKING:
    from paywarden.policy.types import PolicyGroup


@dataclass
class GuardResult:
    """
    Result of a guard check.

    Attributes:
        allowed: Whether the transfer is allowed
        reason: Human-readable reason (set when blocked)
        guard_name: Name of the guard that produced this result
        group_name: Policy group the guard evaluated
        metadata: Additional context data
    """

    allowed: bool
    reason: str | None = None
    guard_name: str = ""
    group_name: str | None = None
    metadata: dict[str, Any] | None = None

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.allowed


@dataclass
class PaymentContext:
    """
    Context for a transfer being checked by guards.

    Attributes:
        direction: Outgoing (we pay) or incoming (we get paid)
        amount: Proposed amount in base units
        candidate_address: Counterparty wallet address, if known
        candidate_domain: Counterparty host name, if known
        request_url: Full URL of the paid resource
        consume_rate_limit: Count this evaluation as a rate-limited attempt
    """

    direction: Direction
    amount: int = 0
    candidate_address: str | None = None
    candidate_domain: str | None = None
    request_url: str | None = None
    consume_rate_limit: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


class Guard(ABC):
    """
    Abstract base class for policy guards.

    Guards never raise for policy violations; they return a blocked result.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this guard."""
        ...

    @abstractmethod
    async def check(self, group: PolicyGroup, context: PaymentContext) -> GuardResult:
        """Check whether the group permits the transfer."""
        ...

    def _allow(self, group: PolicyGroup, **metadata: Any) -> GuardResult:
        return GuardResult(
            allowed=True,
            guard_name=self.name,
            group_name=group.name,
            metadata=metadata or None,
        )

    def _block(self, group: PolicyGroup, reason: str, **metadata: Any) -> GuardResult:
        return GuardResult(
            allowed=False,
            reason=reason,
            guard_name=self.name,
            group_name=group.name,
            metadata=metadata or None,
        )
