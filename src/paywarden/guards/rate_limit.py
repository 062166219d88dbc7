"""
RateLimitGuard - Limits payment attempt frequency.

Counts attempts per policy group over a sliding window. The group's
counter lives at the "global" scope and is shared by both directions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from paywarden.guards.base import Guard, GuardResult, PaymentContext
from paywarden.policy.scope import GLOBAL_SCOPE

if TYPE_CHECKING:
    from paywarden.ledger.rate_limiter import RateLimiter
    from paywarden.policy.types import PolicyGroup


class RateLimitGuard(Guard):
    """
    Guard that limits attempt frequency.

    An admitted attempt is counted immediately, before settlement.
    """

    def __init__(self, rate_limiter: RateLimiter, name: str = "rate_limit") -> None:
        self._rate_limiter = rate_limiter
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def check(self, group: PolicyGroup, context: PaymentContext) -> GuardResult:
        """Check (and, when consuming, count) an attempt."""
        rate_limits = group.rate_limits
        if rate_limits is None:
            return self._allow(group)

        if context.consume_rate_limit:
            allowed = await self._rate_limiter.allow(
                group.name, GLOBAL_SCOPE, rate_limits.max_payments, rate_limits.window_ms
            )
        else:
            allowed = await self._rate_limiter.check(
                group.name, GLOBAL_SCOPE, rate_limits.max_payments, rate_limits.window_ms
            )

        if not allowed:
            return self._block(
                group,
                (
                    f'Rate limit exceeded for policy group "{group.name}": '
                    f"at most {rate_limits.max_payments} payments per {rate_limits.window_ms}ms"
                ),
                max_payments=rate_limits.max_payments,
                window_ms=rate_limits.window_ms,
            )

        return self._allow(group)
