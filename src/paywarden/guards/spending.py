"""
SpendingLimitGuard - Enforces per-transfer and total spending limits.

Resolves the most specific limit for the transfer, then checks the single
amount against maxPaymentUsd and the running total against maxTotalUsd.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from paywarden.core.types import format_usd, usd_to_base_units
from paywarden.guards.base import Guard, GuardResult, PaymentContext
from paywarden.policy.scope import find_most_specific_limit

if TYPE_CHECKING:
    from paywarden.ledger.ledger import SpendingLedger
    from paywarden.policy.types import PolicyGroup


class SpendingLimitGuard(Guard):
    """
    Guard that enforces spending limits.

    Reads the spending ledger; it never writes to it.
    """

    def __init__(self, ledger: SpendingLedger, name: str = "spending_limit") -> None:
        self._ledger = ledger
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def check(self, group: PolicyGroup, context: PaymentContext) -> GuardResult:
        """Check the transfer against the most specific applicable limit."""
        match = find_most_specific_limit(
            group.limits_for(context.direction),
            context.candidate_address,
            context.candidate_domain,
            context.request_url,
        )
        if match is None:
            return self._allow(group, scope=None)

        limit = match.limit
        amount = context.amount

        if limit.max_payment_usd is not None:
            max_units = usd_to_base_units(limit.max_payment_usd)
            if amount > max_units:
                return self._block(
                    group,
                    (
                        f'Payment amount {format_usd(amount)} exceeds spending limit '
                        f'{format_usd(max_units)} for policy group "{group.name}" '
                        f'at scope "{match.scope}"'
                    ),
                    limit_type="per_payment",
                    scope=match.scope,
                    requested=amount,
                    limit=max_units,
                )

        if limit.max_total_usd is not None:
            check = await self._ledger.check_limit(
                group.name,
                match.scope,
                limit.max_total_usd,
                limit.window_ms,
                amount,
                direction=context.direction,
            )
            if not check.allowed:
                return self._block(
                    group,
                    check.reason or f'Total spending limit exceeded for policy group "{group.name}"',
                    limit_type="total",
                    scope=match.scope,
                    current_total=check.current_total,
                    requested=amount,
                )

        return self._allow(group, scope=match.scope)
