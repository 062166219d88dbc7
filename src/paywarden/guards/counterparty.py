"""
CounterpartyGuard - Controls which recipients and senders are allowed.

Applies the block list, then the allow list, for the transfer's direction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from paywarden.guards.base import Guard, GuardResult, PaymentContext
from paywarden.policy.types import normalize_counterparty

if TYPE_CHECKING:
    from paywarden.policy.types import PolicyGroup


class CounterpartyGuard(Guard):
    """
    Guard that enforces allow/block lists.

    - Block list: a match on address or domain denies the transfer, even
      when the same counterparty is also allow-listed.
    - Allow list: when configured, address or domain must match.
      No allow list means every counterparty is allowed.
    """

    def __init__(self, name: str = "counterparty") -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @staticmethod
    def _candidates(context: PaymentContext) -> list[str]:
        return [
            normalize_counterparty(value)
            for value in (context.candidate_address, context.candidate_domain)
            if value
        ]

    async def check(self, group: PolicyGroup, context: PaymentContext) -> GuardResult:
        """Check the counterparty against the group's lists."""
        candidates = self._candidates(context)

        blocked = group.blocked_for(context.direction)
        if blocked:
            for candidate in candidates:
                if candidate in blocked:
                    return self._block(
                        group,
                        f'Counterparty {candidate} is blocked by policy group "{group.name}"',
                        list="blocked",
                        matched=candidate,
                    )

        allowed = group.allowed_for(context.direction)
        if allowed is not None:
            if not any(candidate in allowed for candidate in candidates):
                shown = candidates[0] if candidates else "unknown counterparty"
                return self._block(
                    group,
                    f'Counterparty {shown} is not in allowed list for policy group "{group.name}"',
                    list="allowed",
                    matched=None,
                )

        return self._allow(group)
