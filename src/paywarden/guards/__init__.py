"""
Guards module - The checks a policy group applies to a transfer.

Guards run in a fixed order for every policy group:
- CounterpartyGuard: Block list, then allow list
- SpendingLimitGuard: Per-payment and total limits at the most specific scope
- RateLimitGuard: Attempts per sliding window

Example:
    >>> from paywarden.guards import PaymentContext, SpendingLimitGuard
    >>> from paywarden.core.types import Direction
    >>>
    >>> guard = SpendingLimitGuard(ledger)
    >>> context = PaymentContext(direction=Direction.OUTGOING, amount=4_000_000)
    >>> result = await guard.check(group, context)
"""

from paywarden.guards.base import (
    Guard,
    GuardResult,
    PaymentContext,
)
from paywarden.guards.counterparty import CounterpartyGuard
from paywarden.guards.rate_limit import RateLimitGuard
from paywarden.guards.spending import SpendingLimitGuard

__all__ = [
    # Base classes
    "Guard",
    "GuardResult",
    "PaymentContext",
    # Concrete guards
    "CounterpartyGuard",
    "SpendingLimitGuard",
    "RateLimitGuard",
]
