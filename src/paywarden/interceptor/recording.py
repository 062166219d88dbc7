"""
Recording of settled payments.

Runs only after the counterparty confirmed settlement. Each policy group
that limits the direction gets one ledger entry at the most specific scope
that matches the transfer, or at "global" when nothing matches.
"""

from __future__ import annotations

from collections.abc import Sequence

from paywarden.core.logging import get_logger
from paywarden.core.types import Direction, format_usd
from paywarden.ledger.ledger import SpendingLedger
from paywarden.policy.scope import GLOBAL_SCOPE, find_most_specific_limit
from paywarden.policy.types import PolicyGroup

logger = get_logger("recording")


async def record_settled_payment(
    ledger: SpendingLedger,
    groups: Sequence[PolicyGroup],
    direction: Direction,
    amount: int,
    candidate_address: str | None = None,
    candidate_domain: str | None = None,
    request_url: str | None = None,
) -> list[tuple[str, str]]:
    """
    Record a settled transfer for every group with limits in its direction.

    Returns:
        (group name, scope) pairs that were written
    """
    if amount <= 0:
        return []

    written: list[tuple[str, str]] = []
    for group in groups:
        limits = group.limits_for(direction)
        if limits is None:
            continue
        match = find_most_specific_limit(limits, candidate_address, candidate_domain, request_url)
        scope = match.scope if match else GLOBAL_SCOPE
        await ledger.record(group.name, scope, amount, direction=direction)
        written.append((group.name, scope))

    if written:
        logger.debug(f"Recorded {direction.value} payment of {format_usd(amount)} in {written}")
    return written
