"""
Policy evaluator.

Runs policy groups in configuration order against a proposed transfer.
Every group must pass: the first violation blocks the transfer regardless
of what later groups would decide.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from paywarden.core.logging import get_logger
from paywarden.core.types import Direction, format_usd
from paywarden.guards.base import Guard, PaymentContext
from paywarden.guards.counterparty import CounterpartyGuard
from paywarden.guards.rate_limit import RateLimitGuard
from paywarden.guards.spending import SpendingLimitGuard
from paywarden.ledger.ledger import SpendingLedger
from paywarden.ledger.rate_limiter import RateLimiter
from paywarden.policy.types import PolicyGroup


@dataclass
class PolicyEvaluationResult:
    """
    Outcome of evaluating all policy groups.

    Attributes:
        allowed: Whether the transfer may proceed
        group_name: Group that blocked the transfer
        reason: Why it was blocked
        guard_name: Guard that blocked the transfer
        metadata: Guard-specific details, plus the groups that passed
    """

    allowed: bool
    group_name: str | None = None
    reason: str | None = None
    guard_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.allowed

    def to_error_body(self) -> dict[str, Any]:
        """JSON body of the 403 policy-violation response."""
        return {
            "error": {
                "code": "policy_violation",
                "message": self.reason or "Payment blocked by policy",
                "groupName": self.group_name,
            }
        }


class PolicyEvaluator:
    """
    Evaluates policy groups against a proposed transfer.

    Reads the spending ledger and the rate limiter; the rate limiter counts
    admitted attempts as a side effect of evaluation.
    """

    def __init__(
        self,
        ledger: SpendingLedger | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._ledger = ledger or SpendingLedger()
        self._rate_limiter = rate_limiter or RateLimiter()
        self._guards: list[Guard] = [
            CounterpartyGuard(),
            SpendingLimitGuard(self._ledger),
            RateLimitGuard(self._rate_limiter),
        ]
        self._logger = get_logger("policy")

    @property
    def ledger(self) -> SpendingLedger:
        return self._ledger

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def guards(self) -> list[Guard]:
        return list(self._guards)

    async def evaluate(
        self,
        direction: Direction,
        groups: Sequence[PolicyGroup],
        candidate_address: str | None = None,
        candidate_domain: str | None = None,
        request_url: str | None = None,
        amount: int = 0,
        consume_rate_limit: bool = True,
    ) -> PolicyEvaluationResult:
        """
        Evaluate a proposed transfer.

        Args:
            direction: Transfer direction
            groups: Policy groups, in configuration order
            candidate_address: Counterparty address, if known
            candidate_domain: Counterparty domain, if known
            request_url: Full URL of the paid resource
            amount: Proposed amount in base units
            consume_rate_limit: Count the attempt against rate limits

        Returns:
            PolicyEvaluationResult (violations are returned, never raised)
        """
        context = PaymentContext(
            direction=direction,
            amount=amount,
            candidate_address=candidate_address,
            candidate_domain=candidate_domain,
            request_url=request_url,
            consume_rate_limit=consume_rate_limit,
        )

        passed_groups: list[str] = []
        for group in groups:
            for guard in self._guards:
                result = await guard.check(group, context)
                if not result.allowed:
                    self._logger.warning(
                        f"{direction.value} payment of {format_usd(amount)} BLOCKED by "
                        f"{guard.name} in group {group.name}: {result.reason}"
                    )
                    metadata = dict(result.metadata or {})
                    metadata["passed_groups"] = passed_groups
                    return PolicyEvaluationResult(
                        allowed=False,
                        group_name=group.name,
                        reason=result.reason,
                        guard_name=result.guard_name,
                        metadata=metadata,
                    )
            passed_groups.append(group.name)

        if passed_groups:
            self._logger.debug(f"Policy groups passed: {passed_groups}")
        return PolicyEvaluationResult(allowed=True, metadata={"passed_groups": passed_groups})
