"""
Tests for PolicyEvaluator.

Scenario tests drive the evaluator the way the interceptors do: evaluate,
then record the settled amount.
"""

import pytest

from conftest import DAY_MS
from paywarden.core.types import Direction
from paywarden.interceptor.recording import record_settled_payment
from paywarden.policy.evaluator import PolicyEvaluationResult
from paywarden.policy.loader import load_policy_groups

SHOP = "0xshop"
URL = "https://api.example.com/premium"


async def pay(evaluator, groups, amount, address=SHOP, domain="api.example.com", url=URL):
    """Evaluate an outgoing payment and record it when admitted."""
    result = await evaluator.evaluate(
        Direction.OUTGOING,
        groups,
        candidate_address=address,
        candidate_domain=domain,
        request_url=url,
        amount=amount,
    )
    if result.allowed:
        await record_settled_payment(
            evaluator.ledger, groups, Direction.OUTGOING, amount, address, domain, url
        )
    return result


class TestPolicyEvaluationResult:
    def test_error_body(self):
        result = PolicyEvaluationResult(allowed=False, group_name="daily", reason="too much")
        assert result.to_error_body() == {
            "error": {"code": "policy_violation", "message": "too much", "groupName": "daily"}
        }

    def test_error_body_default_message(self):
        body = PolicyEvaluationResult(allowed=False).to_error_body()
        assert body["error"]["message"] == "Payment blocked by policy"


class TestPolicyEvaluator:
    """Tests for PolicyEvaluator."""

    @pytest.mark.asyncio
    async def test_no_groups_allows(self, evaluator):
        result = await evaluator.evaluate(Direction.OUTGOING, [], amount=10**12)
        assert result.allowed
        assert result.metadata["passed_groups"] == []

    @pytest.mark.asyncio
    async def test_daily_limit(self, evaluator, clock):
        groups = load_policy_groups(
            [{"name": "daily", "outgoingLimits": {"global": {"maxTotalUsd": 10, "windowMs": DAY_MS}}}]
        )

        assert (await pay(evaluator, groups, 4_000_000)).allowed
        assert (await pay(evaluator, groups, 4_000_000)).allowed

        third = await pay(evaluator, groups, 4_000_000)
        assert not third.allowed
        assert third.group_name == "daily"
        assert third.guard_name == "spending_limit"
        assert "Total spending limit exceeded" in third.reason

        clock.advance(DAY_MS)
        assert (await pay(evaluator, groups, 4_000_000)).allowed

    @pytest.mark.asyncio
    async def test_rate_limit_sequence(self, evaluator):
        groups = load_policy_groups(
            [{"name": "burst", "rateLimits": {"maxPayments": 2, "windowMs": 60000}}]
        )

        results = [(await pay(evaluator, groups, 1_000)).allowed for _ in range(3)]

        assert results == [True, True, False]

    @pytest.mark.asyncio
    async def test_per_target_limit_is_tracked_separately_from_global(self, evaluator):
        groups = load_policy_groups(
            [
                {
                    "name": "targets",
                    "outgoingLimits": {
                        "global": {"maxTotalUsd": 100},
                        "perTarget": {SHOP: {"maxTotalUsd": 5}},
                    },
                }
            ]
        )

        assert (await pay(evaluator, groups, 4_000_000)).allowed

        blocked = await pay(evaluator, groups, 4_000_000)
        assert not blocked.allowed
        assert f'at scope "{SHOP}"' in blocked.reason

        # Another recipient falls back to the global limit, which is untouched
        other = await pay(evaluator, groups, 4_000_000, address="0xother", domain="other.com", url=None)
        assert other.allowed
        assert await evaluator.ledger.current_total("targets", SHOP) == 4_000_000
        assert await evaluator.ledger.current_total("targets", "global") == 4_000_000

    @pytest.mark.asyncio
    async def test_per_target_domain_overrides_global_per_payment_limit(self, evaluator):
        groups = load_policy_groups(
            [
                {
                    "name": "domains",
                    "outgoingLimits": {
                        "global": {"maxPaymentUsd": 1},
                        "perTarget": {"svc.example.com": {"maxPaymentUsd": 5}},
                    },
                }
            ]
        )
        listed = await pay(
            evaluator, groups, 3_000_000, address="0xsvc", domain="svc.example.com", url=None
        )
        unlisted = await pay(
            evaluator, groups, 3_000_000, address="0xsvc", domain="other.example.com", url=None
        )

        assert listed.allowed
        assert not unlisted.allowed
        assert unlisted.guard_name == "spending_limit"
        assert 'at scope "global"' in unlisted.reason
        assert await evaluator.ledger.current_total("domains", "svc.example.com") == 3_000_000

    @pytest.mark.asyncio
    async def test_block_list_precedes_allow_list(self, evaluator):
        groups = load_policy_groups(
            [{"name": "lists", "allowedRecipients": [SHOP], "blockedRecipients": [SHOP]}]
        )

        result = await pay(evaluator, groups, 1_000)

        assert not result.allowed
        assert result.guard_name == "counterparty"
        assert "is blocked by policy group" in result.reason

    @pytest.mark.asyncio
    async def test_endpoint_limit_is_most_specific(self, evaluator):
        groups = load_policy_groups(
            [
                {
                    "name": "specific",
                    "outgoingLimits": {
                        "global": {"maxPaymentUsd": 100},
                        "perTarget": {SHOP: {"maxPaymentUsd": 50}},
                        "perEndpoint": {URL: {"maxPaymentUsd": 1}},
                    },
                }
            ]
        )

        result = await pay(evaluator, groups, 2_000_000)

        assert not result.allowed
        assert f'at scope "{URL}"' in result.reason
        assert (await pay(evaluator, groups, 2_000_000, url=URL + "/cheap")).allowed

    @pytest.mark.asyncio
    async def test_first_violating_group_wins(self, evaluator):
        groups = load_policy_groups(
            [
                {"name": "first", "blockedRecipients": [SHOP]},
                {"name": "second", "outgoingLimits": {"global": {"maxPaymentUsd": 0}}},
            ]
        )

        result = await pay(evaluator, groups, 1_000)

        assert result.group_name == "first"

    @pytest.mark.asyncio
    async def test_later_groups_not_evaluated_after_violation(self, evaluator):
        groups = load_policy_groups(
            [
                {"name": "first", "blockedRecipients": [SHOP]},
                {"name": "second", "rateLimits": {"maxPayments": 5, "windowMs": 60000}},
            ]
        )

        await pay(evaluator, groups, 1_000)

        assert await evaluator.rate_limiter.current_count("second", "global", 60000) == 0

    @pytest.mark.asyncio
    async def test_attempt_counted_when_later_group_rejects(self, evaluator):
        groups = load_policy_groups(
            [
                {"name": "burst", "rateLimits": {"maxPayments": 5, "windowMs": 60000}},
                {"name": "lists", "blockedRecipients": [SHOP]},
            ]
        )

        result = await pay(evaluator, groups, 1_000)

        assert not result.allowed
        assert result.metadata["passed_groups"] == ["burst"]
        assert await evaluator.rate_limiter.current_count("burst", "global", 60000) == 1

    @pytest.mark.asyncio
    async def test_probe_evaluation_does_not_consume(self, evaluator):
        groups = load_policy_groups(
            [{"name": "burst", "rateLimits": {"maxPayments": 1, "windowMs": 60000}}]
        )

        for _ in range(3):
            result = await evaluator.evaluate(
                Direction.INCOMING, groups, amount=1_000, consume_rate_limit=False
            )
            assert result.allowed

        assert (await evaluator.evaluate(Direction.INCOMING, groups, amount=1_000)).allowed
        assert not (await evaluator.evaluate(Direction.INCOMING, groups, amount=1_000)).allowed

    @pytest.mark.asyncio
    async def test_incoming_uses_incoming_limits(self, evaluator):
        groups = load_policy_groups(
            [
                {
                    "name": "both",
                    "outgoingLimits": {"global": {"maxPaymentUsd": 1}},
                    "incomingLimits": {"perSender": {"0xpayer": {"maxPaymentUsd": 100}}},
                }
            ]
        )

        incoming = await evaluator.evaluate(
            Direction.INCOMING, groups, candidate_address="0xPAYER", amount=50_000_000
        )
        outgoing = await evaluator.evaluate(Direction.OUTGOING, groups, amount=50_000_000)

        assert incoming.allowed
        assert not outgoing.allowed

    @pytest.mark.asyncio
    async def test_denial_is_logged(self, evaluator, caplog):
        groups = load_policy_groups([{"name": "lists", "blockedRecipients": [SHOP]}])

        with caplog.at_level("WARNING", logger="paywarden"):
            await pay(evaluator, groups, 1_000)

        assert any("BLOCKED" in record.message for record in caplog.records)

    def test_guard_order(self, evaluator):
        assert [g.name for g in evaluator.guards] == ["counterparty", "spending_limit", "rate_limit"]
