"""Tests for record_settled_payment."""

import pytest

from paywarden.core.types import Direction
from paywarden.interceptor.recording import record_settled_payment
from paywarden.policy.loader import load_policy_groups


@pytest.fixture
def groups():
    return load_policy_groups(
        [
            {
                "name": "targets",
                "outgoingLimits": {"perTarget": {"0xshop": {"maxTotalUsd": 5}}},
            },
            {"name": "daily", "outgoingLimits": {"global": {"maxTotalUsd": 10}}},
            {"name": "burst", "rateLimits": {"maxPayments": 5, "windowMs": 1000}},
            {"name": "payee", "incomingLimits": {"global": {"maxTotalUsd": 10}}},
        ]
    )


class TestRecordSettledPayment:
    @pytest.mark.asyncio
    async def test_records_per_group_scope(self, ledger, groups):
        written = await record_settled_payment(
            ledger, groups, Direction.OUTGOING, 2_000_000, candidate_address="0xshop"
        )

        assert written == [("targets", "0xshop"), ("daily", "global")]
        assert await ledger.current_total("targets", "0xshop") == 2_000_000
        assert await ledger.current_total("daily", "global") == 2_000_000

    @pytest.mark.asyncio
    async def test_falls_back_to_global_scope(self, ledger, groups):
        written = await record_settled_payment(
            ledger, groups, Direction.OUTGOING, 1_000_000, candidate_address="0xother"
        )

        # No tier of "targets" matches; the entry still lands at global
        assert ("targets", "global") in written

    @pytest.mark.asyncio
    async def test_direction_filters_groups(self, ledger, groups):
        written = await record_settled_payment(ledger, groups, Direction.INCOMING, 1_000_000)

        assert written == [("payee", "global")]
        assert (
            await ledger.current_total("payee", "global", direction=Direction.INCOMING)
            == 1_000_000
        )

    @pytest.mark.asyncio
    async def test_zero_amount_records_nothing(self, ledger, groups):
        assert await record_settled_payment(ledger, groups, Direction.OUTGOING, 0) == []
