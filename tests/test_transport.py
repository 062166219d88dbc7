"""Tests for PolicyTransport (payer side)."""

import base64
import json

import httpx
import pytest

from paywarden.interceptor.transport import PolicyTransport
from paywarden.policy.loader import load_policy_groups
from paywarden.protocols.x402 import PaymentRequirements, SettlementResult

URL = "https://api.example.com/premium"
SHOP = "0xshop"


def requirements(amount=10_000, pay_to=SHOP):
    return PaymentRequirements(network="base-sepolia", amount=amount, pay_to=pay_to, resource=URL)


class PaidServer:
    """Answers 402 until a payment header arrives, then 200 with a confirmation."""

    def __init__(self, amount=10_000, pay_to=SHOP, confirmed_amount=None, paid_status=200):
        self.requirements = requirements(amount, pay_to)
        self.confirmed_amount = confirmed_amount
        self.paid_status = paid_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if "X-PAYMENT" not in request.headers:
            return httpx.Response(402, headers={"PAYMENT-REQUIRED": self.requirements.to_header()})
        if self.paid_status != 200:
            return httpx.Response(self.paid_status)
        confirmation = SettlementResult(payer="0xagent", amount=self.confirmed_amount, transaction="0xtx")
        return httpx.Response(
            200, json={"data": "premium"}, headers={"X-PAYMENT-RESPONSE": confirmation.to_header()}
        )


async def fetch_and_pay(client, url=URL):
    """What a payer library does: probe, then retry with a payment header."""
    first = await client.get(url)
    if first.status_code != 402:
        return first
    return await client.get(url, headers={"X-PAYMENT": "signed-payment"})


def make_client(evaluator, groups, server):
    transport = PolicyTransport(evaluator, groups, transport=httpx.MockTransport(server))
    return httpx.AsyncClient(transport=transport)


@pytest.fixture
def groups():
    return load_policy_groups(
        [{"name": "daily", "outgoingLimits": {"global": {"maxTotalUsd": "0.015"}}}]
    )


class TestPolicyTransport:
    """Tests for PolicyTransport."""

    @pytest.mark.asyncio
    async def test_admitted_payment_is_recorded(self, evaluator, groups):
        server = PaidServer()
        async with make_client(evaluator, groups, server) as client:
            response = await fetch_and_pay(client)

        assert response.status_code == 200
        assert len(server.requests) == 2
        assert await evaluator.ledger.current_total("daily", "global") == 10_000

    @pytest.mark.asyncio
    async def test_total_limit_blocks_before_payment(self, evaluator, groups):
        server = PaidServer()
        async with make_client(evaluator, groups, server) as client:
            await fetch_and_pay(client)
            blocked = await fetch_and_pay(client)

        assert blocked.status_code == 403
        body = blocked.json()
        assert body["error"]["code"] == "policy_violation"
        assert body["error"]["groupName"] == "daily"
        # The second 402 never reached the payer, so it never paid
        assert len(server.requests) == 3

    @pytest.mark.asyncio
    async def test_blocked_recipient(self, evaluator):
        groups = load_policy_groups([{"name": "lists", "blockedRecipients": [SHOP]}])
        async with make_client(evaluator, groups, PaidServer()) as client:
            response = await client.get(URL)

        assert response.status_code == 403
        assert "is blocked by policy group" in response.json()["error"]["message"]

    @pytest.mark.asyncio
    async def test_domain_allow_list(self, evaluator):
        groups = load_policy_groups([{"name": "lists", "allowedRecipients": ["api.example.com"]}])
        async with make_client(evaluator, groups, PaidServer(pay_to="0xunlisted")) as client:
            allowed = await client.get(URL)
            denied = await client.get("https://other.example.com/premium")

        assert allowed.status_code == 402
        assert denied.status_code == 403

    @pytest.mark.asyncio
    async def test_per_endpoint_limit(self, evaluator):
        groups = load_policy_groups(
            [{"name": "endpoint", "outgoingLimits": {"perEndpoint": {URL: {"maxPaymentUsd": "0.001"}}}}]
        )
        async with make_client(evaluator, groups, PaidServer()) as client:
            response = await client.get(URL)

        assert response.status_code == 403
        assert f'at scope "{URL}"' in response.json()["error"]["message"]

    @pytest.mark.asyncio
    async def test_confirmed_amount_preferred(self, evaluator, groups):
        async with make_client(evaluator, groups, PaidServer(confirmed_amount=4_000)) as client:
            await fetch_and_pay(client)

        assert await evaluator.ledger.current_total("daily", "global") == 4_000

    @pytest.mark.asyncio
    async def test_success_without_admission_not_recorded(self, evaluator, groups):
        async with make_client(evaluator, groups, PaidServer()) as client:
            response = await client.get(URL, headers={"X-PAYMENT": "signed-payment"})

        assert response.status_code == 200
        assert await evaluator.ledger.current_total("daily", "global") is None

    @pytest.mark.asyncio
    async def test_failed_paid_retry_clears_admission(self, evaluator, groups):
        server = PaidServer(paid_status=500)
        async with make_client(evaluator, groups, server) as client:
            response = await fetch_and_pay(client)
            assert response.status_code == 500

            server.paid_status = 200
            await client.get(URL, headers={"X-PAYMENT": "signed-payment"})

        assert await evaluator.ledger.current_total("daily", "global") is None

    @pytest.mark.asyncio
    async def test_402_without_requirements_passes_through(self, evaluator, groups):
        transport = PolicyTransport(
            evaluator, groups, transport=httpx.MockTransport(lambda r: httpx.Response(402, text="pay"))
        )
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.get(URL)

        assert response.status_code == 402
        assert response.text == "pay"

    @pytest.mark.asyncio
    async def test_legacy_price_headers(self, evaluator):
        groups = load_policy_groups([{"name": "cap", "outgoingLimits": {"global": {"maxPaymentUsd": 1}}}])

        def server(request):
            return httpx.Response(402, headers={"X-Price": "1.5", "X-Pay-To": SHOP})

        transport = PolicyTransport(evaluator, groups, transport=httpx.MockTransport(server))
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.get(URL)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_non_payment_traffic_untouched(self, evaluator, groups):
        transport = PolicyTransport(
            evaluator, groups, transport=httpx.MockTransport(lambda r: httpx.Response(200, text="ok"))
        )
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.get(URL)

        assert response.text == "ok"
        assert await evaluator.rate_limiter.current_count("daily", "global", 1000) == 0

    @pytest.mark.asyncio
    async def test_unpaid_admissions_are_bounded(self, evaluator, groups):
        server = PaidServer(amount=1_000)
        transport = PolicyTransport(
            evaluator, groups, transport=httpx.MockTransport(server), max_pending=2
        )
        async with httpx.AsyncClient(transport=transport) as client:
            for page in range(5):
                assert (await client.get(f"{URL}?page={page}")).status_code == 402

            assert transport.pending == 2

            # Oldest admission was forgotten, newest is still honoured
            await client.get(f"{URL}?page=0", headers={"X-PAYMENT": "signed-payment"})
            assert await evaluator.ledger.current_total("daily", "global") is None

            await client.get(f"{URL}?page=4", headers={"X-PAYMENT": "signed-payment"})
            assert await evaluator.ledger.current_total("daily", "global") == 1_000

        assert transport.pending == 1
