"""Tests for the Paywarden entry point."""

import base64
import json

import httpx
import pytest
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from paywarden import Paywarden
from paywarden.core.config import Config
from paywarden.core.types import Direction
from paywarden.storage import InMemoryStorage, RedisStorage

POLICIES = json.dumps(
    [
        {
            "name": "daily",
            "outgoingLimits": {"global": {"maxTotalUsd": 10}},
            "incomingLimits": {"global": {"maxPaymentUsd": 1}},
        }
    ]
)


@pytest.fixture
def warden():
    config = Config(
        pay_to="0xshop",
        network="base-sepolia",
        facilitator_url="https://facilitator.example",
        policies=POLICIES,
    )
    return Paywarden(config=config, storage=InMemoryStorage())


class TestPaywarden:
    """Tests for Paywarden."""

    def test_loads_configured_groups(self, warden):
        assert [g.name for g in warden.groups] == ["daily"]

    def test_explicit_groups_override_config(self):
        warden = Paywarden(config=Config(policies=POLICIES), groups=[], storage=InMemoryStorage())
        assert warden.groups == []

    def test_storage_from_config(self):
        warden = Paywarden(
            config=Config(storage_backend="redis", redis_url="redis://cache:6379/2")
        )
        assert isinstance(warden.storage, RedisStorage)
        assert warden.storage._redis_url == "redis://cache:6379/2"

    def test_components_share_storage(self, warden):
        assert warden.evaluator.ledger is warden.ledger
        assert warden.evaluator.rate_limiter is warden.rate_limiter

    @pytest.mark.asyncio
    async def test_evaluate_and_record_outgoing(self, warden):
        assert (await warden.evaluate_outgoing(6_000_000, pay_to="0xa")).allowed
        await warden.record(Direction.OUTGOING, 6_000_000, address="0xa")

        result = await warden.evaluate_outgoing(6_000_000, url="https://api.example.com/x")

        assert not result.allowed
        assert result.group_name == "daily"

    @pytest.mark.asyncio
    async def test_evaluate_incoming(self, warden):
        assert (await warden.evaluate_incoming(500_000, sender="0xpayer")).allowed
        assert not (await warden.evaluate_incoming(2_000_000, sender="0xpayer")).allowed

    @pytest.mark.asyncio
    async def test_http_client_enforces_outgoing_policies(self, warden):
        header = base64.b64encode(json.dumps({"amount": "11000000", "payTo": "0xshop"}).encode()).decode()

        def server(request):
            return httpx.Response(402, headers={"PAYMENT-REQUIRED": header})

        async with warden.http_client(transport=httpx.MockTransport(server)) as client:
            response = await client.get("https://api.example.com/premium")

        assert response.status_code == 403

    def test_install_paywall(self, warden):
        async def premium(request):
            return JSONResponse({"data": "premium"})

        app = Starlette(routes=[Route("/premium", premium)])
        warden.install_paywall(app, "/premium", price="0.01")

        response = TestClient(app).get("/premium")

        assert response.status_code == 402
        assert "PAYMENT-REQUIRED" in response.headers

    @pytest.mark.asyncio
    async def test_context_manager_and_health(self):
        async with Paywarden(config=Config(), storage=InMemoryStorage()) as warden:
            assert await warden.health_check() is True
