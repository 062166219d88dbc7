"""
Example: Outgoing spending policies

Shows how an agent's httpx client is held to per-group spending limits
when a paid endpoint answers 402 Payment Required.
"""

import asyncio
import base64
import json

import httpx

from paywarden import Direction, Paywarden, format_usd, load_policy_groups

POLICIES = [
    {
        "name": "daily-budget",
        "outgoingLimits": {
            "global": {"maxTotalUsd": 1, "windowMs": 86_400_000},
            "perEndpoint": {
                "https://api.example.com/expensive": {"maxPaymentUsd": "0.05"},
            },
        },
    }
]


def demo_server(request: httpx.Request) -> httpx.Response:
    """Stand-in for a paid API: every path costs 0.10 USD."""
    requirements = {"scheme": "exact", "network": "base-sepolia", "amount": "100000", "payTo": "0xseller"}
    header = base64.b64encode(json.dumps(requirements).encode()).decode()
    return httpx.Response(402, headers={"PAYMENT-REQUIRED": header})


async def main():
    print("=== paywarden spending policies ===\n")

    warden = Paywarden(groups=load_policy_groups(POLICIES))

    async with warden.http_client(transport=httpx.MockTransport(demo_server)) as client:
        # Within budget: the 402 reaches the caller, which would pay and retry
        response = await client.get("https://api.example.com/cheap")
        print(f"/cheap      -> {response.status_code}")

        # Per-endpoint cap is lower than the asking price
        response = await client.get("https://api.example.com/expensive")
        print(f"/expensive  -> {response.status_code} {response.json()['error']['message']}")

    # Simulate nine settled payments, then the budget is spent
    for _ in range(9):
        await warden.record(Direction.OUTGOING, 100_000, address="0xseller")

    result = await warden.evaluate_outgoing(200_000, pay_to="0xseller")
    total = await warden.ledger.current_total("daily-budget", "global", window_ms=86_400_000)
    print(f"\nSpent so far: {format_usd(total or 0)}")
    print(f"Next 0.20 USD payment allowed: {result.allowed}")
    if not result.allowed:
        print(f"  Reason: {result.reason}")

    await warden.close()


if __name__ == "__main__":
    asyncio.run(main())
