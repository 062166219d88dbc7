"""
Example: Paywalled Starlette endpoint

Serves /premium behind an x402 paywall. Incoming payments are checked
against the policy groups before settlement and recorded afterwards.

Run with:
    PAYMENTS_RECEIVABLE_ADDRESS=0x... FACILITATOR_URL=https://... \
        uvicorn examples.paywall_server:app
"""

from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route

from paywarden import Paywarden, load_policy_groups

POLICIES = {
    "policyGroups": [
        {
            "name": "blocked-payers",
            "blockedSenders": ["0x000000000000000000000000000000000000dEaD"],
        },
        {
            "name": "daily-income",
            "incomingLimits": {
                "global": {"maxTotalUsd": 50, "windowMs": 86_400_000},
                "perSender": {
                    "partner.example.com": {"maxPaymentUsd": 5},
                },
            },
            "rateLimits": {"maxPayments": 100, "windowMs": 60_000},
        },
    ]
}


async def premium(request):
    return JSONResponse({"data": "PREMIUM DATA UNLOCKED"})


async def health(request):
    return JSONResponse({"ok": True})


app = Starlette(routes=[Route("/premium", premium), Route("/health", health)])

warden = Paywarden(groups=load_policy_groups(POLICIES))
warden.install_paywall(app, "/premium", price="0.10", description="Premium data feed")
