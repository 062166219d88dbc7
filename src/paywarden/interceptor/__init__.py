"""
Interceptor module - Admission and recording at the HTTP boundary.

- PaywallMiddleware: payee side, a Starlette middleware
- PolicyTransport: payer side, an httpx transport
"""

from paywarden.interceptor.middleware import PaywallMiddleware, policy_violation_response
from paywarden.interceptor.recording import record_settled_payment
from paywarden.interceptor.transport import PolicyTransport

__all__ = [
    "PaywallMiddleware",
    "PolicyTransport",
    "policy_violation_response",
    "record_settled_payment",
]
