"""
Protocols module - x402 header codec and settlement collaborators.
"""

from paywarden.protocols.facilitator import (
    FacilitatorClient,
    SettlementBackend,
    normalize_bearer_token,
)
from paywarden.protocols.x402 import (
    HEADER_PAY_TO,
    HEADER_PAYMENT,
    HEADER_PAYMENT_REQUIRED,
    HEADER_PAYMENT_RESPONSE,
    HEADER_PAYMENT_SIGNATURE,
    HEADER_PRICE,
    HEADER_X_PAYMENT,
    HEADER_X_PAYMENT_RESPONSE,
    PaymentRequirements,
    SettlementResult,
    extract_payer_address,
)

__all__ = [
    "FacilitatorClient",
    "HEADER_PAY_TO",
    "HEADER_PAYMENT",
    "HEADER_PAYMENT_REQUIRED",
    "HEADER_PAYMENT_RESPONSE",
    "HEADER_PAYMENT_SIGNATURE",
    "HEADER_PRICE",
    "HEADER_X_PAYMENT",
    "HEADER_X_PAYMENT_RESPONSE",
    "PaymentRequirements",
    "SettlementBackend",
    "SettlementResult",
    "extract_payer_address",
    "normalize_bearer_token",
]
