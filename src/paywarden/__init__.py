"""
paywarden - Payment policy enforcement for agents that pay and get paid over x402.

Usage:
    >>> from paywarden import Paywarden, load_policy_groups
    >>>
    >>> warden = Paywarden(groups=load_policy_groups("policies.json"))
    >>> async with warden.http_client() as client:
    ...     response = await client.get("https://api.example.com/premium")
    >>>
    >>> warden.install_paywall(app, "/premium", price="0.01")
"""

from paywarden.client import Paywarden
from paywarden.core.config import Config, validate_payments_config
from paywarden.core.exceptions import (
    ConfigurationError,
    LockTimeoutError,
    NetworkError,
    PaywardenError,
    ProtocolError,
    SettlementRejectedError,
    StorageError,
    ValidationError,
)
from paywarden.core.types import (
    Direction,
    base_units_to_usd,
    format_usd,
    parse_price_amount,
    usd_to_base_units,
)
from paywarden.guards import (
    CounterpartyGuard,
    Guard,
    GuardResult,
    PaymentContext,
    RateLimitGuard,
    SpendingLimitGuard,
)
from paywarden.interceptor import PaywallMiddleware, PolicyTransport, record_settled_payment
from paywarden.ledger import PaymentRecord, RateLimiter, ScopeLockService, SpendingLedger
from paywarden.policy import (
    Limit,
    LimitsConfig,
    PolicyEvaluationResult,
    PolicyEvaluator,
    PolicyGroup,
    RateLimitConfig,
    find_most_specific_limit,
    load_policy_groups,
    resolve_domain,
)
from paywarden.protocols import (
    FacilitatorClient,
    PaymentRequirements,
    SettlementBackend,
    SettlementResult,
)
from paywarden.storage import (
    InMemoryStorage,
    RedisStorage,
    StorageBackend,
    get_storage,
    storage_from_config,
)

__version__ = "0.1.0"

__all__ = [
    # Client
    "Paywarden",
    "Config",
    "validate_payments_config",
    # Exceptions
    "PaywardenError",
    "ConfigurationError",
    "ValidationError",
    "StorageError",
    "LockTimeoutError",
    "NetworkError",
    "ProtocolError",
    "SettlementRejectedError",
    # Amounts
    "Direction",
    "usd_to_base_units",
    "base_units_to_usd",
    "format_usd",
    "parse_price_amount",
    # Policy
    "Limit",
    "LimitsConfig",
    "RateLimitConfig",
    "PolicyGroup",
    "PolicyEvaluator",
    "PolicyEvaluationResult",
    "load_policy_groups",
    "find_most_specific_limit",
    "resolve_domain",
    # Guards
    "Guard",
    "GuardResult",
    "PaymentContext",
    "CounterpartyGuard",
    "SpendingLimitGuard",
    "RateLimitGuard",
    # Ledger
    "SpendingLedger",
    "PaymentRecord",
    "RateLimiter",
    "ScopeLockService",
    # Storage
    "StorageBackend",
    "InMemoryStorage",
    "RedisStorage",
    "get_storage",
    "storage_from_config",
    # Protocols
    "PaymentRequirements",
    "SettlementResult",
    "SettlementBackend",
    "FacilitatorClient",
    # Interceptors
    "PaywallMiddleware",
    "PolicyTransport",
    "record_settled_payment",
]
