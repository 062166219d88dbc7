"""
Ledger module - Spending and attempt tracking for paywarden.

Provides the spending ledger, the sliding-window rate limiter and the
per-scope lock service they share, all on the unified StorageBackend.
"""

from paywarden.ledger.ledger import (
    LimitCheck,
    PaymentRecord,
    SpendingEntry,
    SpendingLedger,
    now_ms,
)
from paywarden.ledger.lock import ScopeLockService
from paywarden.ledger.rate_limiter import RateLimiter

__all__ = [
    "LimitCheck",
    "PaymentRecord",
    "SpendingEntry",
    "SpendingLedger",
    "RateLimiter",
    "ScopeLockService",
    "now_ms",
]
