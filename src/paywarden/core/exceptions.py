"""
Exception hierarchy for paywarden.

All package-specific exceptions inherit from PaywardenError for easy catching.

Policy violations are not exceptions: the evaluator returns them as
PolicyEvaluationResult values so the interceptors can turn them into
structured 403 responses.
"""

from __future__ import annotations

from typing import Any


class PaywardenError(Exception):
    """
    Base exception for all paywarden errors.

    Example:
        >>> try:
        ...     groups = load_policy_groups("policies.json")
        ... except PaywardenError as e:
        ...     print(f"Policy engine error: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PaywardenError):
    """
    Configuration is missing or invalid.

    Raised when:
    - The payout address or facilitator URL is not set
    - The configured network is not supported
    - A policy group definition is malformed or duplicated

    Always fatal at startup; never downgraded to a warning.
    """

    pass


class ValidationError(PaywardenError):
    """
    Input validation error.

    Raised when:
    - An amount cannot be converted to base units
    """

    pass


class StorageError(PaywardenError):
    """Storage backend operation failed."""

    def __init__(
        self,
        message: str,
        backend: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.backend = backend


class LockTimeoutError(StorageError):
    """
    A per-scope lock could not be acquired.

    Raised when another request holds the lock for the same
    (group, scope, direction) key for longer than the retry budget.
    """

    def __init__(
        self,
        message: str,
        key: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.key = key


class NetworkError(PaywardenError):
    """
    Network or API communication error.

    Raised when:
    - The facilitator cannot be reached (timeout, connection error)
    - The facilitator answers with a server error
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.url = url

    def is_rate_limited(self) -> bool:
        """Check if this is a rate limit error."""
        return self.status_code == 429

    def is_server_error(self) -> bool:
        """Check if this is a server-side error."""
        return self.status_code is not None and 500 <= self.status_code < 600


class ProtocolError(PaywardenError):
    """
    Payment protocol error.

    Raised when:
    - Payment requirements cannot be parsed
    - The facilitator returns a malformed response
    """

    def __init__(
        self,
        message: str,
        protocol: str = "x402",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.protocol = protocol

    def __str__(self) -> str:
        return f"[{self.protocol}] {self.message}"


class SettlementRejectedError(ProtocolError):
    """
    The settlement collaborator refused the payment.

    No funds moved, so nothing is recorded in the spending ledger.

    Example:
        >>> try:
        ...     await facilitator.settle(...)
        ... except SettlementRejectedError as e:
        ...     print(f"Payment rejected: {e.reason}")
    """

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.reason = reason or message
