"""
Configuration management for paywarden.

Handles loading configuration from environment variables and validation.
Configuration errors are fatal at startup.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from paywarden.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from paywarden.policy.types import PolicyGroup

DEFAULT_NETWORK = "base-sepolia"

SUPPORTED_NETWORKS = frozenset(
    {
        # CAIP-2 EVM chains
        "eip155:1",
        "eip155:11155111",
        "eip155:8453",
        "eip155:84532",
        "eip155:137",
        "eip155:80002",
        "eip155:43114",
        "eip155:43113",
        # CAIP-2 Solana
        "solana:mainnet",
        "solana:devnet",
        # Named networks
        "ethereum",
        "sepolia",
        "base",
        "base-sepolia",
        "solana",
        "solana-devnet",
    }
)


def _get_env_var(name: str, default: str | None = None, required: bool = False) -> str | None:
    """Get environment variable with optional default."""
    value = os.environ.get(name, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {name} is not set")
    return value


def _first_env(*names: str, default: str | None = None) -> str | None:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


def is_supported_network(network: str | None) -> bool:
    return bool(network) and network.strip().lower() in SUPPORTED_NETWORKS


def validate_payments_config(
    pay_to: str | None,
    network: str | None,
    facilitator_url: str | None = None,
    require_facilitator: bool = True,
) -> None:
    """
    Validate the settings a payee needs before accepting payments.

    Raises:
        ConfigurationError: If the payout address is missing, the network is
            unsupported, or the facilitator URL is missing while required
    """
    if not pay_to or not pay_to.strip():
        raise ConfigurationError(
            "Payments configuration requires a payout address (PAYMENTS_RECEIVABLE_ADDRESS)"
        )
    if not is_supported_network(network):
        raise ConfigurationError(
            f"Unsupported payments network: {network!r}",
            details={"supported": sorted(SUPPORTED_NETWORKS)},
        )
    if require_facilitator and (not facilitator_url or not facilitator_url.strip()):
        raise ConfigurationError("Payments configuration requires a facilitator URL (FACILITATOR_URL)")


@dataclass(frozen=True)
class Config:
    """paywarden configuration."""

    pay_to: str | None = None
    network: str = DEFAULT_NETWORK
    facilitator_url: str | None = None
    facilitator_auth: str | None = None

    storage_backend: str = "memory"
    redis_url: str | None = None

    # Path to a JSON file or inline JSON
    policies: str | None = None

    log_level: str = "INFO"
    log_json: bool = False

    # Timeouts (seconds)
    request_timeout: float = 30.0

    # Per-scope locks
    lock_ttl: int = 5
    lock_retry_count: int = 50
    lock_retry_delay: float = 0.01

    @classmethod
    def from_env(cls, **overrides: Any) -> Config:
        """Load configuration from environment variables."""
        values: dict[str, Any] = {
            "pay_to": _get_env_var("PAYMENTS_RECEIVABLE_ADDRESS"),
            "network": _first_env("PAYMENTS_NETWORK", "NETWORK", default=DEFAULT_NETWORK),
            "facilitator_url": _first_env("FACILITATOR_URL", "PAYMENTS_FACILITATOR_URL"),
            "facilitator_auth": _first_env("FACILITATOR_AUTH", "PAYMENTS_FACILITATOR_AUTH"),
            "storage_backend": _get_env_var("PAYWARDEN_STORAGE_BACKEND", default="memory"),
            "redis_url": _get_env_var("PAYWARDEN_REDIS_URL"),
            "policies": _get_env_var("PAYWARDEN_POLICIES"),
            "log_level": _get_env_var("PAYWARDEN_LOG_LEVEL", default="INFO"),
            "log_json": (_get_env_var("PAYWARDEN_LOG_JSON") or "").lower() in ("1", "true", "yes"),
        }

        timeout = _get_env_var("PAYWARDEN_REQUEST_TIMEOUT")
        if timeout:
            try:
                values["request_timeout"] = float(timeout)
            except ValueError:
                raise ConfigurationError(
                    f"PAYWARDEN_REQUEST_TIMEOUT must be a number, got {timeout!r}"
                ) from None

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def with_updates(self, **updates: Any) -> Config:
        """Create a new Config with updated values."""
        current = asdict(self)
        current.update(updates)
        return Config(**current)

    def validate_payments(self) -> None:
        """Validate payee settings (see validate_payments_config)."""
        validate_payments_config(self.pay_to, self.network, self.facilitator_url)

    def load_policy_groups(self) -> list[PolicyGroup]:
        """Load policy groups from the configured source (empty if unset)."""
        from paywarden.policy.loader import load_policy_groups

        if not self.policies:
            return []
        return load_policy_groups(self.policies)

    def masked_facilitator_auth(self) -> str | None:
        """Return the facilitator token with most characters masked for safe logging."""
        if not self.facilitator_auth:
            return None
        if len(self.facilitator_auth) <= 8:
            return "****"
        return self.facilitator_auth[:4] + "..." + self.facilitator_auth[-4:]
