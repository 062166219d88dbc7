"""
Policy group configuration model.

Policy groups are parsed once from configuration (camelCase JSON keys, the
format agents already ship) and are immutable afterwards.

Example:
    >>> group = PolicyGroup.from_dict({
    ...     "name": "daily",
    ...     "outgoingLimits": {"global": {"maxTotalUsd": 10, "windowMs": 86400000}},
    ... })
    >>> group.limits_for(Direction.OUTGOING).global_limit.max_total_usd
    Decimal('10')
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import urlsplit

from paywarden.core.exceptions import ConfigurationError
from paywarden.core.types import Direction


def normalize_counterparty(value: str) -> str:
    """
    Normalise an address or domain for list and scope matching.

    Addresses and host names are case-insensitive. Entries written as URLs
    are reduced to their host name.
    """
    candidate = value.strip()
    if "://" in candidate:
        try:
            host = urlsplit(candidate).hostname
        except ValueError:
            host = None
        if host:
            return host.lower()
    return candidate.lower()


def _decimal_field(data: dict[str, Any], key: str, context: str) -> Decimal | None:
    raw = data.get(key)
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ConfigurationError(f"{context}.{key} must be a number, got {raw!r}")
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ConfigurationError(f"{context}.{key} must be a number, got {raw!r}") from None
    if not value.is_finite() or value < 0:
        raise ConfigurationError(f"{context}.{key} must be a non-negative number, got {raw!r}")
    return value


def _positive_int_field(data: dict[str, Any], key: str, context: str) -> int | None:
    raw = data.get(key)
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or int(raw) != raw:
        raise ConfigurationError(f"{context}.{key} must be an integer, got {raw!r}")
    if raw <= 0:
        raise ConfigurationError(f"{context}.{key} must be positive, got {raw!r}")
    return int(raw)


def _string_list(data: dict[str, Any], key: str, context: str) -> tuple[str, ...] | None:
    raw = data.get(key)
    if raw is None:
        return None
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ConfigurationError(f"{context}.{key} must be a list of strings")
    return tuple(normalize_counterparty(item) for item in raw)


@dataclass(frozen=True)
class Limit:
    """
    Spending limit for one scope.

    Attributes:
        max_payment_usd: Upper bound for a single transfer
        max_total_usd: Upper bound for the sum of transfers in the scope
        window_ms: Rolling window for max_total_usd (None = lifetime)
    """

    max_payment_usd: Decimal | None = None
    max_total_usd: Decimal | None = None
    window_ms: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], context: str = "limit") -> Limit:
        if not isinstance(data, dict):
            raise ConfigurationError(f"{context} must be an object")
        return cls(
            max_payment_usd=_decimal_field(data, "maxPaymentUsd", context),
            max_total_usd=_decimal_field(data, "maxTotalUsd", context),
            window_ms=_positive_int_field(data, "windowMs", context),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.max_payment_usd is not None:
            data["maxPaymentUsd"] = str(self.max_payment_usd)
        if self.max_total_usd is not None:
            data["maxTotalUsd"] = str(self.max_total_usd)
        if self.window_ms is not None:
            data["windowMs"] = self.window_ms
        return data


@dataclass(frozen=True)
class LimitsConfig:
    """
    Limits for one direction at global, counterparty and endpoint scope.

    Counterparty keys are `perTarget` for outgoing and `perSender` for
    incoming configuration; both land in per_counterparty, lower-cased.
    """

    global_limit: Limit | None = None
    per_counterparty: dict[str, Limit] = field(default_factory=dict)
    per_endpoint: dict[str, Limit] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], direction: Direction, context: str) -> LimitsConfig:
        if not isinstance(data, dict):
            raise ConfigurationError(f"{context} must be an object")

        counterparty_key = "perTarget" if direction == Direction.OUTGOING else "perSender"

        global_limit = None
        if data.get("global") is not None:
            global_limit = Limit.from_dict(data["global"], f"{context}.global")

        per_counterparty: dict[str, Limit] = {}
        for key, value in (data.get(counterparty_key) or {}).items():
            per_counterparty[normalize_counterparty(key)] = Limit.from_dict(
                value, f"{context}.{counterparty_key}[{key}]"
            )

        per_endpoint: dict[str, Limit] = {}
        for key, value in (data.get("perEndpoint") or {}).items():
            per_endpoint[key] = Limit.from_dict(value, f"{context}.perEndpoint[{key}]")

        return cls(
            global_limit=global_limit,
            per_counterparty=per_counterparty,
            per_endpoint=per_endpoint,
        )

    def to_dict(self, direction: Direction) -> dict[str, Any]:
        counterparty_key = "perTarget" if direction == Direction.OUTGOING else "perSender"
        data: dict[str, Any] = {}
        if self.global_limit is not None:
            data["global"] = self.global_limit.to_dict()
        if self.per_counterparty:
            data[counterparty_key] = {k: v.to_dict() for k, v in self.per_counterparty.items()}
        if self.per_endpoint:
            data["perEndpoint"] = {k: v.to_dict() for k, v in self.per_endpoint.items()}
        return data


@dataclass(frozen=True)
class RateLimitConfig:
    """At most max_payments attempts per rolling window_ms."""

    max_payments: int
    window_ms: int

    @classmethod
    def from_dict(cls, data: dict[str, Any], context: str) -> RateLimitConfig:
        if not isinstance(data, dict):
            raise ConfigurationError(f"{context} must be an object")
        max_payments = _positive_int_field(data, "maxPayments", context)
        window_ms = _positive_int_field(data, "windowMs", context)
        if max_payments is None or window_ms is None:
            raise ConfigurationError(f"{context} requires both maxPayments and windowMs")
        return cls(max_payments=max_payments, window_ms=window_ms)

    def to_dict(self) -> dict[str, Any]:
        return {"maxPayments": self.max_payments, "windowMs": self.window_ms}


@dataclass(frozen=True)
class PolicyGroup:
    """
    Named, ordered unit of enforcement.

    Attributes:
        name: Unique identifier, also used in denial reasons
        outgoing_limits: Limits applied to payments this agent makes
        incoming_limits: Limits applied to payments this agent receives
        allowed_recipients / blocked_recipients: Outgoing counterparty lists
        allowed_senders / blocked_senders: Incoming counterparty lists
        rate_limits: Attempt rate limit for the whole group
    """

    name: str
    outgoing_limits: LimitsConfig | None = None
    incoming_limits: LimitsConfig | None = None
    allowed_recipients: tuple[str, ...] | None = None
    blocked_recipients: tuple[str, ...] | None = None
    allowed_senders: tuple[str, ...] | None = None
    blocked_senders: tuple[str, ...] | None = None
    rate_limits: RateLimitConfig | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PolicyGroup:
        if not isinstance(data, dict):
            raise ConfigurationError("Policy group must be an object")

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError("Policy group requires a non-empty 'name'")
        context = f"policyGroups[{name}]"

        outgoing = None
        if data.get("outgoingLimits") is not None:
            outgoing = LimitsConfig.from_dict(
                data["outgoingLimits"], Direction.OUTGOING, f"{context}.outgoingLimits"
            )

        incoming = None
        if data.get("incomingLimits") is not None:
            incoming = LimitsConfig.from_dict(
                data["incomingLimits"], Direction.INCOMING, f"{context}.incomingLimits"
            )

        rate_limits = None
        if data.get("rateLimits") is not None:
            rate_limits = RateLimitConfig.from_dict(data["rateLimits"], f"{context}.rateLimits")

        return cls(
            name=name,
            outgoing_limits=outgoing,
            incoming_limits=incoming,
            allowed_recipients=_string_list(data, "allowedRecipients", context),
            blocked_recipients=_string_list(data, "blockedRecipients", context),
            allowed_senders=_string_list(data, "allowedSenders", context),
            blocked_senders=_string_list(data, "blockedSenders", context),
            rate_limits=rate_limits,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.outgoing_limits is not None:
            data["outgoingLimits"] = self.outgoing_limits.to_dict(Direction.OUTGOING)
        if self.incoming_limits is not None:
            data["incomingLimits"] = self.incoming_limits.to_dict(Direction.INCOMING)
        for key, value in (
            ("allowedRecipients", self.allowed_recipients),
            ("blockedRecipients", self.blocked_recipients),
            ("allowedSenders", self.allowed_senders),
            ("blockedSenders", self.blocked_senders),
        ):
            if value is not None:
                data[key] = list(value)
        if self.rate_limits is not None:
            data["rateLimits"] = self.rate_limits.to_dict()
        return data

    def limits_for(self, direction: Direction) -> LimitsConfig | None:
        if direction == Direction.OUTGOING:
            return self.outgoing_limits
        return self.incoming_limits

    def allowed_for(self, direction: Direction) -> tuple[str, ...] | None:
        if direction == Direction.OUTGOING:
            return self.allowed_recipients
        return self.allowed_senders

    def blocked_for(self, direction: Direction) -> tuple[str, ...] | None:
        if direction == Direction.OUTGOING:
            return self.blocked_recipients
        return self.blocked_senders
