"""
Scope resolution.

Finds the most specific limit that governs a transfer and the scope string
under which it is tracked in the spending ledger.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from paywarden.policy.types import Limit, LimitsConfig, normalize_counterparty

GLOBAL_SCOPE = "global"


@dataclass(frozen=True)
class LimitMatch:
    """A resolved limit and the ledger scope it is tracked under."""

    limit: Limit
    scope: str


def _host_of(value: str | None) -> str | None:
    if not value:
        return None
    try:
        parts = urlsplit(value.strip())
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    try:
        return parts.hostname
    except ValueError:
        return None


def resolve_domain(origin: str | None = None, referer: str | None = None) -> str | None:
    """
    Extract the host name from Origin or Referer header values.

    Origin wins when it parses. Values such as "null" or bare strings
    without a scheme yield None instead of raising.
    """
    return _host_of(origin) or _host_of(referer)


def find_most_specific_limit(
    limits: LimitsConfig | None,
    candidate_address: str | None = None,
    candidate_domain: str | None = None,
    request_url: str | None = None,
) -> LimitMatch | None:
    """
    Find the most specific applicable limit.

    Specificity, most to least specific:
    1. per-endpoint limit keyed by the full request URL
    2. per-counterparty limit keyed by address
    3. per-counterparty limit keyed by domain
    4. global limit

    Args:
        limits: Limits for the direction being evaluated
        candidate_address: Counterparty wallet address, if known
        candidate_domain: Counterparty host name, if known
        request_url: Full URL of the paid resource

    Returns:
        LimitMatch, or None when no tier applies (transfer unconstrained)
    """
    if limits is None:
        return None

    if request_url and request_url in limits.per_endpoint:
        return LimitMatch(limits.per_endpoint[request_url], request_url)

    for candidate in (candidate_address, candidate_domain):
        if not candidate:
            continue
        key = normalize_counterparty(candidate)
        if key in limits.per_counterparty:
            return LimitMatch(limits.per_counterparty[key], key)

    if limits.global_limit is not None:
        return LimitMatch(limits.global_limit, GLOBAL_SCOPE)

    return None
