"""
Policy module - Policy group model, scope resolution and evaluation.
"""

from paywarden.policy.evaluator import PolicyEvaluationResult, PolicyEvaluator
from paywarden.policy.loader import load_policy_groups
from paywarden.policy.scope import (
    GLOBAL_SCOPE,
    LimitMatch,
    find_most_specific_limit,
    resolve_domain,
)
from paywarden.policy.types import (
    Limit,
    LimitsConfig,
    PolicyGroup,
    RateLimitConfig,
    normalize_counterparty,
)

__all__ = [
    "GLOBAL_SCOPE",
    "Limit",
    "LimitMatch",
    "LimitsConfig",
    "PolicyEvaluationResult",
    "PolicyEvaluator",
    "PolicyGroup",
    "RateLimitConfig",
    "find_most_specific_limit",
    "load_policy_groups",
    "normalize_counterparty",
    "resolve_domain",
]
