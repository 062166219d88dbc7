"""
Policy group loading.

Policy groups come from configuration once, at startup. Any problem here is
a configuration error and aborts startup.
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from paywarden.core.exceptions import ConfigurationError
from paywarden.core.logging import get_logger
from paywarden.policy.types import PolicyGroup

logger = get_logger("policy")


def _read_source(source: str | os.PathLike[str]) -> Any:
    text = str(source)
    stripped = text.strip()
    if stripped.startswith(("[", "{")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid policy JSON: {e}") from e

    path = Path(text).expanduser()
    if not path.is_file():
        raise ConfigurationError(f"Policy file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid policy JSON in {path}: {e}") from e


def load_policy_groups(
    source: str | os.PathLike[str] | Sequence[dict[str, Any]] | dict[str, Any],
) -> list[PolicyGroup]:
    """
    Load policy groups from configuration.

    Args:
        source: A list of group dicts, a {"policyGroups": [...]} dict,
            a JSON string, or a path to a JSON file containing either

    Returns:
        Policy groups in configuration order

    Raises:
        ConfigurationError: If the source is unreadable, malformed, or
            defines the same group name twice
    """
    if isinstance(source, (str, os.PathLike)):
        data: Any = _read_source(source)
    else:
        data = source

    if isinstance(data, dict):
        if "policyGroups" not in data:
            raise ConfigurationError("Policy configuration object must contain 'policyGroups'")
        data = data["policyGroups"]

    if not isinstance(data, (list, tuple)):
        raise ConfigurationError("Policy configuration must be a list of policy groups")

    groups = [PolicyGroup.from_dict(item) for item in data]

    seen: set[str] = set()
    for group in groups:
        if group.name in seen:
            raise ConfigurationError(f"Duplicate policy group name: {group.name}")
        seen.add(group.name)

    logger.info(f"Loaded {len(groups)} policy group(s): {[g.name for g in groups]}")
    return groups
