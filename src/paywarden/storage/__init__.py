"""
Storage backends for paywarden.

Holds the spending ledger sequences, rate limiter timestamps and per-scope
locks. The in-memory backend keeps state per process; the Redis backend
lets several workers behind one payout address share a spending view.

Selected with PAYWARDEN_STORAGE_BACKEND ("memory" or "redis") and, for
Redis, PAYWARDEN_REDIS_URL.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from paywarden.core.exceptions import ConfigurationError
from paywarden.storage.base import (
    StorageBackend,
    get_storage_backend,
    list_storage_backends,
    register_storage_backend,
)
from paywarden.storage.memory import InMemoryStorage
from paywarden.storage.redis import RedisStorage

if TYPE_CHECKING:
    from paywarden.core.config import Config


def get_storage(backend_name: str | None = None, **kwargs: Any) -> StorageBackend:
    """
    Create a storage backend by registered name.

    Args:
        backend_name: "memory", "redis" or a custom registered name;
            None reads PAYWARDEN_STORAGE_BACKEND
        **kwargs: Backend constructor options (e.g. redis_url)

    Raises:
        ConfigurationError: If no backend is registered under the name
    """
    if backend_name is None:
        backend_name = os.environ.get("PAYWARDEN_STORAGE_BACKEND", "memory")
    backend_name = backend_name.strip().lower()

    backend_class = get_storage_backend(backend_name)
    if backend_class is None:
        raise ConfigurationError(
            f"Unknown storage backend: '{backend_name}'",
            details={"available": list_storage_backends()},
        )

    return backend_class(**kwargs)


def storage_from_config(config: Config) -> StorageBackend:
    """Backend described by a Config (redis_url only applies to Redis)."""
    options: dict[str, Any] = {}
    if config.storage_backend.strip().lower() == "redis" and config.redis_url:
        options["redis_url"] = config.redis_url
    return get_storage(config.storage_backend, **options)


__all__ = [
    "StorageBackend",
    "InMemoryStorage",
    "RedisStorage",
    "get_storage",
    "storage_from_config",
    "get_storage_backend",
    "list_storage_backends",
    "register_storage_backend",
]
