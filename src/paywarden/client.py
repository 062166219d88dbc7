"""Paywarden - Main entry point wiring configuration, storage and policies."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import httpx
from starlette.applications import Starlette

from paywarden.core.config import Config
from paywarden.core.logging import configure_logging, get_logger
from paywarden.core.types import Direction
from paywarden.interceptor.middleware import PaywallMiddleware
from paywarden.interceptor.recording import record_settled_payment
from paywarden.interceptor.transport import PolicyTransport
from paywarden.ledger.ledger import SpendingLedger
from paywarden.ledger.lock import ScopeLockService
from paywarden.ledger.rate_limiter import RateLimiter
from paywarden.policy.evaluator import PolicyEvaluationResult, PolicyEvaluator
from paywarden.policy.types import PolicyGroup
from paywarden.storage import StorageBackend, storage_from_config


class Paywarden:
    """
    Main client for paywarden.

    One instance owns one storage backend, spending ledger and rate limiter
    and the ordered policy groups they enforce. Both interceptors built from
    it share that state, so incoming and outgoing traffic of one agent is
    accounted in one place.
    """

    def __init__(
        self,
        config: Config | None = None,
        groups: Sequence[PolicyGroup] | None = None,
        storage: StorageBackend | None = None,
        log_level: int | str | None = None,
    ) -> None:
        """
        Initialize Paywarden.

        Args:
            config: Configuration (defaults to Config.from_env())
            groups: Policy groups (defaults to the groups configured in `config`)
            storage: Storage backend (defaults to the configured backend)
            log_level: Logging level (defaults to config.log_level)
        """
        self._config = config or Config.from_env()

        configure_logging(
            level=log_level or self._config.log_level, json_format=self._config.log_json
        )
        self._logger = get_logger("client")

        self._storage = storage if storage is not None else storage_from_config(self._config)

        locks = ScopeLockService(
            self._storage,
            ttl=self._config.lock_ttl,
            retry_count=self._config.lock_retry_count,
            retry_delay=self._config.lock_retry_delay,
        )
        self._ledger = SpendingLedger(self._storage, locks)
        self._rate_limiter = RateLimiter(self._storage, locks)
        self._evaluator = PolicyEvaluator(self._ledger, self._rate_limiter)

        self._groups = list(groups) if groups is not None else self._config.load_policy_groups()
        self._logger.info(
            f"Initialized paywarden (storage: {type(self._storage).__name__}, "
            f"policy groups: {len(self._groups)})"
        )

    @property
    def config(self) -> Config:
        return self._config

    @property
    def storage(self) -> StorageBackend:
        return self._storage

    @property
    def ledger(self) -> SpendingLedger:
        """Get the spending ledger."""
        return self._ledger

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def evaluator(self) -> PolicyEvaluator:
        return self._evaluator

    @property
    def groups(self) -> list[PolicyGroup]:
        return list(self._groups)

    async def __aenter__(self) -> Paywarden:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the storage connection, if the backend holds one."""
        close = getattr(self._storage, "close", None)
        if close is not None:
            await close()

    async def health_check(self) -> bool:
        return await self._storage.health_check()

    async def evaluate_outgoing(
        self,
        amount: int,
        pay_to: str | None = None,
        url: str | None = None,
        domain: str | None = None,
    ) -> PolicyEvaluationResult:
        """Evaluate a payment this agent is about to make."""
        if domain is None and url:
            domain = httpx.URL(url).host or None
        return await self._evaluator.evaluate(
            Direction.OUTGOING,
            self._groups,
            candidate_address=pay_to,
            candidate_domain=domain,
            request_url=url,
            amount=amount,
        )

    async def evaluate_incoming(
        self,
        amount: int,
        sender: str | None = None,
        domain: str | None = None,
        url: str | None = None,
        consume_rate_limit: bool = True,
    ) -> PolicyEvaluationResult:
        """Evaluate a payment this agent is about to accept."""
        return await self._evaluator.evaluate(
            Direction.INCOMING,
            self._groups,
            candidate_address=sender,
            candidate_domain=domain,
            request_url=url,
            amount=amount,
            consume_rate_limit=consume_rate_limit,
        )

    async def record(
        self,
        direction: Direction,
        amount: int,
        address: str | None = None,
        domain: str | None = None,
        url: str | None = None,
    ) -> list[tuple[str, str]]:
        """Record a settled payment (see record_settled_payment)."""
        return await record_settled_payment(
            self._ledger,
            self._groups,
            direction,
            amount,
            candidate_address=address,
            candidate_domain=domain,
            request_url=url,
        )

    def transport(self, inner: httpx.AsyncBaseTransport | None = None) -> PolicyTransport:
        """Outgoing-policy transport for an httpx client."""
        return PolicyTransport(self._evaluator, self._groups, transport=inner)

    def http_client(self, **kwargs: Any) -> httpx.AsyncClient:
        """httpx client whose 402 answers are checked against outgoing policies."""
        inner = kwargs.pop("transport", None)
        kwargs.setdefault("timeout", self._config.request_timeout)
        return httpx.AsyncClient(transport=self.transport(inner), **kwargs)

    def install_paywall(
        self,
        app: Starlette,
        path: str,
        price: Decimal | int | str,
        **options: Any,
    ) -> None:
        """
        Protect `path` of a Starlette application with PaywallMiddleware.

        Payout address, network and facilitator come from the configuration
        unless given in `options`.

        Raises:
            ConfigurationError: If the payee configuration is invalid
        """
        options.setdefault("pay_to", self._config.pay_to)
        options.setdefault("network", self._config.network)
        if "settlement" not in options:
            options.setdefault("facilitator_url", self._config.facilitator_url)
            options.setdefault("facilitator_auth", self._config.facilitator_auth)
        app.add_middleware(
            PaywallMiddleware,
            path=path,
            price=price,
            groups=self._groups,
            evaluator=self._evaluator,
            **options,
        )
