"""
Retry Strategies using Tenacity.

Standard retry policies for calls to the settlement facilitator.
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from paywarden.core.exceptions import NetworkError, SettlementRejectedError
from paywarden.core.logging import get_logger

logger = get_logger("retry")

MAX_ATTEMPTS = 3


def is_transient_error(exception: BaseException) -> bool:
    """Check if exception is a transient network/infrastructure error."""
    if isinstance(exception, SettlementRejectedError):
        return False
    if isinstance(exception, NetworkError):
        if exception.status_code is None:
            return True
        return exception.is_rate_limited() or exception.is_server_error()
    if isinstance(exception, (httpx.TimeoutException, httpx.TransportError)):
        return True

    # Heuristic for errors raised outside httpx
    msg = str(exception).lower()
    return any(
        x in msg
        for x in [
            "timeout",
            "connection refused",
            "connection reset",
            "network error",
        ]
    )


def _log_retry(retry_state: Any) -> None:
    logger.warning(
        f"Retrying settlement call... (Attempt {retry_state.attempt_number}): "
        f"{retry_state.outcome.exception()}"
    )


# Standard Retry Policy
# Retries with exponential backoff (0.5s, 1s, 2s ... capped at 4s), transient errors only.
retry_policy = retry(
    retry=retry_if_exception(is_transient_error),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    stop=stop_after_attempt(MAX_ATTEMPTS),
    reraise=True,
    before_sleep=_log_retry,
)


async def execute_with_retry(
    func: Callable[..., Any],
    *args: Any,
    attempts: int = MAX_ATTEMPTS,
    wait: Any = None,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with the standard retry policy.

    Args:
        func: Coroutine function to call
        attempts: Maximum number of attempts
        wait: tenacity wait strategy (defaults to exponential backoff)
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_exception(is_transient_error),
        wait=wait or wait_exponential(multiplier=0.5, min=0.5, max=4),
        stop=stop_after_attempt(attempts),
        reraise=True,
        before_sleep=_log_retry,
    ):
        with attempt:
            return await func(*args, **kwargs)
