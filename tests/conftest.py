import logging

import pytest

from paywarden.core.logging import LOGGER_NAME
from paywarden.ledger.ledger import SpendingLedger
from paywarden.ledger.rate_limiter import RateLimiter
from paywarden.policy.evaluator import PolicyEvaluator
from paywarden.storage.memory import InMemoryStorage

START_MS = 1_700_000_000_000
DAY_MS = 86_400_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def reset_logging():
    """configure_logging() switches propagation off; keep caplog usable across tests."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def ledger(storage, clock):
    return SpendingLedger(storage, clock=clock)


@pytest.fixture
def rate_limiter(storage, clock):
    return RateLimiter(storage, clock=clock)


@pytest.fixture
def evaluator(ledger, rate_limiter):
    return PolicyEvaluator(ledger, rate_limiter)
