"""
PolicyTransport - Client-side admission and recording.

An httpx transport that sits beneath the payer library. It sees the 402
answer before the payer library does, so a transfer that violates the
outgoing policies is replaced by a 403 and never paid.

Example:
    >>> transport = PolicyTransport(evaluator, groups)
    >>> async with httpx.AsyncClient(transport=transport) as client:
    ...     response = await client.get("https://api.example.com/premium")
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Sequence

import httpx

from paywarden.core.exceptions import ProtocolError
from paywarden.core.logging import get_logger
from paywarden.core.types import Direction
from paywarden.interceptor.recording import record_settled_payment
from paywarden.policy.evaluator import PolicyEvaluator
from paywarden.policy.types import PolicyGroup
from paywarden.protocols.x402 import (
    PaymentRequirements,
    SettlementResult,
    get_payment_response_header,
)


class PolicyTransport(httpx.AsyncBaseTransport):
    """
    httpx transport enforcing outgoing payment policies.

    Admitted payment requirements are remembered per (method, url) until
    the paid retry of the same request succeeds or fails. 402 answers that
    are never paid are dropped oldest first once max_pending is reached.
    """

    def __init__(
        self,
        evaluator: PolicyEvaluator,
        groups: Sequence[PolicyGroup],
        transport: httpx.AsyncBaseTransport | None = None,
        max_pending: int = 1024,
    ) -> None:
        """
        Initialize PolicyTransport.

        Args:
            evaluator: Policy evaluator
            groups: Policy groups, in configuration order
            transport: Inner transport (defaults to httpx.AsyncHTTPTransport)
            max_pending: Admitted requests remembered before the oldest unpaid
                one is forgotten
        """
        self._evaluator = evaluator
        self._groups = list(groups)
        self._transport = transport or httpx.AsyncHTTPTransport()
        self._admitted: OrderedDict[tuple[str, str], PaymentRequirements] = OrderedDict()
        self._max_pending = max_pending
        self._logger = get_logger("transport")

    @staticmethod
    def _key(request: httpx.Request) -> tuple[str, str]:
        return request.method.upper(), str(request.url)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        response = await self._transport.handle_async_request(request)
        key = self._key(request)

        if response.status_code == 402:
            return await self._admit(request, response, key)

        if 200 <= response.status_code < 300:
            requirements = self._admitted.pop(key, None)
            if requirements is not None:
                await self._record(request, response, requirements)
        else:
            # Paid retry failed, nothing is recorded
            self._admitted.pop(key, None)

        return response

    async def _admit(
        self,
        request: httpx.Request,
        response: httpx.Response,
        key: tuple[str, str],
    ) -> httpx.Response:
        await response.aread()
        response.request = request
        try:
            requirements = PaymentRequirements.from_response(response)
        except ProtocolError as e:
            self._logger.debug(f"402 from {request.url} without usable requirements: {e}")
            return response

        evaluation = await self._evaluator.evaluate(
            Direction.OUTGOING,
            self._groups,
            candidate_address=requirements.pay_to or None,
            candidate_domain=request.url.host or None,
            request_url=str(request.url),
            amount=requirements.amount,
        )
        if not evaluation.allowed:
            await response.aclose()
            return httpx.Response(403, json=evaluation.to_error_body(), request=request)

        self._admitted[key] = requirements
        self._admitted.move_to_end(key)
        while len(self._admitted) > self._max_pending:
            (method, url), _ = self._admitted.popitem(last=False)
            self._logger.debug(f"Forgetting unpaid admission for {method} {url}")
        return response

    @property
    def pending(self) -> int:
        """Admitted 402 answers still waiting for a paid retry."""
        return len(self._admitted)

    async def _record(
        self,
        request: httpx.Request,
        response: httpx.Response,
        requirements: PaymentRequirements,
    ) -> None:
        header = get_payment_response_header(response.headers)
        if not header:
            return

        try:
            confirmation = SettlementResult.decode(header)
            amount = requirements.amount
            if confirmation is not None and confirmation.amount is not None:
                amount = confirmation.amount

            await record_settled_payment(
                self._evaluator.ledger,
                self._groups,
                Direction.OUTGOING,
                amount,
                candidate_address=requirements.pay_to or None,
                candidate_domain=request.url.host or None,
                request_url=str(request.url),
            )
        except Exception:
            self._logger.exception(f"Error recording outgoing payment to {request.url}")

    async def aclose(self) -> None:
        await self._transport.aclose()
