"""
PaywallMiddleware - Server-side admission and recording.

Protects one path of a Starlette (or FastAPI) application:

1. Requests without a payment header are checked against the incoming
   policies (without counting a rate-limited attempt) and answered with
   402 and the payment requirements, or 403 on a policy violation.
2. Requests with a payment header are checked again (counting the
   attempt) and passed to the protected handler. Only a 2xx answer is
   settled through the settlement collaborator, so the payer is never
   charged for content that was not delivered.
3. The settled answer carries the confirmation in PAYMENT-RESPONSE. The
   transfer is recorded in a background task after the response is
   sent, so recording failures never reach the payer.

The facilitator client built from `facilitator_url` is closed on
application shutdown.

Example:
    >>> app.add_middleware(
    ...     PaywallMiddleware,
    ...     path="/premium",
    ...     price="0.01",
    ...     pay_to="0xabc...",
    ...     network="base-sepolia",
    ...     groups=groups,
    ...     facilitator_url="https://facilitator.example",
    ... )
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from paywarden.core.config import validate_payments_config
from paywarden.core.exceptions import (
    ConfigurationError,
    NetworkError,
    ProtocolError,
    SettlementRejectedError,
)
from paywarden.core.logging import get_logger
from paywarden.core.types import Direction, format_usd, parse_price_amount
from paywarden.interceptor.recording import record_settled_payment
from paywarden.policy.evaluator import PolicyEvaluationResult, PolicyEvaluator
from paywarden.policy.scope import resolve_domain
from paywarden.policy.types import PolicyGroup
from paywarden.protocols.facilitator import FacilitatorClient, SettlementBackend
from paywarden.protocols.x402 import (
    HEADER_PAYMENT_REQUIRED,
    HEADER_PAYMENT_RESPONSE,
    X402_VERSION,
    PaymentRequirements,
    SettlementResult,
    extract_payment_sender,
    get_payment_header,
)


def policy_violation_response(evaluation: PolicyEvaluationResult) -> JSONResponse:
    """403 response for a blocked evaluation."""
    return JSONResponse(evaluation.to_error_body(), status_code=403)


class PaywallMiddleware(BaseHTTPMiddleware):
    """
    Starlette middleware enforcing incoming payment policies on one path.

    Policy groups are fixed at construction; the evaluator's ledger and
    rate limiter are shared with anything else holding the same evaluator.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        path: str,
        price: Decimal | int | str,
        pay_to: str,
        network: str,
        groups: Sequence[PolicyGroup] = (),
        evaluator: PolicyEvaluator | None = None,
        settlement: SettlementBackend | None = None,
        facilitator_url: str | None = None,
        facilitator_auth: str | None = None,
        methods: Sequence[str] = ("GET", "POST"),
        scheme: str = "exact",
        description: str = "",
    ) -> None:
        """
        Initialize PaywallMiddleware.

        Args:
            app: Wrapped ASGI application
            path: Protected path (exact match)
            price: Price per request in USD
            pay_to: Payout address
            network: Network payments settle on
            groups: Policy groups, in configuration order
            evaluator: Policy evaluator (defaults to in-memory ledger/limiter)
            settlement: Settlement collaborator (defaults to FacilitatorClient)
            facilitator_url: Facilitator URL, required without `settlement`
            facilitator_auth: Facilitator bearer token
            methods: Protected HTTP methods
            scheme: Payment scheme advertised in the requirements
            description: Description advertised in the requirements

        Raises:
            ConfigurationError: If the payee configuration is invalid
        """
        super().__init__(app)

        self._owns_settlement = settlement is None
        if settlement is None:
            validate_payments_config(pay_to, network, facilitator_url)
            settlement = FacilitatorClient(facilitator_url, auth_token=facilitator_auth)  # type: ignore[arg-type]
        else:
            # Any backend will do; the URL is only advertised when known
            validate_payments_config(pay_to, network, require_facilitator=False)
            facilitator_url = facilitator_url or getattr(settlement, "url", None)

        amount = parse_price_amount(price)
        if amount is None:
            raise ConfigurationError(f"Invalid paywall price: {price!r}")

        self._path = path
        self._methods = frozenset(m.upper() for m in methods)
        self._amount = amount
        self._pay_to = pay_to
        self._network = network
        self._scheme = scheme
        self._description = description
        self._facilitator_url = facilitator_url
        self._groups = list(groups)
        self._evaluator = evaluator or PolicyEvaluator()
        self._settlement = settlement
        self._logger = get_logger("paywall")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "lifespan" or not self._owns_settlement:
            await super().__call__(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "lifespan.shutdown.complete":
                await self.close()
            await send(message)

        await self.app(scope, receive, send_wrapper)

    async def close(self) -> None:
        """Close the facilitator client this middleware created."""
        if self._owns_settlement:
            await self._settlement.close()  # type: ignore[attr-defined]

    def _matches(self, request: Request) -> bool:
        return request.url.path == self._path and request.method.upper() in self._methods

    def _requirements(self, request_url: str) -> PaymentRequirements:
        return PaymentRequirements(
            scheme=self._scheme,
            network=self._network,
            amount=self._amount,
            pay_to=self._pay_to,
            resource=request_url,
            description=self._description,
            facilitator_url=self._facilitator_url,
        )

    def _payment_required(self, request_url: str, error: str = "Payment required") -> JSONResponse:
        requirements = self._requirements(request_url)
        return JSONResponse(
            {
                "x402Version": X402_VERSION,
                "error": error,
                "accepts": [requirements.to_dict()],
            },
            status_code=402,
            headers={HEADER_PAYMENT_REQUIRED: requirements.to_header()},
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self._matches(request):
            return await call_next(request)

        sender_domain = resolve_domain(request.headers.get("origin"), request.headers.get("referer"))
        request_url = str(request.url)
        payment = get_payment_header(request.headers)

        if payment is None:
            evaluation = await self._evaluator.evaluate(
                Direction.INCOMING,
                self._groups,
                candidate_domain=sender_domain,
                request_url=request_url,
                amount=self._amount,
                consume_rate_limit=False,
            )
            if not evaluation.allowed:
                return policy_violation_response(evaluation)
            return self._payment_required(request_url)

        # Claimed payer; settlement rejects a payload whose "from" was not signed
        sender_address = extract_payment_sender(payment)
        evaluation = await self._evaluator.evaluate(
            Direction.INCOMING,
            self._groups,
            candidate_address=sender_address,
            candidate_domain=sender_domain,
            request_url=request_url,
            amount=self._amount,
        )
        if not evaluation.allowed:
            return policy_violation_response(evaluation)

        # Only delivered content is charged: settle after a 2xx from the handler
        response = await call_next(request)
        if not 200 <= response.status_code < 300:
            self._logger.info(
                f"Handler for {request_url} answered {response.status_code}, payment not settled"
            )
            return response

        try:
            settlement = await self._settlement.settle(
                self._amount,
                self._scheme,
                self._network,
                self._pay_to,
                payment=payment,
            )
        except SettlementRejectedError as e:
            self._logger.info(f"Settlement rejected for {request_url}: {e.reason}")
            return self._payment_required(request_url, error=e.reason or "Payment rejected")
        except (NetworkError, ProtocolError) as e:
            self._logger.error(f"Settlement failed for {request_url}: {e}")
            return JSONResponse(
                {"error": {"code": "settlement_unavailable", "message": str(e)}},
                status_code=502,
            )

        response.headers[HEADER_PAYMENT_RESPONSE] = settlement.to_header()
        task = BackgroundTask(
            self._record_incoming,
            response.headers[HEADER_PAYMENT_RESPONSE],
            sender_address,
            sender_domain,
            request_url,
        )
        if response.background is None:
            response.background = task
        else:
            response.background = BackgroundTasks(tasks=[response.background, task])
        return response

    async def _record_incoming(
        self,
        confirmation_header: str,
        sender_address: str | None,
        sender_domain: str | None,
        request_url: str,
    ) -> None:
        """Record a settled incoming payment. Failures are logged, never raised."""
        try:
            confirmation = SettlementResult.decode(confirmation_header)
            payer = (confirmation.payer if confirmation else None) or sender_address
            amount = self._amount
            if confirmation is not None and confirmation.amount is not None:
                amount = confirmation.amount

            await record_settled_payment(
                self._evaluator.ledger,
                self._groups,
                Direction.INCOMING,
                amount,
                candidate_address=payer,
                candidate_domain=sender_domain,
                request_url=request_url,
            )
            self._logger.info(
                f"Incoming payment of {format_usd(amount)} from {payer or 'unknown payer'} recorded"
            )
        except Exception:
            self._logger.exception(f"Error recording incoming payment for {request_url}")
