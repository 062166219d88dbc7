"""
Settlement collaborator.

The payee forwards the payer's payment header to an x402 facilitator, which
verifies and settles it. Signatures, proofs and on-chain state are the
facilitator's business; this module only relays and interprets the verdict.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from paywarden.core.exceptions import NetworkError, ProtocolError, SettlementRejectedError
from paywarden.core.logging import get_logger
from paywarden.core.types import format_usd
from paywarden.protocols.x402 import (
    X402_VERSION,
    PaymentRequirements,
    SettlementResult,
    decode_header_json,
)
from paywarden.resilience.retry import execute_with_retry

_BEARER_PREFIX = re.compile(r"^bearer\s+", re.IGNORECASE)


def normalize_bearer_token(token: str | None) -> str | None:
    """
    Normalise a facilitator token into an Authorization header value.

    Example:
        >>> normalize_bearer_token("abc")
        'Bearer abc'
        >>> normalize_bearer_token("bearer abc")
        'Bearer abc'
    """
    if not token:
        return None
    trimmed = token.strip()
    if not trimmed:
        return None
    return f"Bearer {_BEARER_PREFIX.sub('', trimmed)}"


class SettlementBackend(ABC):
    """
    Abstract settlement collaborator.

    Implementations raise SettlementRejectedError when the payment is
    refused; nothing may be recorded in that case.
    """

    @abstractmethod
    async def settle(
        self,
        proposed_amount: int,
        scheme: str,
        network: str,
        pay_to: str,
        payment: str | None = None,
    ) -> SettlementResult:
        """
        Settle a payment.

        Args:
            proposed_amount: Declared price in base units
            scheme: Payment scheme (e.g. "exact")
            network: Network identifier
            pay_to: Receiving address
            payment: The payer's payment header value, passed through
        """
        ...


class FacilitatorClient(SettlementBackend):
    """
    Settlement backend that calls an x402 facilitator over HTTP.

    POSTs to {url}/settle. Timeouts, connection errors, 429 and 5xx
    responses are retried; any other refusal is final.
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize FacilitatorClient.

        Args:
            url: Facilitator base URL
            auth_token: Optional bearer token (with or without "Bearer ")
            http_client: Optional custom HTTP client
            timeout: Request timeout in seconds
        """
        self._url = url.rstrip("/")
        self._authorization = normalize_bearer_token(auth_token)
        self._http_client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._logger = get_logger("facilitator")

    @property
    def url(self) -> str:
        return self._url

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._authorization:
            headers["Authorization"] = self._authorization
        return headers

    async def _post_settle(self, body: dict[str, Any]) -> httpx.Response:
        url = f"{self._url}/settle"
        try:
            response = await self._get_http_client().post(url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            raise NetworkError(f"Facilitator request timed out: {e}", url=url) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Facilitator unreachable: {e}", url=url) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise NetworkError(
                f"Facilitator returned HTTP {response.status_code}",
                status_code=response.status_code,
                url=url,
            )
        return response

    async def settle(
        self,
        proposed_amount: int,
        scheme: str,
        network: str,
        pay_to: str,
        payment: str | None = None,
    ) -> SettlementResult:
        """Settle a payment through the facilitator."""
        requirements = PaymentRequirements(
            scheme=scheme,
            network=network,
            amount=proposed_amount,
            pay_to=pay_to,
        )
        payload: Any = decode_header_json(payment) if payment else None
        body = {
            "x402Version": X402_VERSION,
            "paymentPayload": payload if payload is not None else payment,
            "paymentRequirements": requirements.to_dict(),
        }

        self._logger.debug(f"Settling {format_usd(proposed_amount)} to {pay_to} on {network}")
        response = await execute_with_retry(self._post_settle, body)

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            reason = None
            if isinstance(data, dict):
                reason = data.get("errorReason") or data.get("error")
            raise SettlementRejectedError(
                f"Facilitator rejected payment (HTTP {response.status_code})",
                reason=str(reason) if reason else None,
                details={"status_code": response.status_code},
            )

        if not isinstance(data, dict):
            raise ProtocolError("Facilitator returned a non-JSON settle response")

        result = SettlementResult.from_facilitator(data, proposed_amount)
        if not result.success:
            reason = data.get("errorReason") or data.get("error")
            raise SettlementRejectedError(
                "Facilitator rejected payment",
                reason=str(reason) if reason else None,
                details={"transaction": result.transaction},
            )

        self._logger.info(
            f"Settled {format_usd(result.amount or proposed_amount)} "
            f"from {result.payer or 'unknown payer'} (tx: {result.transaction})"
        )
        return result

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
