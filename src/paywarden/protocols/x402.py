"""x402 - HTTP 402 Payment Required header codec."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any

import httpx

from paywarden.core.exceptions import ProtocolError
from paywarden.core.types import base_units_to_usd, parse_price_amount

X402_VERSION = 2

# Header names
HEADER_PAYMENT_REQUIRED = "PAYMENT-REQUIRED"
HEADER_PAYMENT_SIGNATURE = "PAYMENT-SIGNATURE"  # V2
HEADER_X_PAYMENT = "X-PAYMENT"  # V1
HEADER_PAYMENT = "PAYMENT"
HEADER_PAYMENT_RESPONSE = "PAYMENT-RESPONSE"  # V2
HEADER_X_PAYMENT_RESPONSE = "X-PAYMENT-RESPONSE"  # V1
HEADER_PRICE = "X-Price"  # Legacy
HEADER_PAY_TO = "X-Pay-To"  # Legacy
HEADER_NETWORK = "X-Network"  # Legacy

PAYMENT_HEADERS = (HEADER_PAYMENT_SIGNATURE, HEADER_X_PAYMENT, HEADER_PAYMENT)
PAYMENT_RESPONSE_HEADERS = (HEADER_PAYMENT_RESPONSE, HEADER_X_PAYMENT_RESPONSE)


def _encode(data: dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(data).encode()).decode()


def decode_header_json(value: str) -> dict[str, Any] | None:
    """Decode a header that is either plain JSON or base64 JSON."""
    value = value.strip()
    if not value:
        return None
    try:
        data = json.loads(value)
    except ValueError:
        try:
            data = json.loads(base64.b64decode(value, validate=False).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return None
    return data if isinstance(data, dict) else None


def _parse_units(value: Any) -> int | None:
    """Base-unit integer from an int or digit string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


@dataclass
class PaymentRequirements:
    """
    Payment requirements advertised in a 402 response.

    Attributes:
        scheme: Payment scheme (e.g. "exact")
        network: Network identifier
        amount: Price in base units
        pay_to: Receiving address
        resource: URL of the paid resource
        description: Human readable description
        facilitator_url: Settlement facilitator the payee uses
        extra: Scheme-specific fields
    """

    scheme: str = "exact"
    network: str = ""
    amount: int = 0
    pay_to: str = ""
    resource: str = ""
    description: str = ""
    facilitator_url: str | None = None
    extra: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "x402Version": X402_VERSION,
            "scheme": self.scheme,
            "network": self.network,
            "amount": str(self.amount),
            "price": f"{base_units_to_usd(self.amount).normalize():f}",
            "payTo": self.pay_to,
            "resource": self.resource,
            "description": self.description,
        }
        if self.facilitator_url:
            data["facilitatorUrl"] = self.facilitator_url
        if self.extra:
            data["extra"] = self.extra
        return data

    def to_header(self) -> str:
        """Encode as base64 header value."""
        return _encode(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any], resource: str = "") -> PaymentRequirements:
        """
        Build requirements from decoded JSON.

        The amount is read from base-unit fields ("amount",
        "maxAmountRequired") first, then from the USD "price".
        """
        if "requirements" in data and isinstance(data["requirements"], dict):
            data = data["requirements"]
        elif isinstance(data.get("accepts"), list) and data["accepts"]:
            data = data["accepts"][0]

        amount = _parse_units(data.get("amount"))
        if amount is None:
            amount = _parse_units(data.get("maxAmountRequired"))
        if amount is None:
            amount = parse_price_amount(data.get("price"))
        if amount is None:
            raise ProtocolError("Payment requirements carry no valid amount or price")

        return cls(
            scheme=data.get("scheme") or "exact",
            network=data.get("network") or "",
            amount=amount,
            pay_to=data.get("payTo") or data.get("paymentAddress") or data.get("recipient") or "",
            resource=data.get("resource") or resource,
            description=data.get("description") or "",
            facilitator_url=data.get("facilitatorUrl"),
            extra=data.get("extra"),
        )

    @classmethod
    def from_header(cls, header_value: str, resource: str = "") -> PaymentRequirements:
        """Parse from a JSON or base64-encoded JSON header value."""
        data = decode_header_json(header_value)
        if data is None:
            raise ProtocolError("Failed to parse payment requirements header")
        return cls.from_dict(data, resource=resource)

    @classmethod
    def from_response(cls, response: httpx.Response) -> PaymentRequirements:
        """
        Parse requirements from a 402 response.

        Tries the PAYMENT-REQUIRED header, then the legacy X-Price/X-Pay-To
        headers, then the JSON body.
        """
        try:
            resource = str(response.request.url)
        except RuntimeError:
            resource = ""

        header_val = response.headers.get(HEADER_PAYMENT_REQUIRED)
        if header_val:
            return cls.from_header(header_val, resource=resource)

        price = response.headers.get(HEADER_PRICE)
        if price:
            amount = parse_price_amount(price)
            if amount is None:
                raise ProtocolError(f"Invalid {HEADER_PRICE} header: {price!r}")
            return cls(
                network=response.headers.get(HEADER_NETWORK, ""),
                amount=amount,
                pay_to=response.headers.get(HEADER_PAY_TO, ""),
                resource=resource,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            return cls.from_dict(data, resource=resource)

        raise ProtocolError("No valid x402 payment requirements found in 402 response")


@dataclass
class SettlementResult:
    """
    Settlement confirmation returned to the payer in PAYMENT-RESPONSE.

    Attributes:
        success: Whether the facilitator settled the payment
        payer: Paying address, if reported
        amount: Settled amount in base units, if reported
        transaction: Transaction reference
        network: Network the payment settled on
    """

    success: bool = True
    payer: str | None = None
    amount: int | None = None
    transaction: str | None = None
    network: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.payer:
            data["payer"] = self.payer
        if self.amount is not None:
            data["amount"] = str(self.amount)
        if self.transaction:
            data["transaction"] = self.transaction
        if self.network:
            data["network"] = self.network
        return data

    def to_header(self) -> str:
        return _encode(self.to_dict())

    @classmethod
    def decode(cls, header_value: str | None) -> SettlementResult | None:
        """Decode a PAYMENT-RESPONSE header. Malformed input yields None."""
        if not header_value:
            return None
        data = decode_header_json(header_value)
        if data is None:
            return None
        payer = data.get("payer")
        return cls(
            success=bool(data.get("success", True)),
            payer=payer if isinstance(payer, str) and payer else None,
            amount=_parse_units(data.get("amount")),
            transaction=data.get("transaction") or None,
            network=data.get("network") or None,
            raw=data,
        )

    @classmethod
    def from_facilitator(cls, data: dict[str, Any], proposed_amount: int) -> SettlementResult:
        """Build from a facilitator /settle response body."""
        amount = _parse_units(data.get("amount"))
        return cls(
            success=bool(data.get("success")),
            payer=data.get("payer") or None,
            amount=proposed_amount if amount is None else amount,
            transaction=data.get("transaction") or data.get("txHash") or None,
            network=data.get("network") or None,
            raw=data,
        )


def extract_payer_address(header_value: str | None) -> str | None:
    """Payer address from a PAYMENT-RESPONSE header, or None."""
    result = SettlementResult.decode(header_value)
    return result.payer if result else None


def get_payment_header(headers: Any) -> str | None:
    """First payment header present in a header mapping."""
    for name in PAYMENT_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return None


def get_payment_response_header(headers: Any) -> str | None:
    for name in PAYMENT_RESPONSE_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return None


def extract_payment_sender(header_value: str | None) -> str | None:
    """
    Paying address declared inside a payment header, or None.

    Reads the "exact" scheme authorization ("payload.authorization.from")
    and falls back to a top-level "from" or "payer" field.
    """
    if not header_value:
        return None
    data = decode_header_json(header_value)
    if data is None:
        return None
    payload = data.get("payload")
    if isinstance(payload, dict):
        authorization = payload.get("authorization")
        if isinstance(authorization, dict) and isinstance(authorization.get("from"), str):
            return authorization["from"] or None
        if isinstance(payload.get("from"), str):
            return payload["from"] or None
    for key in ("from", "payer"):
        if isinstance(data.get(key), str) and data[key]:
            return data[key]
    return None
