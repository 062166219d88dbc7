"""
Core types for paywarden.

Amounts are held as integer base units of the reference currency
(USD, 6 implied decimals). USD values from configuration and price strings
are converted once, at the edge, and never travel through float arithmetic.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from enum import Enum

from paywarden.core.exceptions import ValidationError

BASE_UNIT_DECIMALS = 6
BASE_UNITS_PER_USD = 10**BASE_UNIT_DECIMALS


class Direction(str, Enum):
    """Direction of a transfer relative to this agent."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"

    @classmethod
    def from_string(cls, value: str) -> Direction:
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown payment direction: {value}") from None


def _to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(f"Amount must be finite: {value!r}")
    return amount


def usd_to_base_units(value: Decimal | int | float | str) -> int:
    """
    Convert a USD amount to base units, truncating toward zero.

    Args:
        value: USD amount (e.g. Decimal("1.5"), "0.01", 10)

    Returns:
        Amount in base units (1.5 USD -> 1_500_000)

    Raises:
        ValidationError: If the value is not a finite number
    """
    amount = _to_decimal(value) * BASE_UNITS_PER_USD
    return int(amount.to_integral_value(rounding=ROUND_DOWN))


def base_units_to_usd(units: int) -> Decimal:
    """Convert base units back to a USD Decimal (for reporting only)."""
    return Decimal(units) / Decimal(BASE_UNITS_PER_USD)


def format_usd(units: int) -> str:
    """Render base units as a human readable USD string."""
    return f"{base_units_to_usd(units).normalize():f} USD"


def parse_price_amount(price: Decimal | int | float | str | None) -> int | None:
    """
    Parse a declared price into base units.

    Accepts "1.5", "$0.01" or numeric values. Returns None for empty,
    negative, non-finite or unparsable input.
    """
    if price is None:
        return None
    if isinstance(price, str):
        price = price.strip().lstrip("$").strip()
        if not price:
            return None
    try:
        units = usd_to_base_units(price)
    except ValidationError:
        return None
    if units < 0:
        return None
    return units
