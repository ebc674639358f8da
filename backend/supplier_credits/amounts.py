# Overview: Decimal money parsing and formatting for ledger amounts.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Largest magnitude a Numeric(14, 2) column holds
MAX_AMOUNT = Decimal("999999999999.99")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce caller input to a 2-place Decimal.

    Accepts Decimal, int, float and numeric strings. Rejects booleans,
    NaN/Infinity and anything that does not parse.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")

    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float)):
        dec = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            dec = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    dec = quantize(dec)
    if abs(dec) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum allowed ({MAX_AMOUNT})")
    return dec


def to_decimal(value: Any) -> Decimal:
    """Normalize a stored column value (None, float from SQLite) to Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return quantize(value)
    return quantize(Decimal(str(value)))


def format_amount(value: Any) -> str | None:
    if value is None:
        return None
    return str(to_decimal(value))
