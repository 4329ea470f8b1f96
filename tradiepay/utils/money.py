"""Money helpers: all stored amounts are integer minor units (cents)."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_CENT = Decimal("0.01")
_UNIT = Decimal("1")


def to_decimal(value: Any) -> Decimal:
    """Convert a money amount to ``Decimal`` without float artefacts."""

    if isinstance(value, Decimal):
        return value
    try:
        # str() avoids binary float artefacts
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Invalid money amount: {value!r}") from exc


def to_minor_units(amount: Any) -> int:
    """Convert a major-unit amount (``200.00``) to minor units (``20000``)."""

    try:
        normalized = to_decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Money amount out of range: {amount!r}") from exc
    return int((normalized * 100).to_integral_value(rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent: Decimal) -> int:
    """Return ``percent`` % of ``amount`` minor units, rounded half-up to a whole unit."""

    return int((Decimal(amount) * to_decimal(percent) / 100).quantize(_UNIT, rounding=ROUND_HALF_UP))


def platform_fee(amount: int, percent: Decimal) -> int:
    """Platform fee for an escrow payment of ``amount`` minor units."""

    return percent_of(amount, percent)


__all__ = ["to_decimal", "to_minor_units", "percent_of", "platform_fee"]
