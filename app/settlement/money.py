"""
Fixed-point money helpers for settlement amounts.

Every monetary value handled by the settlement engine is a ``Decimal``
quantized to two fractional digits (the minor unit of the supported
currencies). Binary floats are rejected outright so rounding drift cannot
creep in through proration or fee math.

Usage:
    from settlement import money

    money.add("30.00", "70.00")                   # Decimal("100.00")
    money.multiply_by_ratio("10.00", 30, 100)     # Decimal("3.00")
    money.prorate("10.00", [30, 70])              # [Decimal("3.00"), Decimal("7.00")]
    money.to_minor_units("150.00")                # 15000
    money.from_minor_units(15000)                 # Decimal("150.00")
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

AmountLike = Decimal | str | int

MINOR_UNIT_DIGITS = 2
CENT = Decimal("0.01")
ZERO = Decimal("0.00")
_MINOR_UNIT_FACTOR = Decimal(10) ** MINOR_UNIT_DIGITS


def to_decimal(value: AmountLike) -> Decimal:
    """
    Convert a value to an unquantized Decimal.

    Raises:
        TypeError: If value is a float (or any other unsupported type)
        ValueError: If a string cannot be parsed as a decimal
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Money amounts must not be {type(value).__name__}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as e:
            raise ValueError(f"Invalid money amount: {value!r}") from e
    raise TypeError(f"Unsupported money amount type: {type(value).__name__}")


def quantize(value: AmountLike) -> Decimal:
    """Round a value to minor-unit precision (half-up)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def add(*amounts: AmountLike) -> Decimal:
    total = sum((to_decimal(a) for a in amounts), Decimal(0))
    return quantize(total)


def subtract(minuend: AmountLike, *subtrahends: AmountLike) -> Decimal:
    result = to_decimal(minuend)
    for amount in subtrahends:
        result -= to_decimal(amount)
    return quantize(result)


def multiply_by_ratio(
    total: AmountLike,
    weight: AmountLike,
    total_weight: AmountLike,
) -> Decimal:
    """
    Return ``total * weight / total_weight`` rounded to minor units.

    A zero ``total_weight`` yields zero; callers that need an equal split
    in that case should use ``prorate``.
    """
    denominator = to_decimal(total_weight)
    if denominator == 0:
        return ZERO
    return quantize(to_decimal(total) * to_decimal(weight) / denominator)


def prorate(total: AmountLike, weights: Sequence[AmountLike]) -> list[Decimal]:
    """
    Split ``total`` across ``weights`` so the parts sum exactly to ``total``.

    Each line is allocated from the cumulative weight seen so far, which
    keeps every part non-negative for a non-negative total. The last line
    absorbs the rounding remainder. When every weight is zero the total is
    split equally.

    Args:
        total: Amount to distribute
        weights: One weight per line, in line order

    Returns:
        List of quantized parts, one per weight
    """
    if not weights:
        return []

    total_amount = quantize(total)
    decimal_weights = [to_decimal(w) for w in weights]
    if any(w < 0 for w in decimal_weights):
        raise ValueError("Proration weights must be non-negative")

    total_weight = sum(decimal_weights, Decimal(0))
    if total_weight == 0:
        decimal_weights = [Decimal(1)] * len(weights)
        total_weight = Decimal(len(weights))

    parts: list[Decimal] = []
    allocated = ZERO
    cumulative_weight = Decimal(0)
    for weight in decimal_weights[:-1]:
        cumulative_weight += weight
        target = multiply_by_ratio(total_amount, cumulative_weight, total_weight)
        parts.append(target - allocated)
        allocated = target

    parts.append(total_amount - allocated)
    return parts


def to_minor_units(amount: AmountLike) -> int:
    """Convert a decimal amount to integer minor units (e.g. cents)."""
    return int(quantize(amount) * _MINOR_UNIT_FACTOR)


def from_minor_units(minor_units: int) -> Decimal:
    """Convert integer minor units to a quantized decimal amount."""
    if not isinstance(minor_units, int) or isinstance(minor_units, bool):
        raise TypeError("Minor units must be an integer")
    return quantize(Decimal(minor_units) / _MINOR_UNIT_FACTOR)


def format_amount(amount: AmountLike) -> str:
    """Render an amount as the canonical decimal string (e.g. '31.50')."""
    return f"{quantize(amount):.{MINOR_UNIT_DIGITS}f}"
