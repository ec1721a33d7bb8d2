"""
Money helpers — integer cents everywhere, decimals only at the boundary.

Rules:
  - Every amount that takes part in arithmetic is an int number of cents
  - Multiplying by a rate or a fraction rounds half-up exactly once
  - Conversion to/from "45.00" style values happens only in schemas/routers
"""

from decimal import Decimal, ROUND_HALF_UP
from fractions import Fraction
from typing import Iterable

Cents = int

CENT = Decimal("0.01")


def _require_cents(value) -> int:
    # bool is an int subclass but never a money amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Expected integer cents, got {type(value).__name__}: {value!r}")
    return value


def _round_half_up(value: Fraction) -> int:
    """Round an exact rational to the nearest integer, halves away from zero."""
    sign = -1 if value < 0 else 1
    quotient, remainder = divmod(abs(value.numerator), value.denominator)
    if 2 * remainder >= value.denominator:
        quotient += 1
    return sign * quotient


def dollars_to_cents(amount) -> Cents:
    """Convert a major-unit amount (Decimal, str, int or float) to cents."""
    if isinstance(amount, float):
        amount = str(amount)
    return int((Decimal(amount) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def cents_to_dollars(cents: Cents) -> Decimal:
    """Convert cents to a two-place Decimal for display and API payloads."""
    return (Decimal(_require_cents(cents)) / 100).quantize(CENT)


def format_cents(cents: Cents) -> str:
    """Render cents as a plain decimal string, e.g. 4500 -> "45.00"."""
    return f"{cents_to_dollars(cents):.2f}"


def apply_rate(cents: Cents, rate) -> Cents:
    """Multiply cents by a rate (tax, discount) with one half-up rounding."""
    if isinstance(rate, float):
        rate = str(rate)
    return _round_half_up(Fraction(_require_cents(cents)) * Fraction(Decimal(rate)))


def prorate(cents: Cents, numerator: int, denominator: int) -> Cents:
    """Return cents × numerator / denominator, rounded half-up once."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return _round_half_up(Fraction(_require_cents(cents) * numerator, denominator))


def sum_cents(amounts: Iterable[Cents]) -> Cents:
    """Exact integer sum of cent amounts."""
    return sum(_require_cents(a) for a in amounts)
