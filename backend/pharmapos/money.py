# Overview: Integer-cent arithmetic shared by the cart, order ledger and reports.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from .errors import ValidationError

CENT = Decimal("1")


def to_decimal_rate(rate) -> Decimal:
    """Accept 0.08, "0.08" or Decimal("0.08"); reject negatives and junk."""
    try:
        value = Decimal(str(rate))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"invalid rate: {rate!r}")
    if not value.is_finite() or value < 0:
        raise ValidationError(f"invalid rate: {rate!r}")
    return value


def apply_rate(amount_cents: int, rate) -> int:
    """amount * rate rounded half-up to the nearest cent."""
    product = Decimal(amount_cents) * to_decimal_rate(rate)
    return int(product.quantize(CENT, rounding=ROUND_HALF_UP))


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def format_cents(cents: int, currency: str = "USD") -> str:
    sign = "-" if cents < 0 else ""
    return f"{sign}{abs(cents) // 100:,}.{abs(cents) % 100:02d} {currency}"
