"""Decimal helpers for ZAR amounts."""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Any) -> Decimal:
    """Convert ``value`` to a Decimal rounded half-up to cents.

    Accepts Decimal, int, float or str. Raises ValueError on garbage.
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            # str() avoids binary float artefacts
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise ValueError(f"Invalid money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return to_money(Decimal(amount) * Decimal(percent) / HUNDRED)


def format_amount(amount: Decimal) -> str:
    """Two-decimal string as sent to the provider."""

    return f"{to_money(amount):.2f}"


__all__ = ["CENT", "ZERO", "HUNDRED", "to_money", "percent_of", "format_amount"]
