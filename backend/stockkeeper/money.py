from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .errors import InvalidInputError

# Maximum amount: 99,999,999.99 (fits NUMERIC(10, 2) used upstream)
MAX_AMOUNT_CENTS = 9_999_999_999


def to_cents(value, field: str) -> int:
    """
    Convert a money input to integer cents without floating point drift.

    Accepts int, Decimal, str ("12.50") or float; more than two decimal
    places is rejected rather than rounded.
    """
    if value is None or isinstance(value, bool):
        raise InvalidInputError(f"{field} must be a number", field=field)
    try:
        if isinstance(value, float):
            amount = Decimal(repr(value))
        else:
            amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"{field} must be a number", field=field)

    if not amount.is_finite():
        raise InvalidInputError(f"{field} must be a finite number", field=field)

    cents = amount * 100
    if cents != cents.to_integral_value():
        raise InvalidInputError(f"{field} allows at most two decimal places", field=field)

    cents_int = int(cents)
    if abs(cents_int) > MAX_AMOUNT_CENTS:
        raise InvalidInputError(f"{field} is out of range", field=field)
    return cents_int


def format_cents(cents: int | None) -> str | None:
    """Render cents as a two-decimal string, e.g. 1250 -> "12.50"."""
    if cents is None:
        return None
    return str((Decimal(cents) / 100).quantize(Decimal("0.01")))
