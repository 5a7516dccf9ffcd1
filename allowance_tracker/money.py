from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
# Largest value a Numeric(12, 2) column holds.
MAX_AMOUNT = Decimal("9999999999.99")


def coerce_decimal(value: Decimal | float | int | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def quantize_money(value: Decimal | float | int | str) -> Decimal:
    """Round to cents, halves away from zero."""
    try:
        return coerce_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Amount out of range: {value!r}") from exc


def require_positive_amount(value: Decimal | float | int | str | None) -> Decimal:
    if value is None:
        raise ValueError("Amount is required.")
    amount = coerce_decimal(value)
    if not amount.is_finite():
        raise ValueError("Amount must be a finite number.")
    if amount > MAX_AMOUNT:
        raise ValueError(f"Amount must not exceed {MAX_AMOUNT}.")
    amount = quantize_money(amount)
    if amount <= ZERO:
        raise ValueError("Amount must be greater than zero.")
    return amount


def split_in_half(amount: Decimal) -> Decimal:
    """Half of ``amount`` rounded to cents; both halves of a split use this value."""
    return quantize_money(coerce_decimal(amount) / 2)
