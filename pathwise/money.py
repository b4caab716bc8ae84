"""
Exact money and calendar-month helpers.

Every amount that enters the engine goes through ``to_money`` so that the
arithmetic below never sees a binary float.
"""

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from dateutil.relativedelta import relativedelta

from .errors import ValidationError

MONEY_SCALE = Decimal("0.001")
PERCENT_SCALE = Decimal("0.01")
ZERO = Decimal("0.000")


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Convert a value to a 3-decimal ``Decimal``.

    Args:
        value: Decimal, int or numeric string
        field: Name used in the error message

    Returns:
        Quantized Decimal

    Raises:
        ValidationError: for floats, booleans, None and non-numeric values
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be an exact decimal, not {type(value).__name__}")
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} is not a valid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite")
    try:
        return amount.quantize(MONEY_SCALE, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"{field} is out of range")


def optional_money(value: Any, field: str = "amount") -> Optional[Decimal]:
    if value is None:
        return None
    return to_money(value, field)


def format_money(amount: Decimal) -> str:
    return f"{amount.quantize(MONEY_SCALE, rounding=ROUND_HALF_UP):.3f}"


def months_to_cover(remaining: Decimal, rate: Decimal) -> int:
    """Whole months needed to save ``remaining`` at ``rate`` per month (ceiling)."""
    if remaining <= 0:
        return 0
    if rate <= 0:
        raise ValidationError("monthly rate must be positive")
    # Integer minor units keep the ceiling exact.
    remaining_units = int(remaining.scaleb(3).to_integral_value(rounding=ROUND_HALF_UP))
    rate_units = int(rate.scaleb(3).to_integral_value(rounding=ROUND_HALF_UP))
    return -(-remaining_units // rate_units)


def add_months(start: date, months: int) -> date:
    """Calendar month addition, clamping to the last day of short months."""
    return start + relativedelta(months=months)


def months_later(start: date, months: int) -> Optional[date]:
    """``add_months`` that returns None past the last representable date"""
    try:
        return add_months(start, months)
    except (ValueError, OverflowError):
        return None


def whole_months_between(start: date, end: date) -> int:
    """Complete months from ``start`` to ``end``; negative when ``end`` is earlier."""
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def month_start(day: date) -> date:
    return day.replace(day=1)
