"""Currency and percentage formatting for reports."""
from __future__ import annotations
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from ..items import coerce_number

CURRENCY_PREFIX = "Ksh"


def format_currency(amount: Any) -> str:
    """
    Format an amount in Kenyan shillings with no decimals.

    >>> format_currency(1234.5)
    'Ksh 1,235'
    >>> format_currency(float("nan"))
    'Ksh 0'
    """
    value = coerce_number(amount)
    if not math.isfinite(value):
        return f"{CURRENCY_PREFIX} 0"
    rounded = int(Decimal(str(abs(value))).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    sign = "-" if value < 0 and rounded else ""
    return f"{sign}{CURRENCY_PREFIX} {rounded:,}"


def format_percentage(value: Any, decimals: int = 2) -> str:
    """
    >>> format_percentage(12.345, 1)
    '12.3%'
    """
    number = coerce_number(value)
    if not math.isfinite(number):
        return "0%"
    return f"{number:.{decimals}f}%"
