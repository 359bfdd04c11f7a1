"""
Line item arithmetic and numeric normalisation.

The API returns DECIMAL columns as JSON strings ("5.00"), so every record
is normalised before any arithmetic touches it.
"""
from __future__ import annotations
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional
from loguru import logger

ITEM_NUMERIC_FIELDS = (
    "quantity",
    "unit_price",
    "discount_percentage",
    "discount_amount",
    "tax_percentage",
    "tax_amount",
    "line_total",
)

DOCUMENT_NUMERIC_FIELDS = ("subtotal", "tax_amount", "total_amount")


def coerce_number(value: Any, default: float = 0.0) -> float:
    """
    Coerce an API value to a number.

    Finite numbers pass through unchanged. Numeric strings (with optional
    thousands separators) become floats. None, empty, unparseable and
    non-finite values (NaN, infinity) become ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else default
    s = str(value).strip().replace(",", "")
    if not s or s.lower() in ("null", "none"):
        return default
    try:
        number = float(s)
    except ValueError:
        logger.warning(f"Could not parse number: {value!r}")
        return default
    return number if math.isfinite(number) else default


def coerce_bool(value: Any) -> bool:
    return value is True or value == 1 or value in ("1", "true", "True")


def normalize_item(raw: Mapping[str, Any]) -> dict:
    """Return a copy of an item row with numeric and boolean fields coerced."""
    item = dict(raw)
    for name in ITEM_NUMERIC_FIELDS:
        item[name] = coerce_number(item.get(name))
    item["tax_inclusive"] = coerce_bool(item.get("tax_inclusive"))
    return item


def normalize_document(raw: Mapping[str, Any]) -> dict:
    """Return a copy of a document row with its money fields coerced."""
    doc = dict(raw)
    for name in DOCUMENT_NUMERIC_FIELDS:
        doc[name] = coerce_number(doc.get(name))
    return doc


@dataclass(frozen=True)
class LineTotals:
    line_total: float
    tax_amount: float
    subtotal: float
    discount_amount: float


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: float
    tax_amount: float
    total_amount: float


def calculate_line_item_total(
    quantity: float,
    unit_price: float,
    discount_percentage: float = 0,
    tax_percentage: float = 0,
    tax_inclusive: bool = False,
) -> LineTotals:
    """
    Compute a line's totals.

    Exclusive tax is added on top of the discounted amount. Inclusive tax
    is already part of the unit price and is extracted from it.
    """
    base_amount = quantity * unit_price
    discount_amount = base_amount * (discount_percentage / 100)
    after_discount = base_amount - discount_amount

    if tax_inclusive:
        line_total = after_discount
        tax_amount = after_discount - (after_discount / (1 + tax_percentage / 100))
    else:
        tax_amount = after_discount * (tax_percentage / 100)
        line_total = after_discount + tax_amount

    return LineTotals(
        line_total=line_total,
        tax_amount=tax_amount,
        subtotal=after_discount,
        discount_amount=discount_amount,
    )


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def calculate_document_totals(items: Iterable[Any]) -> DocumentTotals:
    """
    Sum line items into document totals.

    Items may be dicts or objects with the usual item attributes. The
    subtotal is net of tax, so ``total_amount == subtotal + tax_amount``.
    """
    subtotal = 0.0
    tax_amount = 0.0
    for item in items:
        line = calculate_line_item_total(
            quantity=coerce_number(_field(item, "quantity")),
            unit_price=coerce_number(_field(item, "unit_price")),
            discount_percentage=coerce_number(_field(item, "discount_percentage")),
            tax_percentage=coerce_number(_field(item, "tax_percentage")),
            tax_inclusive=coerce_bool(_field(item, "tax_inclusive")),
        )
        subtotal += line.line_total - line.tax_amount
        tax_amount += line.tax_amount
    return DocumentTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        total_amount=subtotal + tax_amount,
    )


_DATE_FORMATS = (
    "%Y-%m-%d",    # 2025-01-31
    "%Y%m%d",      # 20250131
    "%d-%m-%Y",    # 31-01-2025
    "%d/%m/%Y",    # 31/01/2025
)


def coerce_date(value: Any) -> Optional[date]:
    """
    Coerce an API date value to a ``date``.

    Accepts ``date``/``datetime`` objects and strings, including MySQL
    DATETIME (``2025-01-31 10:00:00``) and ISO timestamps. Returns None for
    empty or unparseable values.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s or s.lower() in ("null", "none", "0000-00-00"):
        return None
    # Drop any time component
    if len(s) > 10 and s[10] in ("T", " "):
        s = s[:10]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    logger.warning(f"Could not parse date: {value!r}")
    return None
