"""
Trading P&L: revenue, cost of goods sold and gross profit from invoices.

Every function takes an optional inclusive ``[start, end]`` window on the
invoice date; without both bounds all invoices count.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional

from ..items import coerce_date
from ..models import TradingInvoice
from .dates import filter_window, last_months, month_key, month_name


@dataclass(frozen=True)
class TradingPLMetrics:
    period_start: Optional[date]
    period_end: Optional[date]
    revenue: float
    cogs: float
    gross_profit: float
    gross_margin_percentage: float
    invoice_count: int
    unique_customers: int
    average_order_value: float


@dataclass
class ProductPerformance:
    product_id: Optional[str]
    product_name: str
    quantity_sold: float = 0.0
    revenue: float = 0.0
    cogs: float = 0.0

    @property
    def gross_profit(self) -> float:
        return self.revenue - self.cogs

    @property
    def gross_margin_percentage(self) -> float:
        return (self.gross_profit / self.revenue) * 100 if self.revenue > 0 else 0.0


@dataclass
class MonthlySales:
    month: str
    month_name: str
    revenue: float = 0.0
    cogs: float = 0.0
    invoice_count: int = 0
    customers: set = field(default_factory=set, repr=False)

    @property
    def gross_profit(self) -> float:
        return self.revenue - self.cogs

    @property
    def unique_customers(self) -> int:
        return len(self.customers)


def _window(invoices: Iterable[TradingInvoice], start: Any, end: Any) -> list[TradingInvoice]:
    return filter_window(invoices, start, end, lambda inv: inv.invoice_date)


def _invoice_cogs(invoice: TradingInvoice) -> float:
    return sum(item.quantity * item.cost_price for item in invoice.items)


def calculate_revenue(invoices, start=None, end=None) -> float:
    return sum(inv.total_amount for inv in _window(invoices, start, end))


def calculate_cogs(invoices, start=None, end=None) -> float:
    """Cost of goods sold: quantity times the product's cost price."""
    return sum(_invoice_cogs(inv) for inv in _window(invoices, start, end))


def calculate_gross_profit(revenue: float, cogs: float) -> float:
    return revenue - cogs


def calculate_gross_margin_percentage(revenue: float, cogs: float) -> float:
    if revenue == 0:
        return 0.0
    return ((revenue - cogs) / revenue) * 100


def get_unique_customer_count(invoices, start=None, end=None) -> int:
    return len({inv.customer_id for inv in _window(invoices, start, end) if inv.customer_id})


def calculate_average_order_value(invoices, start=None, end=None) -> float:
    filtered = _window(invoices, start, end)
    if not filtered:
        return 0.0
    return sum(inv.total_amount for inv in filtered) / len(filtered)


def calculate_trading_pl_metrics(invoices, start, end) -> TradingPLMetrics:
    invoices = list(invoices)
    revenue = calculate_revenue(invoices, start, end)
    cogs = calculate_cogs(invoices, start, end)
    return TradingPLMetrics(
        period_start=coerce_date(start),
        period_end=coerce_date(end),
        revenue=revenue,
        cogs=cogs,
        gross_profit=calculate_gross_profit(revenue, cogs),
        gross_margin_percentage=calculate_gross_margin_percentage(revenue, cogs),
        invoice_count=len(_window(invoices, start, end)),
        unique_customers=get_unique_customer_count(invoices, start, end),
        average_order_value=calculate_average_order_value(invoices, start, end),
    )


def calculate_product_performance(invoices, start=None, end=None) -> list[ProductPerformance]:
    """Per-product quantity, revenue and COGS, highest revenue first."""
    products: dict[Optional[str], ProductPerformance] = {}
    for inv in _window(invoices, start, end):
        for item in inv.items:
            perf = products.get(item.product_id)
            if perf is None:
                perf = products[item.product_id] = ProductPerformance(
                    product_id=item.product_id,
                    product_name=item.product_name,
                )
            perf.quantity_sold += item.quantity
            perf.revenue += item.line_total or item.quantity * item.unit_price
            perf.cogs += item.quantity * item.cost_price
    return sorted(products.values(), key=lambda p: p.revenue, reverse=True)


def calculate_monthly_sales_data(
    invoices,
    months: int = 6,
    today: Optional[date] = None,
) -> list[MonthlySales]:
    """Revenue, COGS and counts for each of the last ``months`` months."""
    buckets = {
        month_key(first): MonthlySales(month=month_key(first), month_name=month_name(first))
        for first in last_months(months, today)
    }
    for inv in invoices:
        bucket = buckets.get(month_key(inv.invoice_date)) if inv.invoice_date else None
        if bucket is None:
            continue
        bucket.revenue += inv.total_amount
        bucket.cogs += _invoice_cogs(inv)
        bucket.invoice_count += 1
        if inv.customer_id:
            bucket.customers.add(inv.customer_id)
    return list(buckets.values())
