"""
CSV export of P&L reports.

Every cell is double-quoted with embedded quotes doubled, and rows are
separated by a bare ``\\n``, matching what spreadsheet imports of the web
reports expect.
"""
from __future__ import annotations
import csv
import io
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence
from loguru import logger

from .consolidated import ConsolidatedPLMetrics
from .dates import filter_window
from .formatting import format_currency, format_percentage

TRADING_HEADERS = ["Invoice Number", "Invoice Date", "Customer", "Status", "Total Amount"]

TRANSPORT_HEADERS = [
    "Date",
    "Vehicle ID",
    "Material",
    "Buying Price",
    "Fuel Cost",
    "Driver Fees",
    "Other Expenses",
    "Selling Price",
    "Profit",
    "Payment Status",
    "Customer",
]

CONSOLIDATED_HEADERS = ["Category", "Amount", "Percentage of Revenue"]


def to_csv(headers: Sequence[Any], rows: Iterable[Sequence[Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(["" if c is None else c for c in headers])
    for row in rows:
        writer.writerow(["" if c is None else c for c in row])
    # No terminator after the last row
    return buf.getvalue()[:-1]


def write_csv(path: str | Path, headers: Sequence[Any], rows: Iterable[Sequence[Any]]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(to_csv(headers, rows))
    logger.info(f"Report written to {path}")
    return path


def export_filename(report: str, date_range: str, today: Optional[date] = None) -> str:
    """``trading-pl-report-last_30_days-2025-01-31.csv``"""
    today = today or date.today()
    return f"{report}-pl-report-{date_range}-{today.isoformat()}.csv"


def _day(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def trading_report_rows(invoices, start=None, end=None) -> list[list[str]]:
    return [
        [
            inv.invoice_number or "",
            _day(inv.invoice_date),
            inv.customer_name or inv.customer_id or "Unknown",
            inv.status or "",
            format_currency(inv.total_amount),
        ]
        for inv in filter_window(invoices, start, end, lambda inv: inv.invoice_date)
    ]


def transport_report_rows(trips, start=None, end=None) -> list[list[str]]:
    rows = []
    for t in filter_window(trips, start, end, lambda t: t.date):
        profit = t.selling_price - t.buying_price - t.fuel_cost - t.driver_fees - t.other_expenses
        rows.append(
            [
                _day(t.date),
                t.vehicle_id or "Unknown",
                t.materials or "-",
                format_currency(t.buying_price),
                format_currency(t.fuel_cost),
                format_currency(t.driver_fees),
                format_currency(t.other_expenses),
                format_currency(t.selling_price),
                format_currency(profit),
                t.payment_status or "-",
                t.customer_name or "-",
            ]
        )
    return rows


def _share(amount: float, revenue: float) -> str:
    return format_percentage((amount / revenue) * 100 if revenue else 0)


def consolidated_report_rows(metrics: ConsolidatedPLMetrics) -> list[list[str]]:
    rows = []
    trading, transport = metrics.trading, metrics.transport
    if trading is not None:
        rows += [
            ["TRADING OPERATIONS", "", ""],
            ["Revenue", format_currency(trading.revenue), "100%"],
            ["Cost of Goods Sold", format_currency(trading.cogs), _share(trading.cogs, trading.revenue)],
            ["Gross Profit", format_currency(trading.gross_profit), format_percentage(trading.gross_margin_percentage)],
            ["", "", ""],
        ]
    if transport is not None:
        rows += [
            ["TRANSPORT OPERATIONS", "", ""],
            ["Revenue", format_currency(transport.revenue), "100%"],
            [
                "Operating Expenses",
                format_currency(transport.total_expenses),
                _share(transport.total_expenses, transport.revenue),
            ],
            [
                "Operating Profit",
                format_currency(transport.operating_profit),
                format_percentage(transport.operating_margin_percentage),
            ],
            ["", "", ""],
        ]
    revenue = metrics.total_revenue
    rows += [
        ["CONSOLIDATED", "", ""],
        ["Total Revenue", format_currency(revenue), "100%"],
        ["Total COGS", format_currency(metrics.total_cogs), _share(metrics.total_cogs, revenue)],
        ["Gross Profit", format_currency(metrics.total_gross_profit), format_percentage(metrics.gross_margin_percentage)],
        [
            "Transport Expenses",
            format_currency(metrics.transport_expenses),
            _share(metrics.transport_expenses, revenue),
        ],
        [
            "Net Operating Profit",
            format_currency(metrics.operating_profit),
            format_percentage(metrics.net_margin_percentage),
        ],
    ]
    return rows
