"""
Consolidated P&L: trading and transport combined.

Revenue from both sides is added; COGS and gross profit come from trading
only, and transport expenses are deducted from gross profit to give the
operating profit.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from .trading import MonthlySales, TradingPLMetrics, calculate_trading_pl_metrics
from .transport import MonthlyTransport, TransportPLMetrics, calculate_transport_pl_metrics


@dataclass(frozen=True)
class ConsolidatedPLMetrics:
    trading: Optional[TradingPLMetrics]
    transport: Optional[TransportPLMetrics]
    total_revenue: float
    total_cogs: float
    total_gross_profit: float
    gross_margin_percentage: float
    transport_expenses: float
    operating_profit: float
    net_margin_percentage: float


@dataclass
class MonthlyConsolidated:
    month: str
    month_name: str
    trading_revenue: float = 0.0
    trading_cogs: float = 0.0
    trading_gross_profit: float = 0.0
    transport_revenue: float = 0.0
    transport_expenses: float = 0.0
    transport_profit: float = 0.0


def _percent(numerator: float, denominator: float) -> float:
    return (numerator / denominator) * 100 if denominator > 0 else 0.0


def combine_metrics(
    trading: Optional[TradingPLMetrics],
    transport: Optional[TransportPLMetrics],
) -> ConsolidatedPLMetrics:
    """Combine already computed trading and transport metrics; either may be missing."""
    total_revenue = (trading.revenue if trading else 0.0) + (transport.revenue if transport else 0.0)
    total_cogs = trading.cogs if trading else 0.0
    gross_profit = trading.gross_profit if trading else 0.0
    transport_expenses = transport.total_expenses if transport else 0.0
    operating_profit = gross_profit - transport_expenses
    return ConsolidatedPLMetrics(
        trading=trading,
        transport=transport,
        total_revenue=total_revenue,
        total_cogs=total_cogs,
        total_gross_profit=gross_profit,
        gross_margin_percentage=_percent(gross_profit, total_revenue),
        transport_expenses=transport_expenses,
        operating_profit=operating_profit,
        net_margin_percentage=_percent(operating_profit, total_revenue),
    )


def calculate_consolidated_pl_metrics(invoices, trips, start, end) -> ConsolidatedPLMetrics:
    """
    Consolidated metrics for one window.

    Pass ``None`` for a side whose data could not be loaded; it then
    contributes nothing and its section is left out of the report.
    """
    trading = calculate_trading_pl_metrics(invoices, start, end) if invoices is not None else None
    transport = calculate_transport_pl_metrics(trips, start, end) if trips is not None else None
    return combine_metrics(trading, transport)


def merge_monthly_data(
    trading: list[MonthlySales],
    transport: list[MonthlyTransport],
) -> list[MonthlyConsolidated]:
    """Join the trading and transport monthly series on the month key."""
    merged: dict[str, MonthlyConsolidated] = {}
    for m in trading:
        merged[m.month] = MonthlyConsolidated(
            month=m.month,
            month_name=m.month_name,
            trading_revenue=m.revenue,
            trading_cogs=m.cogs,
            trading_gross_profit=m.gross_profit,
        )
    for m in transport:
        row = merged.setdefault(m.month, MonthlyConsolidated(month=m.month, month_name=m.month_name))
        row.transport_revenue = m.revenue
        row.transport_expenses = m.total_expenses
        row.transport_profit = m.operating_profit
    return list(merged.values())
