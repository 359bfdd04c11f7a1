"""
P&L reporting: pure aggregators over invoices and transport trips, plus
formatting, CSV export and loaders that fetch the records.
"""
from .consolidated import (
    ConsolidatedPLMetrics,
    calculate_consolidated_pl_metrics,
    combine_metrics,
    merge_monthly_data,
)
from .dates import DATE_RANGE_PRESETS, in_window, resolve_date_range
from .export import (
    consolidated_report_rows,
    export_filename,
    to_csv,
    trading_report_rows,
    transport_report_rows,
    write_csv,
)
from .formatting import format_currency, format_percentage
from .source import load_trading_invoices, load_transport_trips
from .trading import TradingPLMetrics, calculate_trading_pl_metrics
from .transport import TransportPLMetrics, calculate_transport_pl_metrics

__all__ = [
    "ConsolidatedPLMetrics",
    "DATE_RANGE_PRESETS",
    "TradingPLMetrics",
    "TransportPLMetrics",
    "calculate_consolidated_pl_metrics",
    "calculate_trading_pl_metrics",
    "calculate_transport_pl_metrics",
    "combine_metrics",
    "consolidated_report_rows",
    "export_filename",
    "format_currency",
    "format_percentage",
    "in_window",
    "load_trading_invoices",
    "load_transport_trips",
    "merge_monthly_data",
    "resolve_date_range",
    "to_csv",
    "trading_report_rows",
    "transport_report_rows",
    "write_csv",
]
