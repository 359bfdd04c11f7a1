"""
Command line interface for bizdocs.

Usage:
    # Check the API is reachable
    python -m bizdocs test-connection

    # Allocate a document number
    python -m bizdocs next-number invoice

    # Preview a conversion, then run it
    python -m bizdocs convert quotation 42 invoice
    python -m bizdocs convert quotation 42 invoice --yes

    # Change status / delete
    python -m bizdocs set-status quotation 42 sent --note "Emailed to client"
    python -m bizdocs delete proforma 17 --yes

    # P&L reports
    python -m bizdocs report trading --range last_90_days
    python -m bizdocs report consolidated --from 2025-01-01 --to 2025-03-31 --csv reports/
"""
from __future__ import annotations
import argparse
import sys
from datetime import date
from pathlib import Path
from typing import Optional
from loguru import logger

from .client import ApiClient
from .config import BizDocsConfig
from .conversion import ConversionPreview, ConversionResult, ConversionWorkflow
from .documents import DocumentService
from .errors import BizDocsError
from .models import DocumentKind
from .numbering import DOCUMENT_TYPE_MAP, DocumentNumberingService
from .reports import (
    DATE_RANGE_PRESETS,
    calculate_consolidated_pl_metrics,
    calculate_trading_pl_metrics,
    calculate_transport_pl_metrics,
    consolidated_report_rows,
    export_filename,
    format_currency,
    format_percentage,
    load_trading_invoices,
    load_transport_trips,
    resolve_date_range,
    trading_report_rows,
    transport_report_rows,
    write_csv,
)
from .reports.export import CONSOLIDATED_HEADERS, TRADING_HEADERS, TRANSPORT_HEADERS
from .session import SessionStore
from .store import DataStore

KINDS = [k.value for k in DocumentKind]
REPORTS = ("trading", "transport", "consolidated")


class BizDocs:
    """
    Wires the API client, store and services from one configuration.

    Usage:
        with BizDocs() as app:
            app.conversions.convert("quotation", "42", "invoice")
    """

    def __init__(self, config: Optional[BizDocsConfig] = None):
        self.config = config or BizDocsConfig.from_env()
        self.session_store = SessionStore(self.config.session_file)
        self.client = ApiClient(self.config, self.session_store)
        self.store = DataStore(self.client)
        self.numbering = DocumentNumberingService(self.client, self.config)
        self.documents = DocumentService(self.store, self.numbering, self.config)
        self.conversions = ConversionWorkflow(
            self.store,
            self.numbering,
            self.config,
            user_id=self.session_store.user_id,
        )

    def test_connection(self) -> dict:
        return self.client.test_connection()

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def configure_logging(config: BizDocsConfig, verbose: bool = False, quiet: bool = False):
    logger.remove()
    if quiet:
        logger.add(sys.stderr, level="ERROR")
    elif verbose:
        logger.add(sys.stderr, level="DEBUG")
    else:
        logger.add(sys.stderr, level=config.log_level.upper())
    if config.log_file:
        logger.add(config.log_file, level="DEBUG", rotation="10 MB", retention=5)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bizdocs",
        description="Quotations, proformas, invoices and P&L reports over the business API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress output except errors")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("test-connection", help="Check the API is reachable")

    p = sub.add_parser("next-number", help="Allocate the next document number")
    p.add_argument("type", choices=sorted(DOCUMENT_TYPE_MAP), help="Document type")
    p.add_argument("--date", type=date.fromisoformat, help="Document date (YYYY-MM-DD)")

    p = sub.add_parser("convert", help="Convert a quotation or proforma")
    p.add_argument("source_kind", choices=KINDS)
    p.add_argument("id", help="Source document id")
    p.add_argument("target_kind", choices=KINDS)
    p.add_argument("--yes", action="store_true", help="Perform the conversion (default: preview only)")
    p.add_argument("--no-stock", action="store_true", help="Do not create stock movements")

    p = sub.add_parser("set-status", help="Change a document's status")
    p.add_argument("kind", choices=KINDS)
    p.add_argument("id")
    p.add_argument("status")
    p.add_argument("--note", help="Note appended to the document's notes")

    p = sub.add_parser("delete", help="Delete a document and its items")
    p.add_argument("kind", choices=KINDS)
    p.add_argument("id")
    p.add_argument("--yes", action="store_true", help="Confirm the deletion")

    p = sub.add_parser("report", help="Print a P&L report")
    p.add_argument("report", choices=REPORTS)
    window = p.add_mutually_exclusive_group()
    window.add_argument("--range", choices=DATE_RANGE_PRESETS, default="last_30_days")
    window.add_argument("--from", dest="start", type=date.fromisoformat, help="Start date (YYYY-MM-DD)")
    p.add_argument("--to", dest="end", type=date.fromisoformat, help="End date (YYYY-MM-DD)")
    p.add_argument("--csv", help="Write the report as CSV to this file or directory")
    return parser


def print_preview(preview: ConversionPreview):
    source = preview.source
    customer = preview.customer.name if preview.customer else source.customer_id or "-"
    print(f"\n=== Convert {source.kind.label} {source.number} to {preview.target_kind.label} ===")
    print(f"Customer: {customer}")
    print(f"Date:     {preview.destination_date}")
    if preview.due_date:
        print(f"Due:      {preview.due_date}")
    if preview.valid_until:
        print(f"Valid:    {preview.valid_until}")
    print(f"Status:   {preview.destination_status}")
    print(f"\nItems ({len(preview.items)}):")
    for item in preview.items:
        print(f"  {item.quantity:g} x {item.description or item.product_id or '-'} @ "
              f"{format_currency(item.unit_price)} = {format_currency(item.line_total)}")
    print(f"\nSubtotal: {format_currency(source.subtotal)}")
    print(f"Tax:      {format_currency(source.tax_amount)}")
    print(f"Total:    {format_currency(source.total_amount)}")
    print("\nThis conversion will:")
    for line in preview.conversion_impact:
        print(f"  - {line}")


def print_result(result: ConversionResult):
    dest = result.destination
    print(f"\n✓ Created {dest.kind.label} {dest.number} (id {dest.id})")
    print(f"  {result.source.kind.label} {result.source.number} marked converted")
    if result.stock_movement_ids:
        print(f"  Stock movements: {len(result.stock_movement_ids)}")
    for warning in result.warnings:
        print(f"⚠ {warning}")


def _report_window(args) -> tuple[date, date, str]:
    if args.start:
        end = args.end or date.today()
        return args.start, end, f"{args.start.isoformat()}_{end.isoformat()}"
    start, end = resolve_date_range(args.range)
    return start, end, args.range


def _csv_path(target: str, report: str, label: str) -> Path:
    path = Path(target)
    if path.is_dir() or target.endswith(("/", "\\")):
        return path / export_filename(report, label)
    return path


def run_report(app: BizDocs, args) -> int:
    start, end, label = _report_window(args)
    company_id = app.config.company_id
    print(f"\n=== {args.report.capitalize()} P&L {start} to {end} ===")

    if args.report == "trading":
        invoices = load_trading_invoices(app.store, company_id)
        m = calculate_trading_pl_metrics(invoices, start, end)
        print(f"Revenue:            {format_currency(m.revenue)}")
        print(f"Cost of goods sold: {format_currency(m.cogs)}")
        print(f"Gross profit:       {format_currency(m.gross_profit)} ({format_percentage(m.gross_margin_percentage)})")
        print(f"Invoices:           {m.invoice_count} ({m.unique_customers} customers)")
        print(f"Average order:      {format_currency(m.average_order_value)}")
        headers, rows = TRADING_HEADERS, trading_report_rows(invoices, start, end)
    elif args.report == "transport":
        trips = load_transport_trips(app.store, company_id)
        m = calculate_transport_pl_metrics(trips, start, end)
        print(f"Revenue:            {format_currency(m.revenue)}")
        print(f"Driver fees:        {format_currency(m.driver_fees)}")
        print(f"Other expenses:     {format_currency(m.other_expenses)}")
        print(f"Operating profit:   {format_currency(m.operating_profit)} ({format_percentage(m.operating_margin_percentage)})")
        print(f"Trips:              {m.trip_count} (profit per trip {format_currency(m.profit_per_trip)})")
        headers, rows = TRANSPORT_HEADERS, transport_report_rows(trips, start, end)
    else:
        invoices = load_trading_invoices(app.store, company_id)
        trips = load_transport_trips(app.store, company_id)
        m = calculate_consolidated_pl_metrics(invoices, trips, start, end)
        headers, rows = CONSOLIDATED_HEADERS, consolidated_report_rows(m)
        for category, amount, share in rows:
            if category:
                print(f"{category:<24}{amount:>16}  {share}")

    if args.csv:
        write_csv(_csv_path(args.csv, args.report, label), headers, rows)
    return 0


def run_command(app: BizDocs, args) -> int:
    if args.command == "test-connection":
        result = app.test_connection()
        if result["status"] == "connected":
            print(f"✓ Connected to API at {result['url']}")
            return 0
        print(f"✗ Cannot reach API at {result['url']}: {result.get('error', 'unknown error')}")
        return 1

    if args.command == "next-number":
        print(app.numbering.generate(args.type, app.config.company_id, args.date))
        return 0

    if args.command == "convert":
        stock = False if args.no_stock else None
        preview = app.conversions.load(
            args.source_kind, args.id, args.target_kind, create_stock_movements=stock
        )
        print_preview(preview)
        if not args.yes:
            print("\nPreview only. Re-run with --yes to convert.")
            return 0
        print_result(app.conversions.confirm(preview, create_stock_movements=stock))
        return 0

    if args.command == "set-status":
        doc = app.documents.update_status(args.kind, args.id, args.status, note=args.note)
        print(f"✓ {doc.kind.label} {doc.number} is now {doc.status}")
        return 0

    if args.command == "delete":
        app.documents.delete_document(args.kind, args.id, confirmed=args.yes)
        print(f"✓ Deleted {args.kind} {args.id}")
        return 0

    if args.command == "report":
        return run_report(app, args)

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "end", None) and not getattr(args, "start", None):
        parser.error("--to requires --from")

    config = BizDocsConfig.from_env()
    configure_logging(config, args.verbose, args.quiet)

    errors = config.validate()
    if errors:
        for err in errors:
            logger.error(f"Configuration error: {err}")
        return 1

    try:
        with BizDocs(config) as app:
            return run_command(app, args)
    except BizDocsError as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.exception(f"Command failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
