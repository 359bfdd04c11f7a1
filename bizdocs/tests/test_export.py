"""
Tests for CSV export and the report data loaders.
"""
import csv
import io
from datetime import date

from bizdocs.models import TradingInvoice, TransportTrip
from bizdocs.reports.consolidated import calculate_consolidated_pl_metrics
from bizdocs.reports.export import (
    TRADING_HEADERS,
    TRANSPORT_HEADERS,
    consolidated_report_rows,
    export_filename,
    to_csv,
    trading_report_rows,
    transport_report_rows,
    write_csv,
)
from bizdocs.reports.source import TRANSPORT_TABLE, load_trading_invoices, load_transport_trips


class TestToCsv:
    def test_quotes_and_commas_round_trip(self):
        text = to_csv(["Customer", "Total"], [['Doe, "Big" Corp', "Ksh 1,000"]])
        assert text == '"Customer","Total"\n"Doe, ""Big"" Corp","Ksh 1,000"'
        assert list(csv.reader(io.StringIO(text))) == [["Customer", "Total"], ['Doe, "Big" Corp', "Ksh 1,000"]]

    def test_no_trailing_newline(self):
        assert not to_csv(["a"], [["1"], ["2"]]).endswith("\n")

    def test_none_is_empty(self):
        assert to_csv(["a", "b"], [[None, 0]]) == '"a","b"\n"","0"'

    def test_headers_only(self):
        assert to_csv(["a"], []) == '"a"'


def test_write_csv(tmp_path):
    path = write_csv(tmp_path / "out" / "report.csv", ["a"], [["é"]])
    assert path.read_text(encoding="utf-8") == '"a"\n"é"'


def test_export_filename():
    assert export_filename("trading", "last_30_days", date(2025, 1, 31)) == (
        "trading-pl-report-last_30_days-2025-01-31.csv"
    )


class TestReportRows:
    def test_trading_rows(self):
        invoices = [
            TradingInvoice(
                invoice_number="INV-1",
                invoice_date="2025-01-05",
                customer_id="k1",
                customer_name='Doe, "Big" Corp',
                status="sent",
                total_amount="1234.5",
            ),
            TradingInvoice(invoice_number="INV-2", invoice_date="2025-03-01", total_amount=1),
        ]
        rows = trading_report_rows(invoices, date(2025, 1, 1), date(2025, 1, 31))
        assert rows == [["INV-1", "2025-01-05", 'Doe, "Big" Corp', "sent", "Ksh 1,235"]]
        assert len(TRADING_HEADERS) == len(rows[0])
        assert '"Doe, ""Big"" Corp"' in to_csv(TRADING_HEADERS, rows)

    def test_trading_customer_fallback(self):
        rows = trading_report_rows([TradingInvoice(customer_id="k9")])
        assert rows[0][2] == "k9"

    def test_transport_rows(self):
        trip = TransportTrip(
            date="2025-01-02",
            vehicle_id="KBX 100A",
            materials="Sand",
            buying_price=1000,
            fuel_cost=300,
            driver_fees=200,
            other_expenses=100,
            selling_price=2500,
            payment_status="paid",
            customer_name="Acme",
        )
        rows = transport_report_rows([trip])
        assert rows == [
            [
                "2025-01-02",
                "KBX 100A",
                "Sand",
                "Ksh 1,000",
                "Ksh 300",
                "Ksh 200",
                "Ksh 100",
                "Ksh 2,500",
                "Ksh 900",
                "paid",
                "Acme",
            ]
        ]
        assert len(TRANSPORT_HEADERS) == len(rows[0])

    def test_transport_placeholders(self):
        row = transport_report_rows([TransportTrip()])[0]
        assert row[1] == "Unknown"
        assert row[2] == "-"
        assert row[-1] == "-"

    def test_consolidated_rows(self):
        invoices = [TradingInvoice(invoice_date="2025-01-05", total_amount=1000)]
        trips = [TransportTrip(date="2025-01-06", selling_price=1000, driver_fees=100, other_expenses=100)]
        metrics = calculate_consolidated_pl_metrics(invoices, trips, "2025-01-01", "2025-01-31")
        rows = consolidated_report_rows(metrics)
        categories = [r[0] for r in rows]
        assert categories[0] == "TRADING OPERATIONS"
        assert "TRANSPORT OPERATIONS" in categories
        assert rows[-1] == ["Net Operating Profit", "Ksh 800", "40.00%"]
        assert ["Transport Expenses", "Ksh 200", "10.00%"] in rows

    def test_consolidated_rows_zero_revenue(self):
        metrics = calculate_consolidated_pl_metrics([], None, "2025-01-01", "2025-01-31")
        rows = consolidated_report_rows(metrics)
        assert "TRANSPORT OPERATIONS" not in [r[0] for r in rows]
        assert ["Total COGS", "Ksh 0", "0.00%"] in rows


class TestSource:
    def test_load_trading_invoices(self, store, api):
        api.seed("customers", id="k1", name="Doe Traders", company_id="c1")
        api.seed("products", id="p1", name="Cement", cost_price="60.00", company_id="c1")
        api.seed("invoices", id="i1", invoice_number="INV-1", invoice_date="2025-01-05",
                 customer_id="k1", company_id="c1", total_amount="200.00", status="sent")
        api.seed("invoices", id="i2", invoice_number="INV-2", company_id="c2", total_amount="5")
        api.seed("invoice_items", invoice_id="i1", product_id="p1", quantity="2", unit_price="100", line_total="200")
        api.seed("invoice_items", invoice_id="i1", product_id="p404", quantity="1", unit_price="0")
        api.seed("invoice_items", invoice_id="i2", product_id="p1", quantity="9", unit_price="1")

        invoices = load_trading_invoices(store, "c1")
        assert [inv.invoice_number for inv in invoices] == ["INV-1"]
        inv = invoices[0]
        assert inv.customer_name == "Doe Traders"
        assert inv.total_amount == 200
        assert [(i.product_name, i.quantity, i.cost_price) for i in inv.items] == [
            ("Cement", 2, 60),
            ("Unknown Product", 1, 0),
        ]

    def test_customer_failure_is_not_fatal(self, store, api):
        api.seed("invoices", id="i1", invoice_number="INV-1", customer_id="k1", company_id="c1")
        api.fail("read", "customers")
        invoices = load_trading_invoices(store, "c1")
        assert invoices[0].customer_name is None

    def test_no_invoices(self, store, api):
        assert load_trading_invoices(store, "c1") == []
        assert api.count("read", "products") == 0

    def test_load_transport_trips(self, store, api):
        api.seed(TRANSPORT_TABLE, date="2025-01-02", selling_price="2500.00", vehicle_id=7, company_id="c1")
        trips = load_transport_trips(store, "c1")
        assert trips[0].selling_price == 2500
        assert trips[0].vehicle_id == "7"
