"""
Integration tests against a live API.

Note: These tests need BIZDOCS_API_URL (and a token) pointing at a running
backend. They are deselected by default; run with ``pytest -m integration``.
"""
import pytest

from bizdocs import BizDocs
from bizdocs.models import DocumentKind
from bizdocs.reports import load_trading_invoices, load_transport_trips


@pytest.fixture
def app():
    with BizDocs() as app:
        yield app


class TestLiveApi:
    """Integration tests (require a running API)."""

    @pytest.mark.integration
    def test_connection(self, app):
        result = app.test_connection()
        assert result["status"] == "connected"

    @pytest.mark.integration
    def test_list_quotations(self, app):
        quotes = app.documents.list_documents(DocumentKind.QUOTATION, app.config.company_id)
        assert isinstance(quotes, list)

    @pytest.mark.integration
    def test_load_report_records(self, app):
        invoices = load_trading_invoices(app.store, app.config.company_id)
        trips = load_transport_trips(app.store, app.config.company_id)
        assert all(inv.total_amount >= 0 for inv in invoices)
        assert isinstance(trips, list)
