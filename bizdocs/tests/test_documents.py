"""
Tests for DocumentService against the in-memory API.
"""
import pytest
from datetime import date, datetime

from bizdocs.documents import DocumentService, priced_items, status_note
from bizdocs.errors import InvalidTransitionError, NotFoundError, NumberingError, StoreError, ValidationError
from bizdocs.models import DocumentItem, DocumentKind
from bizdocs.status import StatusMachine


@pytest.fixture
def service(store, numbering, config):
    return DocumentService(store, numbering, config)


ITEMS = [
    {"product_id": "p1", "description": "Cement 50kg", "quantity": 2, "unit_price": 100, "tax_percentage": 16},
    {"product_id": "p2", "description": "Delivery", "quantity": "1", "unit_price": "50.00"},
]


class TestPricedItems:
    def test_recomputes_totals(self):
        items = priced_items([{"quantity": 2, "unit_price": 100, "tax_percentage": 16, "line_total": 1}])
        assert items[0].line_total == pytest.approx(232)
        assert items[0].tax_amount == pytest.approx(32)
        assert items[0].sort_order == 1

    def test_keeps_existing_sort_order(self):
        items = priced_items([DocumentItem(quantity=1, unit_price=1, sort_order=5), DocumentItem()])
        assert [i.sort_order for i in items] == [5, 2]


def test_status_note():
    now = datetime(2025, 1, 10, 9, 0, 0)
    assert status_note(None, "sent", "Emailed", now) == "[2025-01-10 09:00:00] Status changed to sent: Emailed"
    assert status_note("Old", "sent", "x", now).startswith("Old\n[2025-01-10")


class TestCreateDocument:
    def test_creates_document_and_items(self, service, api):
        doc = service.create_document(
            DocumentKind.QUOTATION, "c1", "k1", ITEMS, on_date=date(2025, 1, 10), created_by="u1"
        )
        assert doc.number == "QT-10012025-1"
        assert doc.status == "draft"
        assert doc.subtotal == pytest.approx(250)
        assert doc.tax_amount == pytest.approx(32)
        assert doc.total_amount == pytest.approx(282)
        assert doc.valid_until == date(2025, 2, 9)

        row = api.tables["quotations"][doc.id]
        assert row["quotation_date"] == "2025-01-10"
        assert row["created_by"] == "u1"
        items = api.rows("quotation_items")
        assert [(i["quotation_id"], i["sort_order"]) for i in items] == [(doc.id, 1), (doc.id, 2)]
        assert items[0]["line_total"] == pytest.approx(232)

    def test_invoice_gets_due_date(self, service, api):
        doc = service.create_document(DocumentKind.INVOICE, "c1", "k1", ITEMS, on_date=date(2025, 1, 10))
        assert doc.due_date == date(2025, 2, 9)
        assert api.tables["invoices"][doc.id]["due_date"] == "2025-02-09"

    def test_proforma_has_no_created_by(self, service, api):
        doc = service.create_document(DocumentKind.PROFORMA, "c1", "k1", ITEMS, created_by="u1")
        assert "created_by" not in api.tables["proforma_invoices"][doc.id]

    def test_numbering_failure_writes_nothing(self, service, api):
        api.fail("get_next_document_number")
        with pytest.raises(NumberingError):
            service.create_document(DocumentKind.INVOICE, "c1", "k1", ITEMS)
        assert api.rows("invoices") == []

    def test_item_failure_removes_document(self, service, api):
        api.fail("create", "invoice_items", after=1)
        with pytest.raises(StoreError, match="Could not add items to invoice"):
            service.create_document(DocumentKind.INVOICE, "c1", "k1", ITEMS)
        assert api.rows("invoices") == []
        assert api.rows("invoice_items") == []

    def test_cleanup_failure_names_leftovers(self, service, api):
        api.fail("create", "invoice_items")
        api.fail("delete", "invoices")
        with pytest.raises(StoreError, match="Cleanup incomplete, remove manually: invoices/") as exc:
            service.create_document(DocumentKind.INVOICE, "c1", "k1", ITEMS)
        doc_id = api.rows("invoices")[0]["id"]
        assert f"invoices/{doc_id}" in str(exc.value)
        assert "Could not add items to invoice" in str(exc.value)

    def test_leftover_items_are_named(self, service, api):
        api.fail("create", "invoice_items", after=1)
        api.fail("delete", "invoice_items")
        api.fail("delete", "invoices")
        with pytest.raises(StoreError) as exc:
            service.create_document(DocumentKind.INVOICE, "c1", "k1", ITEMS)
        item_id = api.rows("invoice_items")[0]["id"]
        assert f"invoice_items/{item_id}" in str(exc.value)

    def test_read_back_failure_removes_document(self, service, api):
        api.fail("read", "invoices")
        with pytest.raises(StoreError):
            service.create_document(DocumentKind.INVOICE, "c1", "k1", ITEMS)
        assert api.rows("invoices") == []
        assert api.count("create", "invoice_items") == 0

    @pytest.mark.parametrize("status", ["sent", "accepted"])
    def test_initial_status(self, service, api, status):
        doc = service.create_document(DocumentKind.QUOTATION, "c1", "k1", ITEMS, status=status)
        assert api.tables["quotations"][doc.id]["status"] == status

    def test_converted_status_is_refused(self, service, api):
        with pytest.raises(InvalidTransitionError, match="only by converting"):
            service.create_document(DocumentKind.QUOTATION, "c1", "k1", ITEMS, status="converted")
        assert api.rows("quotations") == []
        assert api.count("get_next_document_number") == 0

    @pytest.mark.parametrize(
        "kind, status",
        [(DocumentKind.QUOTATION, "bogus"), (DocumentKind.INVOICE, "accepted"), (DocumentKind.PROFORMA, "rejected")],
    )
    def test_status_must_apply_to_kind(self, service, api, kind, status):
        with pytest.raises(ValidationError):
            service.create_document(kind, "c1", "k1", ITEMS, status=status)
        assert api.count("get_next_document_number") == 0


class TestGetDocument:
    def test_with_items_and_customer(self, service, quotation):
        doc = service.get_document(DocumentKind.QUOTATION, quotation, with_customer=True)
        assert [i.quantity for i in doc.items] == [2, 1]
        assert doc.customer.name == "Doe Traders"

    def test_customer_failure_is_not_fatal(self, service, api, quotation):
        api.fail("read", "customers")
        doc = service.get_document(DocumentKind.QUOTATION, quotation, with_customer=True)
        assert doc.customer is None

    def test_missing(self, service):
        with pytest.raises(NotFoundError):
            service.get_document("invoice", "nope")

    def test_list(self, service, quotation):
        assert [d.number for d in service.list_documents("quotation", "c1")] == ["Q-2025-0010"]


class TestUpdateStatus:
    def test_allowed_transition_with_note(self, service, api, quotation):
        api.tables["quotations"][quotation]["status"] = "sent"
        doc = service.update_status(
            DocumentKind.QUOTATION, quotation, "rejected", note="Too expensive", now=datetime(2025, 1, 12, 8, 30)
        )
        assert doc.status == "rejected"
        assert doc.notes == "[2025-01-12 08:30:00] Status changed to rejected: Too expensive"

    def test_forbidden_transition(self, service, api, quotation):
        with pytest.raises(InvalidTransitionError):
            service.update_status(DocumentKind.QUOTATION, quotation, "sent")
        assert api.tables["quotations"][quotation]["status"] == "accepted"

    def test_converted_only_through_conversion(self, service, quotation):
        with pytest.raises(InvalidTransitionError, match="only by converting"):
            service.update_status(DocumentKind.QUOTATION, quotation, "converted")

    def test_converted_never_goes_back(self, service, api, quotation):
        api.tables["quotations"][quotation]["status"] = "converted"
        for status in ("draft", "sent", "accepted"):
            with pytest.raises(InvalidTransitionError):
                service.update_status(DocumentKind.QUOTATION, quotation, status)

    def test_unknown_status(self, service, quotation):
        with pytest.raises(ValidationError):
            service.update_status(DocumentKind.QUOTATION, quotation, "paid")


class TestDeleteDocument:
    def test_requires_confirmation(self, service, api, quotation):
        with pytest.raises(ValidationError, match="must be confirmed"):
            service.delete_document(DocumentKind.QUOTATION, quotation)
        assert quotation in api.tables["quotations"]

    def test_deletes_items_then_document(self, service, api, quotation):
        service.delete_document(DocumentKind.QUOTATION, quotation, confirmed=True)
        assert api.rows("quotations") == []
        assert api.rows("quotation_items") == []

    def test_item_failure_still_deletes_document(self, service, api, quotation):
        api.fail("read", "quotation_items")
        service.delete_document(DocumentKind.QUOTATION, quotation, confirmed=True)
        assert api.rows("quotations") == []
        assert len(api.rows("quotation_items")) == 2

    def test_converted_document_can_be_deleted(self, service, api, quotation):
        api.tables["quotations"][quotation]["status"] = "converted"
        assert "delete" in StatusMachine.for_kind(DocumentKind.QUOTATION).available_actions("converted")
        service.delete_document(DocumentKind.QUOTATION, quotation, confirmed=True)
        assert api.rows("quotations") == []

    def test_document_failure_raises(self, service, api, quotation):
        api.fail("delete", "quotations")
        with pytest.raises(StoreError):
            service.delete_document(DocumentKind.QUOTATION, quotation, confirmed=True)
