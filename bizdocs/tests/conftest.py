"""
Shared fixtures: an in-memory stand-in for the ``?action=`` API.

FakeApi answers the same ``call`` signature as ApiClient, keeps tables as
dicts and can be told to fail a given action on a given table.
"""
from collections import defaultdict
from datetime import date

import pytest

from bizdocs.client import ApiConnectionError, ApiResponse, ApiResponseError
from bizdocs.config import BizDocsConfig
from bizdocs.numbering import DocumentNumberingService
from bizdocs.store import DataStore


class FakeApi:
    """In-memory API: read, create, update, delete and the number allocator."""

    def __init__(self, config=None):
        self.config = config
        self.tables = defaultdict(dict)
        self.counters = defaultdict(int)
        self.calls = []
        self._next_id = 100
        self._failures = {}

    # Test helpers

    def seed(self, table, **row):
        if "id" not in row:
            self._next_id += 1
            row["id"] = str(self._next_id)
        self.tables[table][str(row["id"])] = dict(row)
        return str(row["id"])

    def rows(self, table):
        return list(self.tables[table].values())

    def fail(self, action, table=None, error=None, after=0, times=None):
        """
        Make ``action`` on ``table`` raise ``error`` once ``after`` calls
        have succeeded, ``times`` times in a row (forever when None).
        """
        if error is None:
            error = ApiResponseError("Internal server error", status_code=500, payload={"error": "boom"})
        self._failures[(action, table)] = [after, error, times]

    def count(self, action, table=None):
        return sum(1 for a, t in self.calls if a == action and t == table)

    # ApiClient interface

    def call(self, action, table=None, data=None, where=None, method="POST", timeout=None):
        self.calls.append((action, table))
        failure = self._failures.get((action, table))
        if failure is not None:
            if failure[0] <= 0:
                if failure[2] is not None:
                    failure[2] -= 1
                    if failure[2] <= 0:
                        del self._failures[(action, table)]
                raise failure[1]
            failure[0] -= 1

        if action == "read":
            filter = data or {}
            rows = [
                dict(r)
                for r in self.tables[table].values()
                if all(str(r.get(k)) == str(v) for k, v in filter.items())
            ]
            return ApiResponse(status_code=200, payload={"data": rows}, data=rows)

        if action == "create":
            self._next_id += 1
            record_id = str(self._next_id)
            row = {**data, "id": record_id}
            self.tables[table][record_id] = row
            return ApiResponse(
                status_code=201,
                payload={"success": True, "id": record_id},
                data={"success": True, "id": record_id},
                id=record_id,
            )

        if action in ("update", "delete"):
            record_id = str(where["id"])
            if record_id not in self.tables[table]:
                raise ApiResponseError("Record not found", status_code=404, payload={"error": "Record not found"})
            if action == "update":
                self.tables[table][record_id].update(data)
            else:
                del self.tables[table][record_id]
            return ApiResponse(status_code=200, payload={"success": True}, data={"success": True})

        if action == "get_next_document_number":
            code = data["type"]
            self.counters[code] += 1
            day = date.fromisoformat(data["date"]) if data.get("date") else date.today()
            number = f"{code}-{day.strftime('%d%m%Y')}-{self.counters[code]}"
            return ApiResponse(
                status_code=200,
                payload={"success": True, "number": number},
                data={"success": True, "number": number},
            )

        if action == "health":
            return ApiResponse(status_code=200, payload={"status": "ok"}, data={"status": "ok"})

        raise ApiConnectionError(f"Unhandled action {action}")

    def close(self):
        pass


@pytest.fixture
def config(tmp_path):
    return BizDocsConfig(
        api_url="http://api.test/api.php",
        company_id="c1",
        api_token=None,
        session_file=str(tmp_path / "session.json"),
        request_timeout=5,
        due_days=30,
        validity_days=30,
        numbering_fallback=False,
        create_stock_movements=True,
        log_level="DEBUG",
        log_file=None,
    )


@pytest.fixture
def api(config):
    return FakeApi(config)


@pytest.fixture
def store(api):
    return DataStore(api)


@pytest.fixture
def numbering(api, config):
    return DocumentNumberingService(api, config)


@pytest.fixture
def quotation(api):
    """Quotation Q-2025-0010: 2 x 100 and 1 x 50, no tax, accepted."""
    api.seed("customers", id="k1", name="Doe Traders", email="doe@example.com", company_id="c1")
    quote_id = api.seed(
        "quotations",
        id="q10",
        quotation_number="Q-2025-0010",
        quotation_date="2025-01-10",
        valid_until="2025-02-09",
        customer_id="k1",
        company_id="c1",
        status="accepted",
        subtotal="250.00",
        tax_amount="0.00",
        total_amount="250.00",
        terms_and_conditions="Payment within 30 days",
    )
    api.seed(
        "quotation_items",
        quotation_id=quote_id,
        product_id="p1",
        description="Cement 50kg",
        quantity="2",
        unit_price="100.00",
        tax_percentage="0",
        line_total="200.00",
        sort_order=1,
    )
    api.seed(
        "quotation_items",
        quotation_id=quote_id,
        product_id="p2",
        description="Delivery",
        quantity="1",
        unit_price="50.00",
        tax_percentage="0",
        line_total="50.00",
        sort_order=2,
    )
    return quote_id


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires a live API)"
    )
