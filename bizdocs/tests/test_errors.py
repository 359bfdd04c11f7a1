"""
Tests for error classification and formatting.
"""
import pytest

from bizdocs.client import ApiConnectionError, ApiResponseError
from bizdocs.errors import (
    BizDocsError,
    ErrorInfo,
    ErrorKind,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    classify_error,
    format_error,
)

FRIENDLY_NETWORK = "The API server could not be reached. Check the API URL and your connection."


class TestClassifyError:
    """Every raw error shape maps to one ErrorKind."""

    def test_network(self):
        assert classify_error(ApiConnectionError("refused")).kind is ErrorKind.NETWORK

    def test_timeout(self):
        info = classify_error(ApiConnectionError("slow", timed_out=True))
        assert info.kind is ErrorKind.TIMEOUT

    @pytest.mark.parametrize(
        "code, kind",
        [
            ("23505", ErrorKind.DUPLICATE),
            ("1062", ErrorKind.DUPLICATE),
            ("23503", ErrorKind.FOREIGN_KEY),
            ("1451", ErrorKind.FOREIGN_KEY),
            ("42P01", ErrorKind.TABLE_MISSING),
        ],
    )
    def test_database_codes(self, code, kind):
        error = ApiResponseError("failed", status_code=500, payload={"code": code, "message": "failed"})
        info = classify_error(error)
        assert info.kind is kind
        assert info.code == code

    def test_numeric_errno(self):
        assert classify_error({"errno": 1062, "error": "x"}).kind is ErrorKind.DUPLICATE

    def test_status_codes(self):
        assert classify_error(ApiResponseError("no", status_code=401, payload={"error": "no"})).kind is ErrorKind.UNAUTHORIZED
        assert classify_error(ApiResponseError("no", status_code=403, payload={"error": "no"})).kind is ErrorKind.FORBIDDEN
        assert classify_error(ApiResponseError("gone", status_code=404, payload={"error": "gone"})).kind is ErrorKind.NOT_FOUND
        assert classify_error(ApiResponseError("bad", status_code=422, payload={"error": "bad"})).kind is ErrorKind.VALIDATION

    def test_auth_status_wins_over_message(self):
        error = ApiResponseError("Duplicate entry", status_code=401, payload={"error": "Duplicate entry"})
        assert classify_error(error).kind is ErrorKind.UNAUTHORIZED

    def test_message_text(self):
        assert classify_error("Duplicate entry 'INV-1' for key 'number'").kind is ErrorKind.DUPLICATE
        assert classify_error("Table 'db.quotations' doesn't exist").kind is ErrorKind.TABLE_MISSING
        assert classify_error("relation violates foreign key constraint").kind is ErrorKind.FOREIGN_KEY

    def test_invalid_json(self):
        ok_status = ApiResponseError("html", status_code=200, payload="<html>", invalid_json=True)
        assert classify_error(ok_status).kind is ErrorKind.INVALID_RESPONSE
        server = ApiResponseError("html", status_code=500, payload="<html>", invalid_json=True)
        assert classify_error(server).kind is ErrorKind.SERVER

    def test_hint_and_details(self):
        info = classify_error(
            {"message": "insert failed", "details": "Key (number)=(1)", "hint": "Use another number"}
        )
        assert info.details == "Key (number)=(1)"
        assert info.hint == "Use another number"

    def test_mapping_without_message_is_dumped(self):
        info = classify_error({"unexpected": True})
        assert info.kind is ErrorKind.UNKNOWN
        assert info.message == '{"unexpected": true}'

    def test_value_error_is_validation(self):
        assert classify_error(ValueError("bad date")).kind is ErrorKind.VALIDATION

    def test_bizdocs_error_keeps_info(self):
        info = ErrorInfo(kind=ErrorKind.DUPLICATE, message="dup")
        assert classify_error(BizDocsError("dup", info=info)) is info

    def test_other_values(self):
        assert classify_error(42).kind is ErrorKind.UNKNOWN
        assert classify_error(RuntimeError()).message == "RuntimeError"


class TestFormatError:
    def test_friendly_message(self):
        info = ErrorInfo(kind=ErrorKind.NETWORK, message="Connection refused")
        assert format_error(info) == FRIENDLY_NETWORK

    def test_operation_prefix(self):
        info = ErrorInfo(kind=ErrorKind.DUPLICATE, message="Duplicate entry")
        assert format_error(info, "create invoice") == (
            "Could not create invoice: A record with the same unique value already exists."
        )

    def test_validation_passes_message_through(self):
        info = ErrorInfo(kind=ErrorKind.VALIDATION, message="customer_id is required")
        assert format_error(info) == "customer_id is required"

    def test_hint_appended(self):
        info = ErrorInfo(kind=ErrorKind.TABLE_MISSING, message="x", hint="run setup")
        assert format_error(info).endswith("(run setup)")

    def test_raw_errors_are_classified(self):
        assert format_error(ApiConnectionError("x", timed_out=True)).startswith("The API server took too long")


class TestExceptions:
    def test_default_kinds(self):
        assert NotFoundError("missing").kind is ErrorKind.NOT_FOUND
        assert ValidationError("bad").kind is ErrorKind.VALIDATION
        assert InvalidTransitionError("no").kind is ErrorKind.VALIDATION

    def test_message_falls_back_to_info(self):
        error = BizDocsError(info=ErrorInfo(kind=ErrorKind.SERVER, message="boom"))
        assert str(error) == "boom"

