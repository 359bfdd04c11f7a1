"""
Error taxonomy shared by every bizdocs component.

Backend failures arrive in many shapes: transport exceptions, HTTP status
codes, PostgreSQL/MySQL constraint codes inside JSON bodies, or bare
strings. ``classify_error`` turns any of them into one ``ErrorInfo`` and
``format_error`` renders it for a person.
"""
from __future__ import annotations
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .client import ApiConnectionError, ApiResponseError


class ErrorKind(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    TABLE_MISSING = "table_missing"
    DUPLICATE = "duplicate"
    FOREIGN_KEY = "foreign_key"
    INVALID_RESPONSE = "invalid_response"
    VALIDATION = "validation"
    SERVER = "server"
    UNKNOWN = "unknown"


FRIENDLY_MESSAGES = {
    ErrorKind.NETWORK: "The API server could not be reached. Check the API URL and your connection.",
    ErrorKind.TIMEOUT: "The API server took too long to respond. Please try again.",
    ErrorKind.UNAUTHORIZED: "Your session is not valid. Please log in again.",
    ErrorKind.FORBIDDEN: "You do not have permission to perform this action.",
    ErrorKind.NOT_FOUND: "The requested record was not found.",
    ErrorKind.TABLE_MISSING: "A required database table does not exist. Run the database setup.",
    ErrorKind.DUPLICATE: "A record with the same unique value already exists.",
    ErrorKind.FOREIGN_KEY: "The record references, or is referenced by, another record.",
    ErrorKind.INVALID_RESPONSE: "The API server returned an invalid response.",
    ErrorKind.VALIDATION: "The data provided is not valid.",
    ErrorKind.SERVER: "The API server reported an internal error.",
    ErrorKind.UNKNOWN: "An unexpected error occurred.",
}

# Kinds whose backend message is more useful than the generic text
_PASS_THROUGH = {ErrorKind.VALIDATION, ErrorKind.UNKNOWN, ErrorKind.SERVER, ErrorKind.NOT_FOUND}

_DUPLICATE_CODES = {"23505", "1062"}
_FOREIGN_KEY_CODES = {"23503", "1451", "1452"}
_TABLE_MISSING_CODES = {"42P01", "1146"}


@dataclass(frozen=True)
class ErrorInfo:
    kind: ErrorKind
    message: str
    code: Optional[str] = None
    status_code: Optional[int] = None
    details: Optional[str] = None
    hint: Optional[str] = None


class BizDocsError(Exception):
    """Base class for errors raised by bizdocs services."""

    default_kind = ErrorKind.UNKNOWN

    def __init__(self, message: str | None = None, info: ErrorInfo | None = None):
        if info is None:
            info = ErrorInfo(kind=self.default_kind, message=message or "")
        self.info = info
        super().__init__(message or info.message)

    @property
    def kind(self) -> ErrorKind:
        return self.info.kind


class StoreError(BizDocsError):
    """A data-store primitive failed."""


class NotFoundError(StoreError):
    default_kind = ErrorKind.NOT_FOUND


class NumberingError(BizDocsError):
    """The document number allocator failed or refused the request."""


class ValidationError(BizDocsError):
    default_kind = ErrorKind.VALIDATION


class InvalidTransitionError(ValidationError):
    """A status change is not allowed from the document's current status."""


class ConversionError(BizDocsError):
    """
    A conversion failed after it started writing.

    ``compensated`` tells whether every row the conversion created was
    removed again; ``leftovers`` lists ``table/id`` entries that were not.
    """

    def __init__(
        self,
        message: str | None = None,
        info: ErrorInfo | None = None,
        step: str | None = None,
        compensated: bool = False,
        leftovers: list[str] | None = None,
    ):
        super().__init__(message, info)
        self.step = step
        self.compensated = compensated
        self.leftovers = leftovers or []


def _kind_from_code(code: str | None) -> Optional[ErrorKind]:
    if not code:
        return None
    if code in _DUPLICATE_CODES:
        return ErrorKind.DUPLICATE
    if code in _FOREIGN_KEY_CODES:
        return ErrorKind.FOREIGN_KEY
    if code in _TABLE_MISSING_CODES:
        return ErrorKind.TABLE_MISSING
    return None


def _kind_from_text(text: str) -> Optional[ErrorKind]:
    lowered = text.lower()
    if "duplicate entry" in lowered or "duplicate key" in lowered or "unique constraint" in lowered:
        return ErrorKind.DUPLICATE
    if "foreign key" in lowered:
        return ErrorKind.FOREIGN_KEY
    if "table" in lowered and ("does not exist" in lowered or "doesn't exist" in lowered):
        return ErrorKind.TABLE_MISSING
    if "timeout" in lowered or "timed out" in lowered:
        return ErrorKind.TIMEOUT
    if "permission denied" in lowered or "forbidden" in lowered:
        return ErrorKind.FORBIDDEN
    if "unauthorized" in lowered or "not authenticated" in lowered:
        return ErrorKind.UNAUTHORIZED
    return None


def _kind_from_status(status_code: int | None) -> Optional[ErrorKind]:
    if status_code is None:
        return None
    if status_code == 401:
        return ErrorKind.UNAUTHORIZED
    if status_code == 403:
        return ErrorKind.FORBIDDEN
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in (400, 422):
        return ErrorKind.VALIDATION
    if status_code >= 500:
        return ErrorKind.SERVER
    return None


def _from_mapping(payload: dict, status_code: int | None = None) -> ErrorInfo:
    code = payload.get("code") or payload.get("errno")
    code = str(code) if code is not None else None
    message = ""
    for key in ("message", "error", "details"):
        value = payload.get(key)
        if value:
            message = value if isinstance(value, str) else json.dumps(value, default=str)
            break
    if not message:
        message = json.dumps(payload, default=str)
    details = payload.get("details")
    hint = payload.get("hint")
    kind = (
        _kind_from_code(code)
        or _kind_from_text(message)
        or _kind_from_status(status_code)
        or ErrorKind.UNKNOWN
    )
    return ErrorInfo(
        kind=kind,
        message=message,
        code=code,
        status_code=status_code,
        details=str(details) if details else None,
        hint=str(hint) if hint else None,
    )


def classify_error(raw: Any) -> ErrorInfo:
    """Classify any error shape into an ErrorInfo."""
    if isinstance(raw, ErrorInfo):
        return raw
    if isinstance(raw, BizDocsError):
        return raw.info
    if isinstance(raw, ApiConnectionError):
        kind = ErrorKind.TIMEOUT if raw.timed_out else ErrorKind.NETWORK
        return ErrorInfo(kind=kind, message=str(raw))
    if isinstance(raw, ApiResponseError):
        if raw.invalid_json:
            kind = _kind_from_status(raw.status_code)
            if kind is None or kind is ErrorKind.VALIDATION:
                kind = ErrorKind.INVALID_RESPONSE
            return ErrorInfo(kind=kind, message=str(raw), status_code=raw.status_code)
        if isinstance(raw.payload, dict):
            info = _from_mapping(raw.payload, raw.status_code)
            # Status codes name auth failures more reliably than message text
            status_kind = _kind_from_status(raw.status_code)
            if status_kind in (ErrorKind.UNAUTHORIZED, ErrorKind.FORBIDDEN):
                info = ErrorInfo(
                    kind=status_kind,
                    message=info.message,
                    code=info.code,
                    status_code=info.status_code,
                    details=info.details,
                    hint=info.hint,
                )
            return info
        kind = (
            _kind_from_text(str(raw))
            or _kind_from_status(raw.status_code)
            or ErrorKind.UNKNOWN
        )
        return ErrorInfo(kind=kind, message=str(raw), status_code=raw.status_code)
    if isinstance(raw, dict):
        return _from_mapping(raw)
    if isinstance(raw, str):
        return ErrorInfo(kind=_kind_from_text(raw) or ErrorKind.UNKNOWN, message=raw)
    if isinstance(raw, ValueError):
        return ErrorInfo(kind=ErrorKind.VALIDATION, message=str(raw))
    if isinstance(raw, BaseException):
        message = str(raw) or raw.__class__.__name__
        return ErrorInfo(kind=_kind_from_text(message) or ErrorKind.UNKNOWN, message=message)
    return ErrorInfo(kind=ErrorKind.UNKNOWN, message=json.dumps(raw, default=str))


def format_error(info: ErrorInfo | Any, operation: str | None = None) -> str:
    """
    Render an error for display.

    >>> format_error(ErrorInfo(ErrorKind.DUPLICATE, "Duplicate entry"), "create invoice")
    'Could not create invoice: A record with the same unique value already exists.'
    """
    if not isinstance(info, ErrorInfo):
        info = classify_error(info)
    if info.kind in _PASS_THROUGH and info.message:
        text = info.message
    else:
        text = FRIENDLY_MESSAGES[info.kind]
    if info.hint:
        text = f"{text} ({info.hint})"
    if operation:
        return f"Could not {operation}: {text}"
    return text
