"""
Document number allocation.

Numbers come from the backend's ``get_next_document_number`` action, which
keeps one counter per type and day: ``INV-09022026-1``, ``PRO-09022026-2``.
Every call consumes a number, so callers ask exactly once per document.
"""
from __future__ import annotations
import random
import string
from datetime import date
from typing import Optional, Union
from loguru import logger

from .client import ApiClient, ApiConnectionError, ApiResponseError
from .config import BizDocsConfig
from .errors import ErrorInfo, ErrorKind, NumberingError, classify_error, format_error
from .models import DocumentKind

NUMBERING_ACTION = "get_next_document_number"

DOCUMENT_TYPE_MAP = {
    "receipt": "REC",
    "invoice": "INV",
    "payment": "PAY",
    "proforma": "PRO",
    "quotation": "QT",
    "delivery_note": "DN",
    "credit_note": "CN",
    "po": "PO",
    "lpo": "LPO",
}

_FALLBACK_ALPHABET = string.ascii_uppercase + string.digits


def type_code(doc_type: Union[str, DocumentKind]) -> str:
    """
    Map a document type name to its numbering prefix.

    Raises:
        NumberingError: For an unknown type (validation kind)
    """
    name = doc_type.meta.numbering_type if isinstance(doc_type, DocumentKind) else str(doc_type)
    code = DOCUMENT_TYPE_MAP.get(name.strip().lower())
    if code is None:
        info = ErrorInfo(
            kind=ErrorKind.VALIDATION,
            message=f"Unknown document type: {doc_type}. Valid: {', '.join(DOCUMENT_TYPE_MAP)}",
        )
        raise NumberingError(info.message, info=info)
    return code


def fallback_number(code: str, on_date: Optional[date] = None) -> str:
    """Build a local ``CODE-DDMMYYYY-XXXX`` number with a random suffix."""
    on_date = on_date or date.today()
    suffix = "".join(random.choice(_FALLBACK_ALPHABET) for _ in range(4))
    return f"{code}-{on_date.strftime('%d%m%Y')}-{suffix}"


class DocumentNumberingService:
    """Allocates document numbers from the backend counter."""

    def __init__(self, client: ApiClient, config: Optional[BizDocsConfig] = None):
        self.client = client
        self.config = config or client.config

    def generate(
        self,
        doc_type: Union[str, DocumentKind],
        company_id: Optional[str] = None,
        on_date: Optional[date] = None,
    ) -> str:
        """
        Allocate the next number for a document type.

        Args:
            doc_type: A DocumentKind or a type name such as ``"invoice"``
            company_id: Company the counter belongs to
            on_date: Document date (the backend uses today if omitted)

        Returns:
            The allocated number, e.g. ``INV-09022026-1``

        Raises:
            NumberingError: If the type is unknown, or the allocator fails
                and the local fallback is disabled
        """
        code = type_code(doc_type)
        body = {"type": code}
        if company_id:
            body["company_id"] = company_id
        if on_date:
            body["date"] = on_date.isoformat()

        logger.debug(f"Requesting next {code} number")
        try:
            response = self.client.call(NUMBERING_ACTION, data=body)
            payload = response.payload if isinstance(response.payload, dict) else {}
            number = payload.get("number")
            if not number and isinstance(response.data, dict):
                number = response.data.get("number")
            if not number:
                raise ApiResponseError(
                    "Numbering response did not include a number",
                    status_code=response.status_code,
                    payload=response.payload,
                    invalid_json=True,
                )
        except (ApiConnectionError, ApiResponseError) as e:
            info = classify_error(e)
            if self.config.numbering_fallback:
                number = fallback_number(code, on_date)
                logger.warning(f"Numbering API unavailable ({info.message}), using fallback {number}")
                return number
            logger.error(f"Could not allocate {code} number: {info.message}")
            raise NumberingError(format_error(info, f"generate {code} number"), info=info) from e

        logger.info(f"Allocated document number {number}")
        return str(number)
