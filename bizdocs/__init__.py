"""
bizdocs - Business document workflows and P&L reporting over the REST API.

This package manages quotations, proforma invoices and invoices stored behind
the business management API, and computes profit & loss reports for the
trading and transport divisions.

Key Features:
- Document numbering through the server-side allocator (with opt-in fallback)
- Status state machine per document kind
- Quotation / proforma to invoice conversion with preview and compensation
- Stock movements for converted invoices
- Trading, transport and consolidated P&L metrics with CSV export

Usage:
    # Check connectivity
    python -m bizdocs test-connection

    # Preview, then convert a quotation to an invoice
    python -m bizdocs convert quotation 42 invoice
    python -m bizdocs convert quotation 42 invoice --yes

    # Consolidated P&L for the year to date
    python -m bizdocs report consolidated --range this_year --csv reports/
"""

__version__ = "1.0.0"
__author__ = "BizDocs Developers"

from .cli import BizDocs
from .client import ApiClient
from .config import BizDocsConfig
from .conversion import ConversionWorkflow
from .documents import DocumentService
from .numbering import DocumentNumberingService
from .store import DataStore

__all__ = [
    "ApiClient",
    "BizDocs",
    "BizDocsConfig",
    "ConversionWorkflow",
    "DataStore",
    "DocumentNumberingService",
    "DocumentService",
    "__version__",
]
