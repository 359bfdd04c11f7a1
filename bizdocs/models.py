"""
Domain models for bizdocs.

The API stores quotations, proformas and invoices in three tables with
their own column names for the same concepts (``quotation_number``,
``proforma_number``, ``invoice_number`` ...). ``Document`` and
``DocumentItem`` use one vocabulary for all three and map to and from the
per-kind columns through ``KIND_META``.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Annotated, Any, Optional
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from .items import coerce_bool, coerce_date, coerce_number


def _coerce_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _optional_number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return coerce_number(value)


Amount = Annotated[float, BeforeValidator(coerce_number)]
OptionalAmount = Annotated[Optional[float], BeforeValidator(_optional_number)]
Flag = Annotated[bool, BeforeValidator(coerce_bool)]
RecordDate = Annotated[Optional[date], BeforeValidator(coerce_date)]
RecordId = Annotated[Optional[str], BeforeValidator(_coerce_id)]


class DocumentKind(str, Enum):
    QUOTATION = "quotation"
    PROFORMA = "proforma"
    INVOICE = "invoice"

    @property
    def meta(self) -> "KindMeta":
        return KIND_META[self]

    @property
    def label(self) -> str:
        return self.meta.label


@dataclass(frozen=True)
class KindMeta:
    table: str
    items_table: str
    item_fk: str
    number_column: str
    date_column: str
    expiry_column: str
    numbering_type: str
    label: str


KIND_META = {
    DocumentKind.QUOTATION: KindMeta(
        table="quotations",
        items_table="quotation_items",
        item_fk="quotation_id",
        number_column="quotation_number",
        date_column="quotation_date",
        expiry_column="valid_until",
        numbering_type="quotation",
        label="quotation",
    ),
    DocumentKind.PROFORMA: KindMeta(
        table="proforma_invoices",
        items_table="proforma_items",
        item_fk="proforma_id",
        number_column="proforma_number",
        date_column="proforma_date",
        expiry_column="valid_until",
        numbering_type="proforma",
        label="proforma invoice",
    ),
    DocumentKind.INVOICE: KindMeta(
        table="invoices",
        items_table="invoice_items",
        item_fk="invoice_id",
        number_column="invoice_number",
        date_column="invoice_date",
        expiry_column="due_date",
        numbering_type="invoice",
        label="invoice",
    ),
}

# Item columns written when items are inserted
ITEM_COLUMNS = (
    "product_id",
    "description",
    "quantity",
    "unit_price",
    "discount_percentage",
    "tax_percentage",
    "tax_amount",
    "tax_inclusive",
    "line_total",
    "sort_order",
)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


class DocumentItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: RecordId = None
    document_id: RecordId = None
    product_id: RecordId = None
    description: str = ""
    quantity: Amount = 0.0
    unit_price: Amount = 0.0
    discount_percentage: Amount = 0.0
    discount_amount: Amount = 0.0
    tax_percentage: Amount = 0.0
    tax_amount: Amount = 0.0
    tax_inclusive: Flag = False
    line_total: Amount = 0.0
    sort_order: Optional[int] = None

    @classmethod
    def from_row(cls, kind: DocumentKind, row: dict) -> "DocumentItem":
        data = dict(row)
        data["document_id"] = row.get(kind.meta.item_fk)
        if data.get("description") is None:
            data["description"] = ""
        if data.get("sort_order") in ("", None):
            data["sort_order"] = None
        else:
            data["sort_order"] = int(coerce_number(data["sort_order"]))
        return cls.model_validate(data)

    def to_row(self, kind: DocumentKind, document_id: str, position: int = 1) -> dict:
        """
        Build the insert payload for ``kind``'s items table.

        ``position`` is the 1-based index of the item in its document and
        becomes ``sort_order`` when the item has none.
        """
        row = {kind.meta.item_fk: document_id}
        for name in ITEM_COLUMNS:
            row[name] = getattr(self, name)
        row["sort_order"] = self.sort_order or position
        return row


class Customer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: RecordId = None
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company_id: RecordId = None


class Document(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: RecordId = None
    kind: DocumentKind
    number: Optional[str] = None
    date: RecordDate = None
    valid_until: RecordDate = None
    due_date: RecordDate = None
    customer_id: RecordId = None
    company_id: RecordId = None
    created_by: RecordId = None
    status: str = "draft"
    subtotal: Amount = 0.0
    tax_amount: Amount = 0.0
    total_amount: Amount = 0.0
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    items: list[DocumentItem] = Field(default_factory=list)
    customer: Optional[Customer] = None

    @classmethod
    def from_row(cls, kind: DocumentKind, row: dict) -> "Document":
        meta = kind.meta
        data = {k: v for k, v in row.items() if k not in ("items", "customer")}
        data["kind"] = kind
        data["number"] = row.get(meta.number_column)
        data["date"] = row.get(meta.date_column)
        data["status"] = row.get("status") or "draft"
        return cls.model_validate(data)

    @property
    def expiry(self) -> Optional[date]:
        """valid_until for quotations and proformas, due_date for invoices."""
        return self.due_date if self.kind is DocumentKind.INVOICE else self.valid_until

    def to_row(self) -> dict:
        """
        Build the insert payload for this document's table.

        Per-kind column names are applied and unset optional fields are
        left out, so the backend applies its own defaults.
        """
        meta = self.kind.meta
        row = {
            "company_id": self.company_id,
            "customer_id": self.customer_id,
            meta.number_column: self.number,
            meta.date_column: _iso(self.date),
            meta.expiry_column: _iso(self.expiry),
            "status": self.status,
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
            "notes": self.notes,
            "terms_and_conditions": self.terms_and_conditions,
        }
        # proforma_invoices has no created_by column
        if self.kind is not DocumentKind.PROFORMA:
            row["created_by"] = self.created_by
        return {k: v for k, v in row.items() if v is not None}


class StockMovement(BaseModel):
    id: RecordId = None
    company_id: RecordId = None
    product_id: RecordId = None
    movement_type: str = "OUT"
    reference_type: str = "INVOICE"
    reference_id: RecordId = None
    quantity: Amount = 0.0
    cost_per_unit: Amount = 0.0
    notes: Optional[str] = None

    def to_row(self) -> dict:
        return self.model_dump(exclude={"id"}, exclude_none=True)


# Report records


class TradingInvoiceItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_id: RecordId = None
    product_name: str = "Unknown Product"
    quantity: Amount = 0.0
    unit_price: Amount = 0.0
    line_total: Amount = 0.0
    cost_price: Amount = 0.0


class TradingInvoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: RecordId = None
    invoice_number: Optional[str] = None
    invoice_date: RecordDate = None
    customer_id: RecordId = None
    customer_name: Optional[str] = None
    status: Optional[str] = None
    total_amount: Amount = 0.0
    items: list[TradingInvoiceItem] = Field(default_factory=list)


class TransportTrip(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: RecordId = None
    date: RecordDate = None
    vehicle_id: RecordId = None
    customer_name: Optional[str] = None
    selling_price: Amount = 0.0
    driver_fees: Amount = 0.0
    other_expenses: Amount = 0.0
    buying_price: Amount = 0.0
    fuel_cost: Amount = 0.0
    materials: Optional[str] = None
    payment_status: Optional[str] = None
    company_id: RecordId = None
