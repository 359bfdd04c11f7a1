"""
Document service: create, fetch, change status and delete documents.
"""
from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional, Union
from loguru import logger

from .config import BizDocsConfig
from .errors import InvalidTransitionError, StoreError, ValidationError
from .items import calculate_document_totals, calculate_line_item_total
from .models import Document, DocumentItem, DocumentKind
from .numbering import DocumentNumberingService
from .repositories import CustomerRepository, DocumentRepository
from .status import DocumentStatus, StatusMachine, parse_status
from .store import DataStore

NOTE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def priced_items(items: Iterable[Union[DocumentItem, dict]]) -> list[DocumentItem]:
    """
    Return items with their line totals recomputed from quantity and price.

    Items may be DocumentItem instances or plain dicts; positions without a
    ``sort_order`` get their 1-based index.
    """
    priced = []
    for position, raw in enumerate(items, start=1):
        item = raw if isinstance(raw, DocumentItem) else DocumentItem.model_validate(raw)
        line = calculate_line_item_total(
            quantity=item.quantity,
            unit_price=item.unit_price,
            discount_percentage=item.discount_percentage,
            tax_percentage=item.tax_percentage,
            tax_inclusive=item.tax_inclusive,
        )
        priced.append(
            item.model_copy(
                update={
                    "line_total": line.line_total,
                    "tax_amount": line.tax_amount,
                    "discount_amount": line.discount_amount,
                    "sort_order": item.sort_order or position,
                }
            )
        )
    return priced


def status_note(existing: Optional[str], status: str, note: str, now: datetime) -> str:
    """Append a timestamped status-change line to a document's notes."""
    line = f"[{now.strftime(NOTE_TIMESTAMP_FORMAT)}] Status changed to {status}: {note}"
    return f"{existing}\n{line}" if existing else line


class DocumentService:
    """
    Create and manage quotations, proformas and invoices.

    Usage:
        service = DocumentService(store, numbering, config)
        quote = service.create_document(
            DocumentKind.QUOTATION, company_id="c1", customer_id="k1",
            items=[{"description": "Widget", "quantity": 2, "unit_price": 100}],
        )
        service.update_status(DocumentKind.QUOTATION, quote.id, "sent")
    """

    def __init__(
        self,
        store: DataStore,
        numbering: DocumentNumberingService,
        config: Optional[BizDocsConfig] = None,
    ):
        self.store = store
        self.numbering = numbering
        self.config = config or BizDocsConfig.from_env()
        self.customers = CustomerRepository(store)

    def repository(self, kind: DocumentKind) -> DocumentRepository:
        return DocumentRepository(self.store, DocumentKind(kind))

    def create_document(
        self,
        kind: DocumentKind,
        company_id: str,
        customer_id: str,
        items: Iterable[Union[DocumentItem, dict]],
        on_date: Optional[date] = None,
        expiry: Optional[date] = None,
        status: Union[str, DocumentStatus] = DocumentStatus.DRAFT,
        notes: Optional[str] = None,
        terms_and_conditions: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Document:
        """
        Create a document with its items.

        Line and document totals are computed here. The number is allocated
        once; if the document cannot be read back or its items cannot be
        written, the rows already written are deleted before the error is
        raised. Rows that could not be deleted are named in the error.

        Raises:
            ValidationError: If ``status`` does not apply to this kind
            InvalidTransitionError: If ``status`` is ``converted``
            NumberingError: If no number could be allocated
            StoreError: If the document or its items could not be written
        """
        kind = DocumentKind(kind)
        initial = parse_status(status)
        if initial is DocumentStatus.CONVERTED:
            raise InvalidTransitionError(
                f"Status converted is set only by converting the {kind.label} to another document"
            )
        if initial not in StatusMachine.for_kind(kind).statuses:
            raise ValidationError(f"Status '{initial.value}' does not apply to {kind.label}s")
        repo = self.repository(kind)
        on_date = on_date or date.today()
        if expiry is None:
            days = self.config.due_days if kind is DocumentKind.INVOICE else self.config.validity_days
            expiry = on_date + timedelta(days=days)

        lines = priced_items(items)
        totals = calculate_document_totals(lines)
        number = self.numbering.generate(kind, company_id, on_date)

        document = Document(
            kind=kind,
            number=number,
            date=on_date,
            valid_until=expiry if kind is not DocumentKind.INVOICE else None,
            due_date=expiry if kind is DocumentKind.INVOICE else None,
            customer_id=customer_id,
            company_id=company_id,
            created_by=created_by,
            status=initial.value,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
            notes=notes,
            terms_and_conditions=terms_and_conditions,
        )
        operation = f"create {kind.label}"
        inserted = repo.insert(document)
        inserted.unwrap(operation)

        item_ids: list[str] = []
        try:
            created = repo.get(inserted.id).require(operation)
            written = repo.insert_items(lines, inserted.id)
            item_ids = written.written_ids
            written.unwrap(f"add items to {kind.label} {number}")
        except StoreError as e:
            logger.error(f"Creating {kind.label} {number} failed, removing the rows written")
            leftovers = self._remove_partial(repo, inserted.id, item_ids)
            if leftovers:
                raise StoreError(
                    f"{e} Cleanup incomplete, remove manually: {', '.join(leftovers)}",
                    info=e.info,
                ) from e
            raise

        created.items = lines
        logger.info(f"Created {kind.label} {number} with {len(lines)} items")
        return created

    def _remove_partial(self, repo: DocumentRepository, document_id: str, item_ids: list[str]) -> list[str]:
        """Delete a half-written document; return the rows that are still there."""
        leftovers = [f"{repo.meta.items_table}/{i}" for i in repo.delete_item_rows(item_ids)]
        if not repo.delete(document_id).ok:
            leftovers.append(f"{repo.meta.table}/{document_id}")
        if leftovers:
            logger.error(f"Cleanup incomplete, rows left behind: {', '.join(leftovers)}")
        return leftovers

    def get_document(
        self,
        kind: DocumentKind,
        id: str,
        with_items: bool = True,
        with_customer: bool = False,
    ) -> Document:
        """
        Fetch one document.

        Raises:
            NotFoundError: If the document does not exist
            StoreError: If the read fails
        """
        kind = DocumentKind(kind)
        repo = self.repository(kind)
        document = repo.get(id).require(f"load {kind.label} {id}")
        if with_items:
            document.items = repo.items(id).unwrap(f"load items of {kind.label} {id}")
        if with_customer and document.customer_id:
            customer = self.customers.get(document.customer_id)
            if customer.ok:
                document.customer = customer.data
            else:
                logger.warning(f"Could not load customer {document.customer_id} for {kind.label} {id}")
        return document

    def list_documents(
        self,
        kind: DocumentKind,
        company_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[Document]:
        kind = DocumentKind(kind)
        return self.repository(kind).list(company_id, status).unwrap(f"list {kind.label}s")

    def update_status(
        self,
        kind: DocumentKind,
        id: str,
        status: Union[str, DocumentStatus],
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Document:
        """
        Move a document to a new status.

        Raises:
            InvalidTransitionError: If the status machine forbids the change,
                or the target is ``converted``
            NotFoundError: If the document does not exist
            StoreError: If the update fails
        """
        kind = DocumentKind(kind)
        target = parse_status(status)
        if target is DocumentStatus.CONVERTED:
            raise InvalidTransitionError(
                f"Status converted is set only by converting the {kind.label} to another document"
            )
        repo = self.repository(kind)
        current = repo.get(id).require(f"load {kind.label} {id}")
        StatusMachine.for_kind(kind).ensure_transition(current.status, target)

        fields: dict[str, Any] = {"status": target.value}
        if note:
            fields["notes"] = status_note(current.notes, target.value, note, now or datetime.now())

        repo.update(id, fields).unwrap(f"update {kind.label} status")
        logger.info(f"{kind.label} {current.number}: {current.status} -> {target.value}")
        return repo.get(id).require(f"load updated {kind.label} {id}")

    def delete_document(self, kind: DocumentKind, id: str, confirmed: bool = False) -> None:
        """
        Delete a document and its items.

        Items are removed first, best-effort; the document delete must
        succeed.

        Raises:
            ValidationError: If ``confirmed`` is not set
            StoreError: If the document could not be deleted
        """
        kind = DocumentKind(kind)
        if not confirmed:
            raise ValidationError(f"Deleting {kind.label} {id} must be confirmed")
        repo = self.repository(kind)
        items = repo.delete_items(id)
        if not items.ok:
            logger.warning(f"Could not delete items of {kind.label} {id}: {items.error.message}")
        repo.delete(id).unwrap(f"delete {kind.label} {id}")
        logger.info(f"Deleted {kind.label} {id}")
