"""
Document conversion: quotation -> proforma, quotation -> invoice,
proforma -> invoice.

A conversion is a sequence of independent API writes (destination
document, its items, stock movements, source status). The backend offers
no transaction, so when a later write fails the workflow deletes what it
already created and reports whether that clean-up was complete.

Two conversions of the same source started at the same time can both
succeed and create two destination documents; the API has no lock or
version column to prevent it.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Union
from loguru import logger
from pydantic import BaseModel, ConfigDict

from .config import BizDocsConfig
from .documents import priced_items
from .errors import BizDocsError, ConversionError, InvalidTransitionError, ValidationError, format_error
from .items import DocumentTotals, calculate_document_totals
from .models import Customer, Document, DocumentItem, DocumentKind, OptionalAmount, StockMovement
from .numbering import DocumentNumberingService
from .repositories import CustomerRepository, DocumentRepository, StockMovementRepository
from .status import CONVERSION_TARGETS, DocumentStatus, StatusMachine
from .store import DataStore


class ConversionState(str, Enum):
    IDLE = "idle"
    LOADING_SOURCE = "loading_source"
    PREVIEW_READY = "preview_ready"
    CONVERTING = "converting"
    DONE = "done"
    FAILED = "failed"


class ConversionOverrides(BaseModel):
    """
    Edits made in the preview before confirming.

    Unset fields keep the source document's values. Items replace the
    source items as a whole; when items are replaced without totals, the
    totals are recomputed from the new items.
    """

    model_config = ConfigDict(extra="ignore")

    subtotal: OptionalAmount = None
    tax_amount: OptionalAmount = None
    total_amount: OptionalAmount = None
    items: Optional[list[DocumentItem]] = None

    @property
    def has_totals(self) -> bool:
        return any(v is not None for v in (self.subtotal, self.tax_amount, self.total_amount))


@dataclass
class ConversionPreview:
    source: Document
    target_kind: DocumentKind
    destination_date: date
    destination_status: str
    due_date: Optional[date] = None
    valid_until: Optional[date] = None
    customer: Optional[Customer] = None
    conversion_impact: list[str] = field(default_factory=list)

    @property
    def source_kind(self) -> DocumentKind:
        return self.source.kind

    @property
    def items(self) -> list[DocumentItem]:
        return self.source.items


@dataclass
class ConversionResult:
    source: Document
    destination: Document
    stock_movement_ids: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def conversion_impact(
    source: Document,
    target_kind: DocumentKind,
    status: str,
    stock_movements: bool,
) -> list[str]:
    """Describe, for a person, what confirming the conversion will do."""
    source_label = source.kind.label
    impact = [
        f'Create a new {target_kind.label} with status "{status.capitalize()}"',
        f"Generate a unique {target_kind.label} number",
        f"Copy all {len(source.items)} items and amounts from the {source_label}",
    ]
    if target_kind is DocumentKind.INVOICE and stock_movements:
        impact.append("Create stock movements for inventory tracking")
    name = f"{source_label} {source.number}" if source.number else source_label
    impact.append(f'Mark the {name} as "Converted"')
    return impact


def resolve_items_and_totals(
    source: Document,
    overrides: Optional[ConversionOverrides],
) -> tuple[list[DocumentItem], DocumentTotals]:
    """Apply preview overrides to the source snapshot."""
    if overrides is None:
        return list(source.items), DocumentTotals(
            subtotal=source.subtotal,
            tax_amount=source.tax_amount,
            total_amount=source.total_amount,
        )

    if overrides.items is not None:
        items = priced_items(overrides.items)
        if not overrides.has_totals:
            return items, calculate_document_totals(items)
    else:
        items = list(source.items)

    def pick(name: str) -> float:
        value = getattr(overrides, name)
        return getattr(source, name) if value is None else value

    return items, DocumentTotals(
        subtotal=pick("subtotal"),
        tax_amount=pick("tax_amount"),
        total_amount=pick("total_amount"),
    )


class ConversionWorkflow:
    """
    Convert a document into the next document type.

    States: idle -> loading_source -> preview_ready -> converting -> done | failed

    Usage:
        workflow = ConversionWorkflow(store, numbering, config)
        preview = workflow.load(DocumentKind.QUOTATION, "42", DocumentKind.INVOICE)
        for line in preview.conversion_impact:
            print(line)
        result = workflow.confirm(preview)
    """

    def __init__(
        self,
        store: DataStore,
        numbering: DocumentNumberingService,
        config: Optional[BizDocsConfig] = None,
        user_id: Optional[str] = None,
    ):
        self.store = store
        self.numbering = numbering
        self.config = config or BizDocsConfig.from_env()
        self.user_id = user_id
        self.customers = CustomerRepository(store)
        self.stock = StockMovementRepository(store)
        self.state = ConversionState.IDLE
        self.preview: Optional[ConversionPreview] = None
        self.result: Optional[ConversionResult] = None

    def reset(self):
        self.state = ConversionState.IDLE
        self.preview = None
        self.result = None

    def load(
        self,
        source_kind: DocumentKind,
        source_id: str,
        target_kind: DocumentKind,
        today: Optional[date] = None,
        create_stock_movements: Optional[bool] = None,
    ) -> ConversionPreview:
        """
        Fetch the source document, its items and its customer, and build
        the preview.

        Raises:
            ValidationError: If the conversion path does not exist
            InvalidTransitionError: If the source status does not allow conversion
            NotFoundError: If the source document does not exist
            StoreError: If any fetch fails
        """
        source_kind, target_kind = DocumentKind(source_kind), DocumentKind(target_kind)
        if self.state is ConversionState.CONVERTING:
            raise ValidationError("A conversion is already in progress")
        if target_kind not in CONVERSION_TARGETS[source_kind]:
            raise ValidationError(f"Cannot convert {source_kind.label} to {target_kind.label}")

        self.reset()
        self.state = ConversionState.LOADING_SOURCE
        repo = DocumentRepository(self.store, source_kind)
        try:
            source = repo.get(source_id).require(f"load {source_kind.label} {source_id}")
            if not StatusMachine.for_kind(source_kind).can_convert(source.status):
                raise InvalidTransitionError(
                    f"{source_kind.label.capitalize()} {source.number} is {source.status} and cannot be converted"
                )
            source.items = repo.items(source_id).unwrap(f"load items of {source_kind.label} {source_id}")
            customer = None
            if source.customer_id:
                customer = self.customers.get(source.customer_id).unwrap(
                    f"load customer {source.customer_id}"
                )
                source.customer = customer
        except BizDocsError:
            self.state = ConversionState.FAILED
            raise

        today = today or date.today()
        stock_movements = self._stock_enabled(create_stock_movements)
        if target_kind is DocumentKind.INVOICE:
            status = DocumentStatus.SENT.value
            due_date = today + timedelta(days=self.config.due_days)
            valid_until = None
        else:
            status = DocumentStatus.DRAFT.value
            due_date = None
            valid_until = source.valid_until or today + timedelta(days=self.config.validity_days)

        self.preview = ConversionPreview(
            source=source,
            target_kind=target_kind,
            destination_date=today,
            destination_status=status,
            due_date=due_date,
            valid_until=valid_until,
            customer=customer,
            conversion_impact=conversion_impact(source, target_kind, status, stock_movements),
        )
        self.state = ConversionState.PREVIEW_READY
        logger.info(
            f"Loaded {source_kind.label} {source.number} ({len(source.items)} items) "
            f"for conversion to {target_kind.label}"
        )
        return self.preview

    def _stock_enabled(self, override: Optional[bool]) -> bool:
        return self.config.create_stock_movements if override is None else override

    def confirm(
        self,
        preview: Optional[ConversionPreview] = None,
        modified_data: Union[ConversionOverrides, dict, None] = None,
        create_stock_movements: Optional[bool] = None,
    ) -> ConversionResult:
        """
        Create the destination document and mark the source converted.

        Args:
            preview: Preview from ``load`` (defaults to the loaded one)
            modified_data: Overrides edited in the preview
            create_stock_movements: Override the configured stock behaviour

        Raises:
            InvalidTransitionError: If the source can no longer be converted
            NumberingError: If no number could be allocated (nothing written)
            ConversionError: If a write failed; ``compensated`` tells whether
                the rows already written were removed
        """
        preview = preview or self.preview
        if preview is None or self.state is not ConversionState.PREVIEW_READY:
            raise ValidationError(f"No conversion preview is ready (state: {self.state.value})")
        if isinstance(modified_data, dict):
            modified_data = ConversionOverrides.model_validate(modified_data)

        source = preview.source
        target_kind = preview.target_kind
        source_repo = DocumentRepository(self.store, source.kind)
        target_repo = DocumentRepository(self.store, target_kind)
        self.state = ConversionState.CONVERTING

        try:
            # Status may have changed since the preview was loaded
            current = source_repo.get(source.id).require(f"load {source.kind.label} {source.id}")
            StatusMachine.for_kind(source.kind).ensure_transition(
                current.status, DocumentStatus.CONVERTED
            )
            items, totals = resolve_items_and_totals(source, modified_data)
            number = self.numbering.generate(target_kind, source.company_id, preview.destination_date)
        except BizDocsError:
            self.state = ConversionState.FAILED
            raise

        destination = Document(
            kind=target_kind,
            number=number,
            date=preview.destination_date,
            due_date=preview.due_date,
            valid_until=preview.valid_until,
            customer_id=source.customer_id,
            company_id=source.company_id,
            created_by=self.user_id if target_kind is DocumentKind.INVOICE else None,
            status=preview.destination_status,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
        )
        if target_kind is DocumentKind.PROFORMA:
            destination.notes = f"Converted from {source.kind.label} {source.number}"
            destination.terms_and_conditions = source.terms_and_conditions

        created = _Created()
        warnings: list[str] = []
        step = "create_destination"
        try:
            operation = f"create {target_kind.label} {number}"
            inserted = target_repo.insert(destination)
            inserted.unwrap(operation)
            created.document_id = inserted.id
            destination = target_repo.get(inserted.id).require(operation)

            step = "copy_items"
            written = target_repo.insert_items(items, destination.id)
            created.item_ids = list(written.written_ids)
            written.unwrap(f"copy items to {target_kind.label} {number}")

            if target_kind is DocumentKind.INVOICE and self._stock_enabled(create_stock_movements):
                step = "stock_movements"
                movements = self._stock_movements(destination, source, items)
                moved = self.stock.insert_many(movements)
                created.movement_ids = list(moved.written_ids)
                if not moved.ok:
                    message = format_error(moved.error, "create stock movements")
                    logger.warning(f"{message} (invoice {number} kept, adjust stock manually)")
                    warnings.append(message)

            step = "mark_source_converted"
            source_repo.update(source.id, {"status": DocumentStatus.CONVERTED.value}).unwrap(
                f"mark {source.kind.label} {source.number} as converted"
            )
        except BizDocsError as e:
            self.state = ConversionState.FAILED
            raise self._compensate(e, step, target_repo, created) from e

        destination.items = items
        source = source.model_copy(update={"status": DocumentStatus.CONVERTED.value})
        self.result = ConversionResult(
            source=source,
            destination=destination,
            stock_movement_ids=created.movement_ids,
            warnings=warnings,
        )
        self.state = ConversionState.DONE
        logger.info(
            f"Converted {source.kind.label} {source.number} to {target_kind.label} {destination.number}"
        )
        return self.result

    def convert(
        self,
        source_kind: DocumentKind,
        source_id: str,
        target_kind: DocumentKind,
        modified_data: Union[ConversionOverrides, dict, None] = None,
        create_stock_movements: Optional[bool] = None,
    ) -> ConversionResult:
        """Load and confirm in one call."""
        preview = self.load(
            source_kind, source_id, target_kind, create_stock_movements=create_stock_movements
        )
        return self.confirm(preview, modified_data, create_stock_movements)

    def _stock_movements(
        self,
        invoice: Document,
        source: Document,
        items: list[DocumentItem],
    ) -> list[StockMovement]:
        note = (
            f"Stock reduction for invoice {invoice.number} "
            f"(converted from {source.kind.value} {source.number})"
        )
        return [
            StockMovement(
                company_id=invoice.company_id,
                product_id=item.product_id,
                movement_type="OUT",
                reference_type="INVOICE",
                reference_id=invoice.id,
                quantity=item.quantity,
                cost_per_unit=item.unit_price,
                notes=note,
            )
            for item in items
            if item.product_id and item.quantity > 0
        ]

    def _compensate(
        self,
        error: BizDocsError,
        step: str,
        target_repo: DocumentRepository,
        created: "_Created",
    ) -> ConversionError:
        """Delete what the failed conversion wrote and build the error to raise."""
        if created.document_id is None:
            logger.error(f"Conversion failed at {step}, nothing was written: {error}")
            return ConversionError(str(error), info=error.info, step=step, compensated=True)

        logger.warning(f"Conversion failed at {step}, removing rows it created")
        leftovers = []
        for movement_id in self.stock.delete_many(created.movement_ids):
            leftovers.append(f"stock_movements/{movement_id}")
        for item_id in target_repo.delete_item_rows(created.item_ids):
            leftovers.append(f"{target_repo.meta.items_table}/{item_id}")
        if not target_repo.delete(created.document_id).ok:
            leftovers.append(f"{target_repo.meta.table}/{created.document_id}")

        if leftovers:
            logger.error(f"Rollback incomplete, rows left behind: {', '.join(leftovers)}")
            message = f"{error} Rollback incomplete, remove manually: {', '.join(leftovers)}"
        else:
            logger.info(f"Rolled back {target_repo.kind.label} {created.document_id}")
            message = f"{error} All changes were rolled back."
        return ConversionError(
            message,
            info=error.info,
            step=step,
            compensated=not leftovers,
            leftovers=leftovers,
        )


@dataclass
class _Created:
    document_id: Optional[str] = None
    item_ids: list[str] = field(default_factory=list)
    movement_ids: list[str] = field(default_factory=list)
