"""
Typed repositories over the DataStore.

Each repository knows its tables and turns raw rows into models, so
services never touch column names or raw result dicts.
"""
from __future__ import annotations
from typing import Iterable, Optional
from loguru import logger

from .items import normalize_item
from .models import Customer, Document, DocumentItem, DocumentKind, StockMovement
from .store import DataStore, StoreResult

STOCK_MOVEMENTS_TABLE = "stock_movements"
CUSTOMERS_TABLE = "customers"

# Columns some installations lack or constrain; an insert rejected over one
# of them is retried without it
OPTIONAL_COLUMNS = ("created_by", "valid_until")


def _sort_key(item: DocumentItem) -> tuple:
    # Items without a sort_order keep their fetch order, after ordered ones
    return (item.sort_order is None, item.sort_order or 0)


class DocumentRepository:
    """Quotations, proformas or invoices, with their line items."""

    def __init__(self, store: DataStore, kind: DocumentKind):
        self.store = store
        self.kind = kind
        self.meta = kind.meta

    def get(self, id: str) -> StoreResult[Document]:
        result = self.store.select_one(self.meta.table, id)
        if not result.ok or result.data is None:
            return StoreResult(error=result.error, id=str(id))
        return StoreResult(data=Document.from_row(self.kind, result.data), id=str(id))

    def list(
        self,
        company_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> StoreResult[list[Document]]:
        filter = {}
        if company_id:
            filter["company_id"] = company_id
        if status:
            filter["status"] = status
        result = self.store.select(self.meta.table, filter)
        if not result.ok:
            return StoreResult(error=result.error, data=[])
        return StoreResult(data=[Document.from_row(self.kind, row) for row in result.data])

    def items(self, document_id: str) -> StoreResult[list[DocumentItem]]:
        result = self.store.select_by(self.meta.items_table, {self.meta.item_fk: document_id})
        if not result.ok:
            return StoreResult(error=result.error, data=[])
        items = [
            DocumentItem.from_row(self.kind, normalize_item(row)) for row in result.data
        ]
        items.sort(key=_sort_key)
        return StoreResult(data=items)

    def insert(self, document: Document) -> StoreResult[dict]:
        row = document.to_row()
        result = self.store.insert(self.meta.table, row)
        for column in OPTIONAL_COLUMNS:
            if result.ok:
                break
            if column in row and column in (result.error.message or "").lower():
                logger.warning(f"Insert into {self.meta.table} rejected {column}, retrying without it")
                row.pop(column)
                result = self.store.insert(self.meta.table, row)
        return result

    def insert_items(
        self,
        items: Iterable[DocumentItem],
        document_id: str,
    ) -> StoreResult[list[str]]:
        rows = [
            item.to_row(self.kind, document_id, position)
            for position, item in enumerate(items, start=1)
        ]
        if not rows:
            return StoreResult(data=[])
        return self.store.insert_many(self.meta.items_table, rows)

    def update(self, id: str, fields: dict) -> StoreResult:
        return self.store.update(self.meta.table, id, fields)

    def delete(self, id: str) -> StoreResult:
        return self.store.delete(self.meta.table, id)

    def delete_item_rows(self, ids: Iterable[str]) -> list[str]:
        """Delete item rows by id; return the ids that could not be deleted."""
        failed = []
        for item_id in ids:
            if not self.store.delete(self.meta.items_table, item_id).ok:
                failed.append(item_id)
        return failed

    def delete_items(self, document_id: str) -> StoreResult[list[str]]:
        return self.store.delete_many(self.meta.items_table, {self.meta.item_fk: document_id})


class CustomerRepository:
    def __init__(self, store: DataStore):
        self.store = store

    def get(self, id: str) -> StoreResult[Customer]:
        result = self.store.select_one(CUSTOMERS_TABLE, id)
        if not result.ok or result.data is None:
            return StoreResult(error=result.error, id=str(id))
        return StoreResult(data=Customer.model_validate(result.data), id=str(id))

    def list(self, company_id: Optional[str] = None) -> StoreResult[list[Customer]]:
        result = self.store.select(CUSTOMERS_TABLE, {"company_id": company_id} if company_id else None)
        if not result.ok:
            return StoreResult(error=result.error, data=[])
        return StoreResult(data=[Customer.model_validate(row) for row in result.data])


class StockMovementRepository:
    def __init__(self, store: DataStore):
        self.store = store

    def insert_many(self, movements: Iterable[StockMovement]) -> StoreResult[list[str]]:
        rows = [m.to_row() for m in movements]
        if not rows:
            return StoreResult(data=[])
        return self.store.insert_many(STOCK_MOVEMENTS_TABLE, rows)

    def delete_many(self, ids: Iterable[str]) -> list[str]:
        """Delete movements by id; return the ids that could not be deleted."""
        failed = []
        for movement_id in ids:
            if not self.store.delete(STOCK_MOVEMENTS_TABLE, movement_id).ok:
                failed.append(movement_id)
        return failed
