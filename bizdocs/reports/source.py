"""
Load report records through the DataStore.

The API has no joins, so trading invoices are assembled from separate
reads of invoices, invoice items, products and customers.
"""
from __future__ import annotations
from collections import defaultdict
from typing import Optional
from loguru import logger

from ..models import TradingInvoice, TradingInvoiceItem, TransportTrip
from ..store import DataStore

TRANSPORT_TABLE = "transport_finance"


def _company_filter(company_id: Optional[str]) -> Optional[dict]:
    return {"company_id": company_id} if company_id else None


def load_trading_invoices(store: DataStore, company_id: Optional[str] = None) -> list[TradingInvoice]:
    """
    Fetch a company's invoices with their items, product costs and
    customer names.

    Raises:
        StoreError: If invoices, items or products cannot be read
    """
    invoices = store.select("invoices", _company_filter(company_id)).unwrap("load invoices")
    if not invoices:
        return []

    products = {
        str(p["id"]): p
        for p in store.select("products", _company_filter(company_id)).unwrap("load products")
    }

    invoice_ids = {str(inv["id"]) for inv in invoices}
    items_by_invoice = defaultdict(list)
    for row in store.select("invoice_items").unwrap("load invoice items"):
        invoice_id = str(row.get("invoice_id"))
        if invoice_id in invoice_ids:
            items_by_invoice[invoice_id].append(row)

    customer_names = {}
    customers = store.select("customers", _company_filter(company_id))
    if customers.ok:
        customer_names = {str(c["id"]): c.get("name") for c in customers.data}
    else:
        logger.warning(f"Could not load customers, report will show customer ids: {customers.error.message}")

    result = []
    for inv in invoices:
        items = []
        for row in items_by_invoice[str(inv["id"])]:
            product = products.get(str(row.get("product_id")), {})
            items.append(
                TradingInvoiceItem(
                    product_id=row.get("product_id"),
                    product_name=product.get("name") or "Unknown Product",
                    quantity=row.get("quantity"),
                    unit_price=row.get("unit_price"),
                    line_total=row.get("line_total"),
                    cost_price=product.get("cost_price"),
                )
            )
        result.append(
            TradingInvoice.model_validate(
                {
                    **inv,
                    "customer_name": customer_names.get(str(inv.get("customer_id"))),
                    "items": items,
                }
            )
        )
    logger.debug(f"Loaded {len(result)} invoices for trading report")
    return result


def load_transport_trips(store: DataStore, company_id: Optional[str] = None) -> list[TransportTrip]:
    """
    Raises:
        StoreError: If the transport records cannot be read
    """
    rows = store.select(TRANSPORT_TABLE, _company_filter(company_id)).unwrap("load transport records")
    trips = [TransportTrip.model_validate(row) for row in rows]
    logger.debug(f"Loaded {len(trips)} trips for transport report")
    return trips
