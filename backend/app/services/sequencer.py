"""Per-tenant document numbering: ``SALE-000001``, ``QUOTE-000001``...

The next number is derived inside the caller's transaction from the highest
existing suffix. Two writers racing for the same number both pass this
step; the unique ``(tenant_id, number)`` constraint rejects the second insert
and the settlement unit of work retries it with a fresh number.
"""

from __future__ import annotations

import enum
from uuid import UUID

from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from backend.app.models.quotes import Quote
from backend.app.models.sales import Sale
from backend.app.models.supplier import PurchaseOrder, SupplierPayment

NUMBER_WIDTH = 6


class DocumentFamily(str, enum.Enum):
    SALE = "SALE"
    QUOTE = "QUOTE"
    PURCHASE_ORDER = "PO"
    SUPPLIER_PAYMENT = "SP"


_COLUMNS = {
    DocumentFamily.SALE: (Sale.tenant_id, Sale.sale_number),
    DocumentFamily.QUOTE: (Quote.tenant_id, Quote.quote_number),
    DocumentFamily.PURCHASE_ORDER: (PurchaseOrder.tenant_id, PurchaseOrder.purchase_number),
    DocumentFamily.SUPPLIER_PAYMENT: (SupplierPayment.tenant_id, SupplierPayment.payment_number),
}


def format_number(family: DocumentFamily, value: int) -> str:
    return f"{family.value}-{value:0{NUMBER_WIDTH}d}"


def next_document_number(db: Session, *, tenant_id: UUID, family: DocumentFamily) -> str:
    tenant_col, number_col = _COLUMNS[family]
    prefix = f"{family.value}-"
    suffix = cast(func.substr(number_col, len(prefix) + 1), Integer)
    current = (
        db.query(func.max(suffix))
        .filter(tenant_col == tenant_id, number_col.like(f"{prefix}%"))
        .scalar()
    )
    return format_number(family, int(current or 0) + 1)
