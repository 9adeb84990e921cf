from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.core.exceptions import InvalidStatusTransition, NotFound
from backend.app.models.inventory import StockMovementType
from backend.app.models.organization import Location
from backend.app.models.supplier import POStatus, PurchaseOrder, PurchaseOrderItem
from backend.app.schemas.supplier import PurchaseOrderCreate, PurchaseOrderReceive
from backend.app.services import stock_ledger
from backend.app.services.audit import log_action
from backend.app.services.catalog import get_product, get_variant
from backend.app.services.pricing import to_cents
from backend.app.services.sequencer import DocumentFamily, next_document_number
from backend.app.services.supplier_payment import get_supplier
from backend.app.services.unit_of_work import run_settlement

logger = logging.getLogger(__name__)

RECEIVABLE_STATUSES = frozenset({POStatus.PENDING, POStatus.APPROVED, POStatus.PARTIAL})


def get_purchase_order(db: Session, *, tenant_id: UUID, po_id: UUID) -> PurchaseOrder:
    po = (
        db.query(PurchaseOrder)
        .filter(PurchaseOrder.id == po_id, PurchaseOrder.tenant_id == tenant_id)
        .first()
    )
    if po is None:
        raise NotFound("Purchase order", po_id)
    return po


def create_purchase_order(
    db: Session, ctx: SessionContext, data: PurchaseOrderCreate
) -> PurchaseOrder:
    """Create a PENDING order. Stock only moves on receipt."""
    supplier = get_supplier(db, tenant_id=ctx.tenant_id, supplier_id=data.supplier_id)
    location = (
        db.query(Location)
        .filter(Location.id == data.location_id, Location.tenant_id == ctx.tenant_id)
        .first()
    )
    if location is None:
        raise NotFound("Location", data.location_id)

    po = PurchaseOrder(
        tenant_id=ctx.tenant_id,
        supplier_id=supplier.id,
        location_id=location.id,
        purchase_number=next_document_number(
            db, tenant_id=ctx.tenant_id, family=DocumentFamily.PURCHASE_ORDER
        ),
        status=POStatus.PENDING,
        notes=data.notes,
        created_by=ctx.user_id,
    )
    total = Decimal("0")
    for item in data.items:
        product = get_product(db, tenant_id=ctx.tenant_id, product_id=item.product_id)
        if item.product_variant_id is not None:
            get_variant(
                db,
                tenant_id=ctx.tenant_id,
                product_id=product.id,
                variant_id=item.product_variant_id,
            )
        po.items.append(
            PurchaseOrderItem(
                product_id=product.id,
                product_variant_id=item.product_variant_id,
                quantity_ordered=item.quantity,
                quantity_received=0,
                unit_cost=item.unit_cost,
            )
        )
        total += to_cents(item.unit_cost * item.quantity)
    po.total = total
    db.add(po)
    db.flush()

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="PURCHASE_ORDER_CREATED",
        resource_type="purchase_orders",
        resource_id=str(po.id),
        changes={"purchase_number": po.purchase_number, "supplier": supplier.name, "total": total},
        ip_address=ctx.ip_address,
    )
    return po


def _receive(
    db: Session, ctx: SessionContext, po_id: UUID, data: PurchaseOrderReceive
) -> PurchaseOrder:
    po = get_purchase_order(db, tenant_id=ctx.tenant_id, po_id=po_id)
    if po.status not in RECEIVABLE_STATUSES:
        raise InvalidStatusTransition("Purchase order", po.status.value, POStatus.RECEIVED.value)

    items = {item.id: item for item in po.items}
    if data.items:
        requested = []
        for line in data.items:
            item = items.get(line.item_id)
            if item is None:
                raise NotFound("Purchase order item", line.item_id)
            requested.append((item, line.quantity))
    else:
        requested = [
            (item, item.quantity_ordered - item.quantity_received)
            for item in po.items
            if item.quantity_received < item.quantity_ordered
        ]

    stock_lines = []
    for item, quantity in requested:
        pending = item.quantity_ordered - item.quantity_received
        if quantity > pending:
            raise ValueError(
                f"Cannot receive {quantity} units of item {item.id}: only {pending} pending"
            )
        item.quantity_received += quantity
        stock_lines.append(
            stock_ledger.StockLine(
                quantity=quantity,
                product_id=item.product_id,
                product_variant_id=item.product_variant_id,
                label=str(item.product_id),
            )
        )
    if not stock_lines:
        raise ValueError("Nothing left to receive on this purchase order")

    stock_ledger.increment(
        db,
        tenant_id=po.tenant_id,
        location_id=po.location_id,
        lines=stock_lines,
        reason=f"Purchase {po.purchase_number}",
        user_id=ctx.user_id,
        movement_type=StockMovementType.PURCHASE,
        purchase_order_id=po.id,
    )

    if all(item.quantity_received >= item.quantity_ordered for item in po.items):
        po.status = POStatus.RECEIVED
        po.received_at = datetime.now(timezone.utc)
    else:
        po.status = POStatus.PARTIAL
    db.flush()

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="PURCHASE_ORDER_RECEIVED",
        resource_type="purchase_orders",
        resource_id=str(po.id),
        changes={
            "purchase_number": po.purchase_number,
            "status": po.status.value,
            "received": [{"item_id": i.id, "quantity": q} for i, q in requested],
        },
        ip_address=ctx.ip_address,
    )
    logger.info("Purchase order %s received (%s)", po.purchase_number, po.status.value)
    return po


def receive_purchase_order(
    db: Session, ctx: SessionContext, po_id: UUID, data: PurchaseOrderReceive | None = None
) -> PurchaseOrder:
    return run_settlement(
        db,
        lambda session: _receive(session, ctx, po_id, data or PurchaseOrderReceive()),
        label="receive_purchase_order",
    )
