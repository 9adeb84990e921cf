from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.deps import require_manager
from backend.app.core.context import SessionContext
from backend.app.core.database import get_db
from backend.app.schemas.supplier import (
    PurchaseOrderCreate,
    PurchaseOrderOut,
    PurchaseOrderReceive,
)
from backend.app.services import purchase_orders
from backend.app.services.unit_of_work import run_settlement

router = APIRouter()


@router.post("", response_model=PurchaseOrderOut, status_code=status.HTTP_201_CREATED)
def post_purchase_order(
    payload: PurchaseOrderCreate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return run_settlement(
        db,
        lambda s: purchase_orders.create_purchase_order(s, ctx, payload),
        label="create_purchase_order",
    )


@router.post("/{po_id}/receive", response_model=PurchaseOrderOut)
def post_receive_purchase_order(
    po_id: UUID,
    payload: PurchaseOrderReceive | None = None,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return purchase_orders.receive_purchase_order(db, ctx, po_id, payload)
