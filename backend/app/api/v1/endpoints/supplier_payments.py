from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.deps import require_manager, require_role
from backend.app.core.context import SessionContext
from backend.app.core.database import get_db
from backend.app.models.organization import RoleEnum
from backend.app.schemas.supplier import (
    SupplierInvoiceCreate,
    SupplierInvoiceDispute,
    SupplierInvoiceOut,
    SupplierInvoiceResolve,
    SupplierPaymentCreate,
    SupplierPaymentOut,
    SupplierPaymentVoidOut,
)
from backend.app.services import supplier_payment
from backend.app.services.unit_of_work import run_settlement

router = APIRouter()
invoices_router = APIRouter()


@invoices_router.post("", response_model=SupplierInvoiceOut, status_code=status.HTTP_201_CREATED)
def post_supplier_invoice(
    payload: SupplierInvoiceCreate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return run_settlement(
        db,
        lambda s: supplier_payment.create_supplier_invoice(s, ctx, payload),
        label="create_supplier_invoice",
    )


@invoices_router.post("/{invoice_id}/dispute", response_model=SupplierInvoiceOut)
def post_dispute_invoice(
    invoice_id: UUID,
    payload: SupplierInvoiceDispute,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_role(RoleEnum.ADMIN)),
):
    return run_settlement(
        db,
        lambda s: supplier_payment.dispute_supplier_invoice(
            s, ctx, invoice_id, reason=payload.reason
        ),
        label="dispute_supplier_invoice",
    )


@invoices_router.post("/{invoice_id}/resolve", response_model=SupplierInvoiceOut)
def post_resolve_invoice(
    invoice_id: UUID,
    payload: SupplierInvoiceResolve,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_role(RoleEnum.ADMIN)),
):
    return run_settlement(
        db,
        lambda s: supplier_payment.resolve_supplier_invoice_dispute(
            s, ctx, invoice_id, resolution=payload.resolution
        ),
        label="resolve_supplier_invoice_dispute",
    )


@router.post("", response_model=SupplierPaymentOut, status_code=status.HTTP_201_CREATED)
def post_supplier_payment(
    payload: SupplierPaymentCreate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return supplier_payment.create_supplier_payment(db, ctx, payload)


@router.delete("/{payment_id}", response_model=SupplierPaymentVoidOut)
def delete_supplier_payment(
    payment_id: UUID,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
) -> SupplierPaymentVoidOut:
    result = supplier_payment.void_supplier_payment(db, ctx, payment_id)
    return SupplierPaymentVoidOut(
        payment_number=result.payment_number,
        amount=result.amount,
        restored_invoices=[SupplierInvoiceOut.model_validate(i) for i in result.restored_invoices],
    )
