from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.deps import get_session_context, require_manager
from backend.app.core.context import SessionContext
from backend.app.core.database import get_db
from backend.app.schemas.sales import InvoiceOut, SaleCreate, SaleOut, SaleSettlementOut
from backend.app.services.afip.invoice_service import issue_invoice_for_sale
from backend.app.services.sales import cancel_sale, create_sale, get_sale

router = APIRouter()


@router.post("", response_model=SaleSettlementOut, status_code=status.HTTP_201_CREATED)
def post_sale(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
) -> SaleSettlementOut:
    settled = create_sale(db, ctx, payload)
    return SaleSettlementOut(
        sale=SaleOut.model_validate(settled.sale),
        invoice=InvoiceOut.model_validate(settled.invoice) if settled.invoice else None,
        unmapped_payment_methods=settled.unmapped_methods,
    )


@router.get("/{sale_id}", response_model=SaleOut)
def read_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return get_sale(db, tenant_id=ctx.tenant_id, sale_id=sale_id)


@router.post("/{sale_id}/cancel", response_model=SaleOut)
def post_cancel_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return cancel_sale(db, ctx, sale_id)


@router.post("/{sale_id}/invoice", response_model=InvoiceOut | None)
def post_retry_invoice(
    sale_id: UUID,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    """Issue the fiscal invoice now. Authority errors surface as 502."""
    get_sale(db, tenant_id=ctx.tenant_id, sale_id=sale_id)
    return issue_invoice_for_sale(db, sale_id)
