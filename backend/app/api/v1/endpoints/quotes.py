from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.deps import get_session_context
from backend.app.core.context import SessionContext
from backend.app.core.database import get_db
from backend.app.schemas.quotes import (
    QuoteConversionOut,
    QuoteConvert,
    QuoteCreate,
    QuoteItemsIn,
    QuoteOut,
    QuoteStatusUpdate,
)
from backend.app.schemas.sales import InvoiceOut, SaleOut
from backend.app.services import quotes as quote_service
from backend.app.services.unit_of_work import run_settlement

router = APIRouter()


@router.post("", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
def post_quote(
    payload: QuoteCreate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return run_settlement(
        db, lambda s: quote_service.create_quote(s, ctx, payload), label="create_quote"
    )


@router.get("/{quote_id}", response_model=QuoteOut)
def read_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return quote_service.get_quote(db, tenant_id=ctx.tenant_id, quote_id=quote_id)


@router.put("/{quote_id}/items", response_model=QuoteOut)
def put_quote_items(
    quote_id: UUID,
    payload: QuoteItemsIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return run_settlement(
        db,
        lambda s: quote_service.replace_items(s, ctx, quote_id, payload),
        label="replace_quote_items",
    )


@router.patch("/{quote_id}/status", response_model=QuoteOut)
def patch_quote_status(
    quote_id: UUID,
    payload: QuoteStatusUpdate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return run_settlement(
        db,
        lambda s: quote_service.update_status(s, ctx, quote_id, payload.status),
        label="update_quote_status",
    )


@router.post("/{quote_id}/convert", response_model=QuoteConversionOut)
def post_convert_quote(
    quote_id: UUID,
    payload: QuoteConvert | None = None,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
) -> QuoteConversionOut:
    quote, settled = quote_service.convert_quote(db, ctx, quote_id, payload)
    return QuoteConversionOut(
        quote=QuoteOut.model_validate(quote),
        sale=SaleOut.model_validate(settled.sale),
        invoice=InvoiceOut.model_validate(settled.invoice) if settled.invoice else None,
        unmapped_payment_methods=settled.unmapped_methods,
    )
