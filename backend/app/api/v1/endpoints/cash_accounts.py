from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.deps import require_manager
from backend.app.core.context import SessionContext
from backend.app.core.database import get_db
from backend.app.models.treasury import PaymentMethod
from backend.app.schemas.treasury import (
    AccountTransferIn,
    CashAccountCreate,
    CashAccountMovementIn,
    CashAccountOut,
    MovementOut,
    PaymentMethodAccountIn,
    PaymentMethodAccountOut,
    TransferOut,
)
from backend.app.services import treasury
from backend.app.services.unit_of_work import run_settlement

router = APIRouter()


@router.post("", response_model=CashAccountOut, status_code=status.HTTP_201_CREATED)
def post_cash_account(
    payload: CashAccountCreate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return run_settlement(
        db,
        lambda s: treasury.create_cash_account(
            s,
            ctx,
            name=payload.name,
            account_type=payload.type,
            description=payload.description,
            opening_balance=payload.opening_balance,
        ),
        label="create_cash_account",
    )


@router.post(
    "/{account_id}/movements", response_model=MovementOut, status_code=status.HTTP_201_CREATED
)
def post_account_movement(
    account_id: UUID,
    payload: CashAccountMovementIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return run_settlement(
        db,
        lambda s: treasury.record_account_movement(
            s,
            ctx,
            account_id,
            movement_type=payload.type,
            amount=payload.amount,
            concept=payload.concept,
            reference=payload.reference,
        ),
        label="cash_account_movement",
    )


@router.post("/transfer", response_model=TransferOut, status_code=status.HTTP_201_CREATED)
def post_transfer(
    payload: AccountTransferIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
) -> TransferOut:
    result = run_settlement(
        db,
        lambda s: treasury.transfer_between_accounts(
            s,
            ctx,
            from_account_id=payload.from_account_id,
            to_account_id=payload.to_account_id,
            amount=payload.amount,
            concept=payload.concept,
            reference=payload.reference,
        ),
        label="cash_account_transfer",
    )
    return TransferOut(
        correlation_id=result.correlation_id,
        outgoing=MovementOut.model_validate(result.outgoing),
        incoming=MovementOut.model_validate(result.incoming),
    )


@router.put("/payment-methods/{method}", response_model=PaymentMethodAccountOut)
def put_payment_method_account(
    method: PaymentMethod,
    payload: PaymentMethodAccountIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return run_settlement(
        db,
        lambda s: treasury.set_payment_method_account(s, ctx, method, payload.cash_account_id),
        label="map_payment_method",
    )
