from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.deps import get_session_context, require_manager
from backend.app.core.context import SessionContext
from backend.app.core.database import get_db
from backend.app.schemas.customer import (
    AccountAdjustmentIn,
    AccountChargeIn,
    AccountPaymentIn,
    AccountStatementOut,
    AccountUpdate,
    CustomerAccountOut,
)
from backend.app.schemas.treasury import MovementOut
from backend.app.services import customer_accounts
from backend.app.services.unit_of_work import run_settlement

router = APIRouter()


@router.get("/{customer_id}/account", response_model=AccountStatementOut)
def read_account(
    customer_id: UUID,
    limit: int = 50,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
) -> AccountStatementOut:
    account, movements = run_settlement(
        db,
        lambda s: customer_accounts.get_account_statement(
            s, tenant_id=ctx.tenant_id, customer_id=customer_id, limit=limit
        ),
        label="account_statement",
    )
    return AccountStatementOut(
        account=CustomerAccountOut.model_validate(account),
        movements=[MovementOut.model_validate(m) for m in movements],
    )


@router.patch("/{customer_id}/account", response_model=CustomerAccountOut)
def patch_account(
    customer_id: UUID,
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return run_settlement(
        db,
        lambda s: customer_accounts.update_account(
            s, ctx, customer_id, credit_limit=payload.credit_limit, is_active=payload.is_active
        ),
        label="update_customer_account",
    )


@router.post(
    "/{customer_id}/account/payments",
    response_model=MovementOut,
    status_code=status.HTTP_201_CREATED,
)
def post_account_payment(
    customer_id: UUID,
    payload: AccountPaymentIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return run_settlement(
        db,
        lambda s: customer_accounts.record_account_payment(
            s,
            ctx,
            customer_id,
            payload.amount,
            cash_account_id=payload.cash_account_id,
            notes=payload.notes,
        ),
        label="customer_account_payment",
    )


@router.post(
    "/{customer_id}/account/charges",
    response_model=MovementOut,
    status_code=status.HTTP_201_CREATED,
)
def post_account_charge(
    customer_id: UUID,
    payload: AccountChargeIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return run_settlement(
        db,
        lambda s: customer_accounts.charge_account(
            s,
            ctx,
            customer_id,
            payload.amount,
            concept=payload.concept,
            reference=payload.reference,
        ),
        label="customer_account_charge",
    )


@router.post(
    "/{customer_id}/account/adjustments",
    response_model=MovementOut,
    status_code=status.HTTP_201_CREATED,
)
def post_account_adjustment(
    customer_id: UUID,
    payload: AccountAdjustmentIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return run_settlement(
        db,
        lambda s: customer_accounts.adjust_account(
            s, ctx, customer_id, payload.amount, concept=payload.concept
        ),
        label="customer_account_adjustment",
    )
