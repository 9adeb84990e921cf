from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.deps import get_session_context, require_manager, require_role
from backend.app.core.context import SessionContext
from backend.app.core.database import get_db
from backend.app.models.organization import RoleEnum
from backend.app.schemas.treasury import (
    CashRegisterOut,
    MovementOut,
    RegisterClose,
    RegisterMovementIn,
    RegisterOpen,
    RegisterToTreasuryIn,
    RegisterTransferIn,
    TransferOut,
    WithdrawalCreate,
    WithdrawalOut,
)
from backend.app.services import cash_registers, treasury
from backend.app.services.ledger import TransferResult
from backend.app.services.unit_of_work import run_settlement

router = APIRouter()


def _transfer_out(result: TransferResult) -> TransferOut:
    return TransferOut(
        correlation_id=result.correlation_id,
        outgoing=MovementOut.model_validate(result.outgoing),
        incoming=MovementOut.model_validate(result.incoming),
    )


@router.post("/open", response_model=CashRegisterOut, status_code=status.HTTP_201_CREATED)
def post_open_register(
    payload: RegisterOpen,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return run_settlement(
        db,
        lambda s: cash_registers.open_register(
            s,
            ctx,
            location_id=payload.location_id,
            name=payload.name,
            opening_balance=payload.opening_balance,
        ),
        label="open_register",
    )


@router.post("/{register_id}/close", response_model=CashRegisterOut)
def post_close_register(
    register_id: UUID,
    payload: RegisterClose,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return run_settlement(
        db,
        lambda s: cash_registers.close_register(
            s, ctx, register_id, counted_amount=payload.counted_amount, notes=payload.notes
        ),
        label="close_register",
    )


@router.post("/{register_id}/transfer-to-petty-cash", response_model=TransferOut)
def post_transfer_to_petty_cash(
    register_id: UUID,
    payload: RegisterTransferIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
) -> TransferOut:
    result = run_settlement(
        db,
        lambda s: treasury.transfer_register_to_petty_cash(
            s, ctx, register_id, amount=payload.amount, notes=payload.notes
        ),
        label="register_to_petty_cash",
    )
    return _transfer_out(result)


@router.post("/{register_id}/transfer-to-treasury", response_model=TransferOut)
def post_transfer_to_treasury(
    register_id: UUID,
    payload: RegisterToTreasuryIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
) -> TransferOut:
    result = run_settlement(
        db,
        lambda s: treasury.transfer_register_to_treasury(
            s,
            ctx,
            register_id,
            cash_account_id=payload.cash_account_id,
            amount=payload.amount,
            notes=payload.notes,
        ),
        label="register_to_treasury",
    )
    return _transfer_out(result)


@router.post(
    "/{register_id}/transactions",
    response_model=MovementOut,
    status_code=status.HTTP_201_CREATED,
)
def post_register_transaction(
    register_id: UUID,
    payload: RegisterMovementIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return run_settlement(
        db,
        lambda s: cash_registers.record_register_movement(
            s,
            ctx,
            register_id,
            movement_type=payload.type,
            amount=payload.amount,
            concept=payload.concept,
            reference=payload.reference,
        ),
        label="register_transaction",
    )


@router.get("/{register_id}/transactions", response_model=list[MovementOut])
def read_register_transactions(
    register_id: UUID,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return cash_registers.list_register_movements(
        db, tenant_id=ctx.tenant_id, register_id=register_id
    )


# ─── Withdrawals ──────────────────────────────────────────────────────────────


@router.post("/withdrawals", response_model=WithdrawalOut, status_code=status.HTTP_201_CREATED)
def post_withdrawal(
    payload: WithdrawalCreate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return run_settlement(
        db,
        lambda s: cash_registers.withdraw_cash(
            s,
            ctx,
            payload.cash_register_id,
            amount=payload.amount,
            reason=payload.reason,
            concept=payload.concept,
            recipient_name=payload.recipient_name,
            destination_account_id=payload.destination_account_id,
            reference=payload.reference,
        ),
        label="cash_withdrawal",
    )


@router.get("/withdrawals", response_model=list[WithdrawalOut])
def read_withdrawals(
    register_id: UUID | None = None,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
):
    return cash_registers.list_withdrawals(db, tenant_id=ctx.tenant_id, register_id=register_id)


@router.delete("/withdrawals/{withdrawal_id}", response_model=WithdrawalOut)
def delete_withdrawal(
    withdrawal_id: UUID,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_role(RoleEnum.ADMIN)),
):
    return run_settlement(
        db,
        lambda s: cash_registers.void_withdrawal(s, ctx, withdrawal_id),
        label="void_cash_withdrawal",
    )
