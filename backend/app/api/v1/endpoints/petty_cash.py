from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.deps import get_session_context, require_manager
from backend.app.core.context import SessionContext
from backend.app.core.database import get_db
from backend.app.schemas.treasury import (
    MovementOut,
    PettyCashFundOut,
    PettyCashMovementIn,
    PettyCashOut,
)
from backend.app.services import petty_cash
from backend.app.services.unit_of_work import run_settlement

router = APIRouter()


@router.get("", response_model=PettyCashOut)
def read_petty_cash(
    limit: int = 50,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
) -> PettyCashOut:
    fund, movements = run_settlement(
        db,
        lambda s: petty_cash.list_movements(s, tenant_id=ctx.tenant_id, limit=limit),
        label="petty_cash_statement",
    )
    return PettyCashOut(
        fund=PettyCashFundOut.model_validate(fund),
        movements=[MovementOut.model_validate(m) for m in movements],
    )


@router.post("/movements", response_model=MovementOut, status_code=status.HTTP_201_CREATED)
def post_petty_cash_movement(
    payload: PettyCashMovementIn,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_manager),
):
    return run_settlement(
        db,
        lambda s: petty_cash.record_movement(
            s,
            ctx,
            movement_type=payload.type,
            amount=payload.amount,
            concept=payload.concept,
            reference=payload.reference,
            cash_account_id=payload.cash_account_id,
        ),
        label="petty_cash_movement",
    )
