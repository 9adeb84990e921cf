"""Petty cash ("Caja Chica"): one fund per tenant, created on first use.

Movement types:

* ``INCOME`` / ``EXPENSE``: money in or out of the fund itself.
* ``TRANSFER_OUT``: fund to a treasury account (account records RECEIVED).
* ``TRANSFER_IN``: treasury account to the fund (account records RETURNED).
"""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.models.mixins import MovementType
from backend.app.models.treasury import PettyCashFund, PettyCashMovement
from backend.app.services import ledger
from backend.app.services.audit import log_action

logger = logging.getLogger(__name__)

DEFAULT_FUND_NAME = "Caja Chica"

MOVEMENT_TYPES = frozenset(
    {
        MovementType.INCOME,
        MovementType.EXPENSE,
        MovementType.TRANSFER_IN,
        MovementType.TRANSFER_OUT,
    }
)


def get_or_create_fund(db: Session, *, tenant_id: UUID) -> PettyCashFund:
    fund = (
        db.query(PettyCashFund)
        .filter(PettyCashFund.tenant_id == tenant_id)
        .with_for_update()
        .first()
    )
    if fund is None:
        fund = PettyCashFund(
            tenant_id=tenant_id, name=DEFAULT_FUND_NAME, current_balance=Decimal("0")
        )
        db.add(fund)
        db.flush()
        logger.info("Created petty cash fund %s for tenant %s", fund.id, tenant_id)
    return fund


def list_movements(
    db: Session, *, tenant_id: UUID, limit: int = 50
) -> tuple[PettyCashFund, list[PettyCashMovement]]:
    fund = get_or_create_fund(db, tenant_id=tenant_id)
    movements = (
        db.query(PettyCashMovement)
        .filter(PettyCashMovement.petty_cash_fund_id == fund.id)
        .order_by(PettyCashMovement.created_at.desc())
        .limit(limit)
        .all()
    )
    return fund, movements


def record_movement(
    db: Session,
    ctx: SessionContext,
    *,
    movement_type: MovementType,
    amount: Decimal,
    concept: str,
    reference: str | None = None,
    cash_account_id: UUID | None = None,
) -> PettyCashMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"Invalid petty cash movement type: {movement_type.value}")
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")
    if not concept:
        raise ValueError("Concept is required")

    fund = get_or_create_fund(db, tenant_id=ctx.tenant_id)

    if movement_type in (MovementType.INCOME, MovementType.EXPENSE):
        signed = amount if movement_type == MovementType.INCOME else -amount
        movement = ledger.apply_delta(
            db,
            fund,
            signed,
            movement_type,
            concept,
            user_id=ctx.user_id,
            reference=reference,
        )
    else:
        if cash_account_id is None:
            raise ValueError("Transfers require a cash account")
        cash_account = ledger.load_ledger(
            db, ledger.CASH_ACCOUNT, cash_account_id, tenant_id=ctx.tenant_id
        )
        if movement_type == MovementType.TRANSFER_OUT:
            transfer = ledger.transfer_funds(
                db,
                fund,
                cash_account,
                amount,
                concept,
                user_id=ctx.user_id,
                reference=reference,
                in_type=MovementType.RECEIVED,
                out_links={"cash_account_id": cash_account.id},
            )
            movement = transfer.outgoing
        else:
            transfer = ledger.transfer_funds(
                db,
                cash_account,
                fund,
                amount,
                concept,
                user_id=ctx.user_id,
                reference=reference,
                out_type=MovementType.RETURNED,
                in_links={"cash_account_id": cash_account.id},
            )
            movement = transfer.incoming

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action=f"PETTY_CASH_{movement_type.value}",
        resource_type="petty_cash_funds",
        resource_id=str(fund.id),
        changes={"amount": amount, "concept": concept, "balance": fund.current_balance},
        ip_address=ctx.ip_address,
    )
    return movement
