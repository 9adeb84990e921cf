from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.context import SessionContext
from backend.app.core.exceptions import (
    InsufficientFunds,
    InvalidStatusTransition,
    NoOpenRegister,
    NotFound,
    RegisterClosed,
    WithdrawalLimitExceeded,
)
from backend.app.models.mixins import MovementType
from backend.app.models.organization import Location, RoleEnum
from backend.app.models.treasury import (
    CashAccountMovement,
    CashRegister,
    CashRegisterMovement,
    CashWithdrawal,
    RegisterStatus,
    WithdrawalReason,
)
from backend.app.services import ledger
from backend.app.services.audit import log_action

logger = logging.getLogger(__name__)

REGISTER_MOVEMENT_TYPES = frozenset({MovementType.INCOME, MovementType.EXPENSE})


def resolve_open_register(
    db: Session, *, tenant_id: UUID, location_id: UUID | None
) -> CashRegister:
    """Open register at the caller's location, else any open one of the tenant."""
    base = db.query(CashRegister).filter(
        CashRegister.tenant_id == tenant_id,
        CashRegister.status == RegisterStatus.OPEN,
    )
    register = None
    if location_id is not None:
        register = (
            base.filter(CashRegister.location_id == location_id)
            .order_by(CashRegister.opened_at.desc())
            .with_for_update()
            .first()
        )
    if register is None:
        register = base.order_by(CashRegister.opened_at.desc()).with_for_update().first()
    if register is None:
        raise NoOpenRegister()
    return register


def open_register(
    db: Session,
    ctx: SessionContext,
    *,
    location_id: UUID,
    name: str,
    opening_balance: Decimal = Decimal("0"),
) -> CashRegister:
    if opening_balance < 0:
        raise ValueError("Opening balance cannot be negative")
    location = (
        db.query(Location)
        .filter(Location.id == location_id, Location.tenant_id == ctx.tenant_id)
        .first()
    )
    if location is None:
        raise NotFound("Location", location_id)

    register = CashRegister(
        tenant_id=ctx.tenant_id,
        location_id=location_id,
        name=name,
        status=RegisterStatus.OPEN,
        opening_balance=opening_balance,
        current_balance=Decimal("0"),
        opened_by=ctx.user_id,
        opened_at=datetime.now(timezone.utc),
    )
    db.add(register)
    db.flush()

    if opening_balance > 0:
        ledger.apply_delta(
            db,
            register,
            opening_balance,
            MovementType.OPENING,
            "Opening balance",
            user_id=ctx.user_id,
        )

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CASH_REGISTER_OPENED",
        resource_type="cash_registers",
        resource_id=str(register.id),
        changes={"location_id": location_id, "opening_balance": opening_balance},
        ip_address=ctx.ip_address,
    )
    return register


def close_register(
    db: Session,
    ctx: SessionContext,
    register_id: UUID,
    *,
    counted_amount: Decimal,
    notes: str | None = None,
) -> CashRegister:
    """Close the till, recording the counted cash against the book balance."""
    register = ledger.load_ledger(
        db, ledger.CASH_REGISTER, register_id, tenant_id=ctx.tenant_id
    )
    if register.status != RegisterStatus.OPEN:
        raise InvalidStatusTransition(
            "Cash register", register.status.value, RegisterStatus.CLOSED.value
        )

    register.status = RegisterStatus.CLOSED
    register.closing_balance = counted_amount
    register.difference = counted_amount - register.current_balance
    register.notes = notes
    register.closed_by = ctx.user_id
    register.closed_at = datetime.now(timezone.utc)

    if register.difference != 0:
        logger.warning(
            "Register %s closed with difference %s (book %s, counted %s)",
            register.id,
            register.difference,
            register.current_balance,
            counted_amount,
        )

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CASH_REGISTER_CLOSED",
        resource_type="cash_registers",
        resource_id=str(register.id),
        changes={
            "book_balance": register.current_balance,
            "counted": counted_amount,
            "difference": register.difference,
        },
        ip_address=ctx.ip_address,
    )
    db.flush()
    return register


def _load_open_register(db: Session, ctx: SessionContext, register_id: UUID) -> CashRegister:
    register = ledger.load_ledger(
        db, ledger.CASH_REGISTER, register_id, tenant_id=ctx.tenant_id
    )
    if register.status != RegisterStatus.OPEN:
        raise RegisterClosed(register.id)
    return register


# ─── Manual transactions ──────────────────────────────────────────────────────


def record_register_movement(
    db: Session,
    ctx: SessionContext,
    register_id: UUID,
    *,
    movement_type: MovementType,
    amount: Decimal,
    concept: str,
    reference: str | None = None,
) -> CashRegisterMovement:
    """Manual cash income or expense on an open register."""
    if movement_type not in REGISTER_MOVEMENT_TYPES:
        raise ValueError(f"Invalid movement type: {movement_type.value}")
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")

    register = _load_open_register(db, ctx, register_id)
    movement = ledger.apply_delta(
        db,
        register,
        amount if movement_type == MovementType.INCOME else -amount,
        movement_type,
        concept,
        user_id=ctx.user_id,
        reference=reference,
    )
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action=f"CASH_REGISTER_{movement_type.value}",
        resource_type="cash_registers",
        resource_id=str(register.id),
        changes={"amount": amount, "concept": concept, "balance": register.current_balance},
        ip_address=ctx.ip_address,
    )
    return movement


def list_register_movements(
    db: Session, *, tenant_id: UUID, register_id: UUID
) -> list[CashRegisterMovement]:
    register = ledger.load_ledger(
        db, ledger.CASH_REGISTER, register_id, tenant_id=tenant_id, require_active=False
    )
    return (
        db.query(CashRegisterMovement)
        .filter(CashRegisterMovement.cash_register_id == register.id)
        .order_by(CashRegisterMovement.created_at)
        .all()
    )


# ─── Withdrawals ──────────────────────────────────────────────────────────────


def withdrawal_limit(role: str) -> Decimal | None:
    if role == RoleEnum.CASHIER.value:
        return settings.CASHIER_WITHDRAWAL_LIMIT
    if role == RoleEnum.MANAGER.value:
        return settings.MANAGER_WITHDRAWAL_LIMIT
    return None


def next_withdrawal_number(db: Session, *, tenant_id: UUID, on: date) -> str:
    """``WD-YYYYMMDD-NNN``, numbered per tenant and day."""
    prefix = f"WD-{on:%Y%m%d}-"
    suffix = cast(func.substr(CashWithdrawal.withdrawal_number, len(prefix) + 1), Integer)
    current = (
        db.query(func.max(suffix))
        .filter(
            CashWithdrawal.tenant_id == tenant_id,
            CashWithdrawal.withdrawal_number.like(f"{prefix}%"),
        )
        .scalar()
    )
    return f"{prefix}{int(current or 0) + 1:03d}"


def withdraw_cash(
    db: Session,
    ctx: SessionContext,
    register_id: UUID,
    *,
    amount: Decimal,
    reason: WithdrawalReason,
    concept: str,
    recipient_name: str,
    destination_account_id: UUID | None = None,
    reference: str | None = None,
) -> CashWithdrawal:
    """Take cash out of an open register.

    With ``destination_account_id`` the same amount lands in that treasury
    account as ``RECEIVED``; both movements share the withdrawal's
    correlation id.
    """
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")
    limit = withdrawal_limit(ctx.role)
    if limit is not None and amount > limit:
        raise WithdrawalLimitExceeded(ctx.role, limit, amount)

    register = _load_open_register(db, ctx, register_id)
    destination = None
    if destination_account_id is not None:
        destination = ledger.load_ledger(
            db, ledger.CASH_ACCOUNT, destination_account_id, tenant_id=ctx.tenant_id
        )

    now = datetime.now(timezone.utc)
    number = next_withdrawal_number(db, tenant_id=ctx.tenant_id, on=now.date())
    correlation_id = ledger.new_correlation_id("WD")
    withdrawal = CashWithdrawal(
        tenant_id=ctx.tenant_id,
        cash_register_id=register.id,
        destination_account_id=destination.id if destination else None,
        withdrawal_number=number,
        amount=amount,
        reason=reason,
        concept=concept,
        recipient_name=recipient_name,
        reference=reference,
        correlation_id=correlation_id,
        user_id=ctx.user_id,
        withdrawn_at=now,
    )
    db.add(withdrawal)
    db.flush()

    ledger.apply_delta(
        db,
        register,
        -amount,
        MovementType.WITHDRAWAL,
        f"{reason.value}: {concept} - Recipient: {recipient_name}",
        user_id=ctx.user_id,
        reference=number,
        correlation_id=correlation_id,
    )
    if destination is not None:
        ledger.apply_delta(
            db,
            destination,
            amount,
            MovementType.RECEIVED,
            f"Withdrawal from register {register.name}: {concept}",
            user_id=ctx.user_id,
            reference=number,
            correlation_id=correlation_id,
        )

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CASH_WITHDRAWAL_CREATED",
        resource_type="cash_withdrawals",
        resource_id=str(withdrawal.id),
        changes={
            "withdrawal_number": number,
            "register_id": register.id,
            "amount": amount,
            "reason": reason.value,
            "destination_account_id": withdrawal.destination_account_id,
        },
        ip_address=ctx.ip_address,
    )
    logger.info("Withdrawal %s: %s from register %s", number, amount, register.id)
    return withdrawal


def void_withdrawal(db: Session, ctx: SessionContext, withdrawal_id: UUID) -> CashWithdrawal:
    """Reverse a same-day withdrawal while its register is still open."""
    withdrawal = (
        db.query(CashWithdrawal)
        .filter(CashWithdrawal.id == withdrawal_id, CashWithdrawal.tenant_id == ctx.tenant_id)
        .with_for_update()
        .first()
    )
    if withdrawal is None:
        raise NotFound("Cash withdrawal", withdrawal_id)
    if withdrawal.voided_at is not None:
        raise InvalidStatusTransition("Cash withdrawal", "VOIDED", "VOIDED")

    now = datetime.now(timezone.utc)
    if withdrawal.withdrawn_at.date() != now.date():
        raise ValueError("Withdrawals can only be voided on the day they were made")

    _load_open_register(db, ctx, withdrawal.cash_register_id)
    if withdrawal.destination_account_id is not None:
        account = ledger.load_ledger(
            db,
            ledger.CASH_ACCOUNT,
            withdrawal.destination_account_id,
            tenant_id=ctx.tenant_id,
            require_active=False,
        )
        if account.current_balance < withdrawal.amount:
            raise InsufficientFunds(
                ledger.CASH_ACCOUNT.name, account.current_balance, withdrawal.amount
            )

    concept = f"Void of withdrawal {withdrawal.withdrawal_number}"
    for model in (CashRegisterMovement, CashAccountMovement):
        movements = (
            db.query(model)
            .filter(
                model.tenant_id == ctx.tenant_id,
                model.correlation_id == withdrawal.correlation_id,
                model.type != MovementType.REVERSAL,
            )
            .all()
        )
        for movement in movements:
            ledger.void_movement(
                db,
                movement,
                user_id=ctx.user_id,
                concept=concept,
                reference=withdrawal.withdrawal_number,
            )

    withdrawal.voided_at = now
    withdrawal.voided_by = ctx.user_id
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CASH_WITHDRAWAL_VOIDED",
        resource_type="cash_withdrawals",
        resource_id=str(withdrawal.id),
        changes={"withdrawal_number": withdrawal.withdrawal_number, "amount": withdrawal.amount},
        ip_address=ctx.ip_address,
    )
    db.flush()
    logger.info("Withdrawal %s voided", withdrawal.withdrawal_number)
    return withdrawal


def list_withdrawals(
    db: Session, *, tenant_id: UUID, register_id: UUID | None = None
) -> list[CashWithdrawal]:
    query = db.query(CashWithdrawal).filter(CashWithdrawal.tenant_id == tenant_id)
    if register_id is not None:
        query = query.filter(CashWithdrawal.cash_register_id == register_id)
    return query.order_by(CashWithdrawal.withdrawn_at.desc()).all()
