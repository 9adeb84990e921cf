from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.core.exceptions import InvalidStatusTransition
from backend.app.models.mixins import MovementType
from backend.app.models.treasury import (
    CashAccount,
    CashAccountMovement,
    CashAccountType,
    CashRegister,
    PaymentMethod,
    PaymentMethodAccount,
    RegisterStatus,
)
from backend.app.services import ledger
from backend.app.services.audit import log_action
from backend.app.services.payments import NON_CASH_METHODS
from backend.app.services.petty_cash import get_or_create_fund

logger = logging.getLogger(__name__)

MANUAL_MOVEMENT_TYPES = frozenset(
    {MovementType.INCOME, MovementType.EXPENSE, MovementType.DEPOSIT, MovementType.WITHDRAWAL}
)


# ─── Accounts ─────────────────────────────────────────────────────────────────


def create_cash_account(
    db: Session,
    ctx: SessionContext,
    *,
    name: str,
    account_type: CashAccountType,
    description: str | None = None,
    opening_balance: Decimal = Decimal("0"),
) -> CashAccount:
    exists = (
        db.query(CashAccount)
        .filter(CashAccount.tenant_id == ctx.tenant_id, CashAccount.name == name)
        .first()
    )
    if exists:
        raise ValueError(f"Cash account '{name}' already exists")
    if opening_balance < 0:
        raise ValueError("Opening balance cannot be negative")

    account = CashAccount(
        tenant_id=ctx.tenant_id,
        name=name,
        type=account_type,
        description=description,
        current_balance=Decimal("0"),
    )
    db.add(account)
    db.flush()
    if opening_balance > 0:
        ledger.apply_delta(
            db,
            account,
            opening_balance,
            MovementType.OPENING,
            "Opening balance",
            user_id=ctx.user_id,
        )

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CASH_ACCOUNT_CREATED",
        resource_type="cash_accounts",
        resource_id=str(account.id),
        changes={"name": name, "type": account_type.value, "opening_balance": opening_balance},
        ip_address=ctx.ip_address,
    )
    return account


def record_account_movement(
    db: Session,
    ctx: SessionContext,
    cash_account_id: UUID,
    *,
    movement_type: MovementType,
    amount: Decimal,
    concept: str,
    reference: str | None = None,
) -> CashAccountMovement:
    """Manual income/expense/deposit/withdrawal on a treasury account."""
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValueError(f"Invalid movement type: {movement_type.value}")
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")

    account = ledger.load_ledger(db, ledger.CASH_ACCOUNT, cash_account_id, tenant_id=ctx.tenant_id)
    inbound = movement_type in (MovementType.INCOME, MovementType.DEPOSIT)
    movement = ledger.apply_delta(
        db,
        account,
        amount if inbound else -amount,
        movement_type,
        concept,
        user_id=ctx.user_id,
        reference=reference,
    )
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action=f"CASH_ACCOUNT_{movement_type.value}",
        resource_type="cash_accounts",
        resource_id=str(account.id),
        changes={"amount": amount, "concept": concept, "balance": account.current_balance},
        ip_address=ctx.ip_address,
    )
    return movement


def set_payment_method_account(
    db: Session, ctx: SessionContext, method: PaymentMethod, cash_account_id: UUID
) -> PaymentMethodAccount:
    if method not in NON_CASH_METHODS:
        raise ValueError(f"{method.value} payments are not routed to a treasury account")
    ledger.load_ledger(db, ledger.CASH_ACCOUNT, cash_account_id, tenant_id=ctx.tenant_id)

    mapping = (
        db.query(PaymentMethodAccount)
        .filter(
            PaymentMethodAccount.tenant_id == ctx.tenant_id,
            PaymentMethodAccount.payment_method == method,
        )
        .first()
    )
    if mapping is None:
        mapping = PaymentMethodAccount(
            tenant_id=ctx.tenant_id, payment_method=method, cash_account_id=cash_account_id
        )
        db.add(mapping)
    else:
        mapping.cash_account_id = cash_account_id
    db.flush()
    return mapping


# ─── Transfers ────────────────────────────────────────────────────────────────


def transfer_between_accounts(
    db: Session,
    ctx: SessionContext,
    *,
    from_account_id: UUID,
    to_account_id: UUID,
    amount: Decimal,
    concept: str,
    reference: str | None = None,
) -> ledger.TransferResult:
    if from_account_id == to_account_id:
        raise ValueError("Source and destination must be different")
    source = ledger.load_ledger(db, ledger.CASH_ACCOUNT, from_account_id, tenant_id=ctx.tenant_id)
    destination = ledger.load_ledger(
        db, ledger.CASH_ACCOUNT, to_account_id, tenant_id=ctx.tenant_id
    )
    result = ledger.transfer_funds(
        db,
        source,
        destination,
        amount,
        concept,
        user_id=ctx.user_id,
        reference=reference,
        out_links={"related_account_id": destination.id},
        in_links={"related_account_id": source.id},
    )
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CASH_ACCOUNT_TRANSFER",
        resource_type="cash_accounts",
        resource_id=str(source.id),
        changes={
            "to_account_id": destination.id,
            "amount": amount,
            "correlation_id": result.correlation_id,
        },
        ip_address=ctx.ip_address,
    )
    return result


def _open_register(db: Session, ctx: SessionContext, register_id: UUID) -> CashRegister:
    register = ledger.load_ledger(db, ledger.CASH_REGISTER, register_id, tenant_id=ctx.tenant_id)
    if register.status != RegisterStatus.OPEN:
        raise InvalidStatusTransition("Cash register", register.status.value, "TRANSFER")
    return register


def transfer_register_to_petty_cash(
    db: Session,
    ctx: SessionContext,
    register_id: UUID,
    *,
    amount: Decimal,
    notes: str | None = None,
) -> ledger.TransferResult:
    register = _open_register(db, ctx, register_id)
    fund = get_or_create_fund(db, tenant_id=ctx.tenant_id)
    result = ledger.transfer_funds(
        db,
        register,
        fund,
        amount,
        notes or f"Transfer from register {register.name}",
        user_id=ctx.user_id,
    )
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="REGISTER_TO_PETTY_CASH",
        resource_type="cash_registers",
        resource_id=str(register.id),
        changes={"amount": amount, "correlation_id": result.correlation_id},
        ip_address=ctx.ip_address,
    )
    return result


def transfer_register_to_treasury(
    db: Session,
    ctx: SessionContext,
    register_id: UUID,
    *,
    cash_account_id: UUID,
    amount: Decimal,
    notes: str | None = None,
) -> ledger.TransferResult:
    register = _open_register(db, ctx, register_id)
    account = ledger.load_ledger(db, ledger.CASH_ACCOUNT, cash_account_id, tenant_id=ctx.tenant_id)
    result = ledger.transfer_funds(
        db,
        register,
        account,
        amount,
        notes or f"Deposit from register {register.name}",
        user_id=ctx.user_id,
        in_type=MovementType.DEPOSIT,
    )
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="REGISTER_TO_TREASURY",
        resource_type="cash_registers",
        resource_id=str(register.id),
        changes={
            "cash_account_id": account.id,
            "amount": amount,
            "correlation_id": result.correlation_id,
        },
        ip_address=ctx.ip_address,
    )
    return result
