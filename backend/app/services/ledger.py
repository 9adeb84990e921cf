"""Balance-holding ledgers: customer accounts, treasury accounts, cash
registers, petty cash and supplier accounts.

A ledger balance only changes through ``apply_delta``, which writes the new
balance and a movement recording ``balance_before`` / ``balance_after`` in
the same flush. Voids never edit history: they post the negated amount as a
``REVERSAL`` movement and delete the booking they undo.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Union
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.exceptions import (
    AccountInactive,
    CreditLimitExceeded,
    InsufficientFunds,
    NotFound,
)
from backend.app.models.customer import CustomerAccount, CustomerAccountMovement
from backend.app.models.mixins import MovementType
from backend.app.models.supplier import SupplierAccount, SupplierAccountMovement
from backend.app.models.treasury import (
    CashAccount,
    CashAccountMovement,
    CashRegister,
    CashRegisterMovement,
    PettyCashFund,
    PettyCashMovement,
)

logger = logging.getLogger(__name__)

Ledger = Union[CustomerAccount, CashAccount, CashRegister, PettyCashFund, SupplierAccount]
Movement = Union[
    CustomerAccountMovement,
    CashAccountMovement,
    CashRegisterMovement,
    PettyCashMovement,
    SupplierAccountMovement,
]


@dataclass(frozen=True)
class LedgerKind:
    name: str
    model: type
    movement_model: type
    fk: str
    allow_negative: bool


CUSTOMER_ACCOUNT = LedgerKind(
    "Customer account", CustomerAccount, CustomerAccountMovement, "customer_account_id", True
)
CASH_ACCOUNT = LedgerKind(
    "Cash account", CashAccount, CashAccountMovement, "cash_account_id", False
)
CASH_REGISTER = LedgerKind(
    "Cash register", CashRegister, CashRegisterMovement, "cash_register_id", False
)
PETTY_CASH = LedgerKind(
    "Petty cash", PettyCashFund, PettyCashMovement, "petty_cash_fund_id", False
)
SUPPLIER_ACCOUNT = LedgerKind(
    "Supplier account", SupplierAccount, SupplierAccountMovement, "supplier_account_id", True
)

_KINDS = {
    kind.model: kind
    for kind in (CUSTOMER_ACCOUNT, CASH_ACCOUNT, CASH_REGISTER, PETTY_CASH, SUPPLIER_ACCOUNT)
}
_KINDS_BY_MOVEMENT = {kind.movement_model: kind for kind in _KINDS.values()}


def kind_of(ledger: Ledger) -> LedgerKind:
    return _KINDS[type(ledger)]


def new_correlation_id(prefix: str = "TRF") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16].upper()}"


# ─── Loading ──────────────────────────────────────────────────────────────────


def load_ledger(
    db: Session,
    kind: LedgerKind,
    ledger_id: UUID,
    *,
    tenant_id: UUID,
    require_active: bool = True,
) -> Any:
    """Fetch a ledger row scoped to the tenant, locking it where supported."""
    ledger = (
        db.query(kind.model)
        .filter(kind.model.id == ledger_id, kind.model.tenant_id == tenant_id)
        .with_for_update()
        .first()
    )
    if ledger is None:
        raise NotFound(kind.name, ledger_id)
    if require_active and not ledger.is_active:
        raise AccountInactive(kind.name, ledger_id)
    return ledger


# ─── Posting ──────────────────────────────────────────────────────────────────


def apply_delta(
    db: Session,
    ledger: Ledger,
    amount: Decimal,
    movement_type: MovementType,
    concept: str,
    *,
    user_id: UUID | None,
    reference: str | None = None,
    correlation_id: str | None = None,
    enforce_limits: bool = True,
    **links: Any,
) -> Movement:
    """Post a signed ``amount`` to ``ledger`` and return the movement.

    ``links`` are extra foreign keys stored on the movement (``sale_id``,
    ``supplier_payment_id``, ``related_account_id``...). With
    ``enforce_limits`` the credit limit of customer accounts and the
    non-negative floor of treasury ledgers are checked before writing.
    """
    kind = kind_of(ledger)
    if amount == 0:
        raise ValueError("Movement amount cannot be zero")

    before = ledger.current_balance
    after = before + amount

    if enforce_limits and amount < 0:
        if isinstance(ledger, CustomerAccount):
            if ledger.credit_limit > 0 and after < -ledger.credit_limit:
                raise CreditLimitExceeded(ledger.credit_limit, before, -amount)
        elif not kind.allow_negative and after < 0:
            raise InsufficientFunds(kind.name, before, -amount)

    ledger.current_balance = after
    movement = kind.movement_model(
        tenant_id=ledger.tenant_id,
        type=movement_type,
        amount=amount,
        balance_before=before,
        balance_after=after,
        concept=concept,
        reference=reference,
        correlation_id=correlation_id,
        user_id=user_id,
        **{kind.fk: ledger.id},
        **links,
    )
    db.add(movement)
    db.flush()
    logger.debug(
        "%s %s: %s %s -> %s", kind.name, ledger.id, movement_type.value, before, after
    )
    return movement


def void_movement(
    db: Session,
    movement: Movement,
    *,
    user_id: UUID | None,
    concept: str | None = None,
    reference: str | None = None,
) -> Movement:
    """Undo ``movement``: post its negated amount and delete the original."""
    kind = _KINDS_BY_MOVEMENT[type(movement)]
    ledger = (
        db.query(kind.model)
        .filter(kind.model.id == getattr(movement, kind.fk))
        .with_for_update()
        .one()
    )
    reversal = apply_delta(
        db,
        ledger,
        -movement.amount,
        MovementType.REVERSAL,
        concept or f"Reversal: {movement.concept}",
        user_id=user_id,
        reference=reference or movement.reference,
        correlation_id=movement.correlation_id,
        enforce_limits=False,
    )
    db.delete(movement)
    db.flush()
    return reversal


# ─── Transfers ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TransferResult:
    correlation_id: str
    outgoing: Movement
    incoming: Movement


def transfer_funds(
    db: Session,
    source: Ledger,
    destination: Ledger,
    amount: Decimal,
    concept: str,
    *,
    user_id: UUID | None,
    reference: str | None = None,
    out_type: MovementType = MovementType.TRANSFER_OUT,
    in_type: MovementType = MovementType.TRANSFER_IN,
    out_links: dict[str, Any] | None = None,
    in_links: dict[str, Any] | None = None,
) -> TransferResult:
    """Move ``amount`` between two ledgers of the same tenant.

    Both movements share one correlation id; the source side is checked
    against its floor before either is written.
    """
    if amount <= 0:
        raise ValueError("Transfer amount must be greater than zero")
    if type(source) is type(destination) and source.id == destination.id:
        raise ValueError("Source and destination must be different")
    if source.tenant_id != destination.tenant_id:
        raise ValueError("Source and destination belong to different tenants")
    for ledger in (source, destination):
        if not ledger.is_active:
            raise AccountInactive(kind_of(ledger).name, ledger.id)

    correlation_id = new_correlation_id()
    outgoing = apply_delta(
        db,
        source,
        -amount,
        out_type,
        concept,
        user_id=user_id,
        reference=reference or correlation_id,
        correlation_id=correlation_id,
        **(out_links or {}),
    )
    incoming = apply_delta(
        db,
        destination,
        amount,
        in_type,
        concept,
        user_id=user_id,
        reference=reference or correlation_id,
        correlation_id=correlation_id,
        **(in_links or {}),
    )
    logger.info(
        "Transfer %s: %s from %s %s to %s %s",
        correlation_id,
        amount,
        kind_of(source).name,
        source.id,
        kind_of(destination).name,
        destination.id,
    )
    return TransferResult(correlation_id=correlation_id, outgoing=outgoing, incoming=incoming)
