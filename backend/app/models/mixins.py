from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column


def money() -> Numeric:
    return Numeric(precision=20, scale=2)


# ─── Enums ────────────────────────────────────────────────────────────────────


class MovementType(str, enum.Enum):
    OPENING = "OPENING"
    SALE_INCOME = "SALE_INCOME"
    CHARGE = "CHARGE"
    PAYMENT = "PAYMENT"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    WITHDRAWAL = "WITHDRAWAL"
    DEPOSIT = "DEPOSIT"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    RECEIVED = "RECEIVED"
    RETURNED = "RETURNED"
    PURCHASE = "PURCHASE"
    SUPPLIER_PAYMENT = "SUPPLIER_PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"
    REVERSAL = "REVERSAL"


# ─── Ledger ───────────────────────────────────────────────────────────────────


class LedgerMixin:
    """Balance-holding row whose value only moves through its movement table.

    Concrete ledgers declare their own ``version`` column and map it as
    ``version_id_col`` so concurrent writers collide on flush.
    """

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(
        money(), nullable=False, default=Decimal("0")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class MovementMixin:
    """Append-only ledger entry: ``balance_after == balance_before + amount``."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    type: Mapped[MovementType] = mapped_column(Enum(MovementType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(money(), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(money(), nullable=False)
    concept: Mapped[str] = mapped_column(String(255), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
