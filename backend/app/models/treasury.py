from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base
from backend.app.models.mixins import LedgerMixin, MovementMixin, money


# ─── Enums ────────────────────────────────────────────────────────────────────


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    DEBIT_CARD = "DEBIT_CARD"
    CREDIT_CARD = "CREDIT_CARD"
    TRANSFER = "TRANSFER"
    QR = "QR"
    CHECK = "CHECK"
    ACCOUNT = "ACCOUNT"
    OTHER = "OTHER"


class CashAccountType(str, enum.Enum):
    CASH = "CASH"
    BANK = "BANK"
    DIGITAL_WALLET = "DIGITAL_WALLET"
    OTHER = "OTHER"


class RegisterStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


# ─── Treasury accounts ────────────────────────────────────────────────────────


class CashAccount(LedgerMixin, Base):
    """Treasury account (bank, wallet, safe). Balance may not go negative."""

    __tablename__ = "cash_accounts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[CashAccountType] = mapped_column(
        Enum(CashAccountType), nullable=False, default=CashAccountType.BANK
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_cash_account_tenant_name"),
    )


class CashAccountMovement(MovementMixin, Base):
    __tablename__ = "cash_account_movements"

    cash_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cash_accounts.id"), nullable=False
    )
    related_account_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("cash_accounts.id"), nullable=True
    )
    sale_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("sales.id"), nullable=True)
    supplier_payment_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("supplier_payments.id"), nullable=True
    )

    __table_args__ = (
        Index("ix_cash_account_movements_account", "cash_account_id"),
        Index("ix_cash_account_movements_sale", "sale_id"),
    )


class PaymentMethodAccount(Base):
    """Routes a non-cash payment method to the treasury account it settles in."""

    __tablename__ = "payment_method_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    cash_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cash_accounts.id"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "payment_method", name="uq_payment_method_account"),
    )


# ─── Cash registers ───────────────────────────────────────────────────────────


class CashRegister(LedgerMixin, Base):
    """A till session at a location. Sales need one in OPEN status."""

    __tablename__ = "cash_registers"

    location_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("locations.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[RegisterStatus] = mapped_column(
        Enum(RegisterStatus), nullable=False, default=RegisterStatus.OPEN
    )
    opening_balance: Mapped[Decimal] = mapped_column(
        money(), nullable=False, default=Decimal("0")
    )
    closing_balance: Mapped[Decimal | None] = mapped_column(money(), nullable=True)
    difference: Mapped[Decimal | None] = mapped_column(money(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    opened_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    closed_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_cash_registers_tenant_status", "tenant_id", "status"),
        Index("ix_cash_registers_location", "location_id"),
    )


class CashRegisterMovement(MovementMixin, Base):
    __tablename__ = "cash_register_movements"

    cash_register_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cash_registers.id"), nullable=False
    )
    sale_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("sales.id"), nullable=True)

    __table_args__ = (
        Index("ix_register_movements_register", "cash_register_id"),
        Index("ix_register_movements_sale", "sale_id"),
    )


# ─── Petty cash ───────────────────────────────────────────────────────────────


class PettyCashFund(LedgerMixin, Base):
    """One petty cash fund ("Caja Chica") per tenant, created on first use."""

    __tablename__ = "petty_cash_funds"

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="Caja Chica")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (UniqueConstraint("tenant_id", name="uq_petty_cash_tenant"),)


class PettyCashMovement(MovementMixin, Base):
    __tablename__ = "petty_cash_movements"

    petty_cash_fund_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("petty_cash_funds.id"), nullable=False
    )
    cash_account_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("cash_accounts.id"), nullable=True
    )

    __table_args__ = (Index("ix_petty_cash_movements_fund", "petty_cash_fund_id"),)


# ─── Register withdrawals ─────────────────────────────────────────────────────


class WithdrawalReason(str, enum.Enum):
    BANK_DEPOSIT = "BANK_DEPOSIT"
    PETTY_CASH = "PETTY_CASH"
    OWNER_DRAW = "OWNER_DRAW"
    EXPENSE = "EXPENSE"
    OTHER = "OTHER"


class CashWithdrawal(Base):
    """Cash taken out of an open register, optionally landing in a treasury account.

    Its ledger effects share ``correlation_id``; a void reverses them and
    stamps ``voided_at`` instead of deleting the record.
    """

    __tablename__ = "cash_withdrawals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    cash_register_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cash_registers.id"), nullable=False
    )
    destination_account_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("cash_accounts.id"), nullable=True
    )
    withdrawal_number: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    reason: Mapped[WithdrawalReason] = mapped_column(Enum(WithdrawalReason), nullable=False)
    concept: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    correlation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    withdrawn_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "withdrawal_number", name="uq_withdrawal_tenant_number"),
        CheckConstraint("amount > 0", name="ck_withdrawal_amount_positive"),
        Index("ix_cash_withdrawals_register", "cash_register_id"),
    )
