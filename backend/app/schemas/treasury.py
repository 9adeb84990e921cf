from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator

from backend.app.models.mixins import MovementType
from backend.app.models.treasury import (
    CashAccountType,
    PaymentMethod,
    RegisterStatus,
    WithdrawalReason,
)


class _PositiveAmount(BaseModel):
    amount: Decimal

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Amount must be greater than zero")
        return v


# ─── Movements ────────────────────────────────────────────────────────────────


class MovementOut(BaseModel):
    id: UUID
    type: MovementType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    concept: str
    reference: str | None
    correlation_id: str | None
    created_at: datetime | None

    class Config:
        from_attributes = True


class TransferOut(BaseModel):
    correlation_id: str
    outgoing: MovementOut
    incoming: MovementOut


# ─── Cash accounts ────────────────────────────────────────────────────────────


class CashAccountCreate(BaseModel):
    name: str
    type: CashAccountType = CashAccountType.BANK
    description: str | None = None
    opening_balance: Decimal = Decimal("0")

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class CashAccountOut(BaseModel):
    id: UUID
    name: str
    type: CashAccountType
    description: str | None
    current_balance: Decimal
    is_active: bool

    class Config:
        from_attributes = True


class CashAccountMovementIn(_PositiveAmount):
    type: MovementType
    concept: str
    reference: str | None = None


class AccountTransferIn(_PositiveAmount):
    from_account_id: UUID
    to_account_id: UUID
    concept: str = "Transfer between accounts"
    reference: str | None = None


class PaymentMethodAccountIn(BaseModel):
    cash_account_id: UUID


class PaymentMethodAccountOut(BaseModel):
    payment_method: PaymentMethod
    cash_account_id: UUID

    class Config:
        from_attributes = True


# ─── Cash registers ───────────────────────────────────────────────────────────


class RegisterOpen(BaseModel):
    location_id: UUID
    name: str = "Caja"
    opening_balance: Decimal = Decimal("0")


class RegisterClose(BaseModel):
    counted_amount: Decimal
    notes: str | None = None

    @field_validator("counted_amount")
    @classmethod
    def counted_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Counted amount cannot be negative")
        return v


class RegisterTransferIn(_PositiveAmount):
    notes: str | None = None


class RegisterToTreasuryIn(RegisterTransferIn):
    cash_account_id: UUID


class RegisterMovementIn(_PositiveAmount):
    type: MovementType
    concept: str
    reference: str | None = None


class WithdrawalCreate(_PositiveAmount):
    cash_register_id: UUID
    reason: WithdrawalReason
    concept: str
    recipient_name: str
    destination_account_id: UUID | None = None
    reference: str | None = None

    @field_validator("concept", "recipient_name")
    @classmethod
    def text_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("This field is required")
        return v.strip()


class WithdrawalOut(BaseModel):
    id: UUID
    cash_register_id: UUID
    destination_account_id: UUID | None
    withdrawal_number: str
    amount: Decimal
    reason: WithdrawalReason
    concept: str
    recipient_name: str
    reference: str | None
    withdrawn_at: datetime
    voided_at: datetime | None

    class Config:
        from_attributes = True


class CashRegisterOut(BaseModel):
    id: UUID
    location_id: UUID
    name: str
    status: RegisterStatus
    opening_balance: Decimal
    current_balance: Decimal
    closing_balance: Decimal | None
    difference: Decimal | None
    opened_at: datetime | None
    closed_at: datetime | None

    class Config:
        from_attributes = True


# ─── Petty cash ───────────────────────────────────────────────────────────────


class PettyCashMovementIn(_PositiveAmount):
    type: MovementType
    concept: str
    reference: str | None = None
    cash_account_id: UUID | None = None


class PettyCashFundOut(BaseModel):
    id: UUID
    name: str
    current_balance: Decimal
    is_active: bool

    class Config:
        from_attributes = True


class PettyCashOut(BaseModel):
    fund: PettyCashFundOut
    movements: list[MovementOut]
