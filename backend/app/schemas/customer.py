from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator

from backend.app.schemas.treasury import MovementOut


class CustomerAccountOut(BaseModel):
    id: UUID
    customer_id: UUID
    current_balance: Decimal
    credit_limit: Decimal
    is_active: bool

    class Config:
        from_attributes = True


class AccountStatementOut(BaseModel):
    account: CustomerAccountOut
    movements: list[MovementOut]


class AccountPaymentIn(BaseModel):
    amount: Decimal
    cash_account_id: UUID | None = None
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Payment amount must be greater than zero")
        return v


class AccountChargeIn(BaseModel):
    amount: Decimal
    concept: str
    reference: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Charge amount must be greater than zero")
        return v


class AccountAdjustmentIn(BaseModel):
    # Signed: positive credits the customer, negative adds debt.
    amount: Decimal
    concept: str

    @field_validator("amount")
    @classmethod
    def amount_not_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("Adjustment amount cannot be zero")
        return v


class AccountUpdate(BaseModel):
    credit_limit: Decimal | None = None
    is_active: bool | None = None
