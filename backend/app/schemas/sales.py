from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator

from backend.app.models.sales import DiscountType, SaleStatus
from backend.app.models.treasury import PaymentMethod


# ─── Request ──────────────────────────────────────────────────────────────────


class PaymentEntryIn(BaseModel):
    method: PaymentMethod
    amount: Decimal
    reference: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Payment amount must be greater than zero")
        return v


class LineItemIn(BaseModel):
    product_id: UUID
    product_variant_id: UUID | None = None
    quantity: int
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    # Older clients send a plain percentage.
    discount: Decimal | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v

    @model_validator(mode="after")
    def normalize_discount(self) -> "LineItemIn":
        if self.discount_type is None and self.discount:
            self.discount_type = DiscountType.PERCENTAGE
            self.discount_value = self.discount
        if self.discount_value is not None and self.discount_value < 0:
            raise ValueError("Discount value cannot be negative")
        return self


class DocumentDiscountMixin(BaseModel):
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    # Older clients send a fixed amount.
    discount_amount: Decimal | None = None

    @model_validator(mode="after")
    def normalize_discount(self) -> "DocumentDiscountMixin":
        if self.discount_type is None and self.discount_amount:
            self.discount_type = DiscountType.FIXED
            self.discount_value = self.discount_amount
        if self.discount_type and not self.discount_value:
            raise ValueError("discount_value is required when discount_type is set")
        if self.discount_value is not None and self.discount_value < 0:
            raise ValueError("Discount value cannot be negative")
        return self


class SaleCreate(DocumentDiscountMixin):
    items: list[LineItemIn]
    customer_id: UUID | None = None
    payments: list[PaymentEntryIn] | None = None
    payment_method: PaymentMethod | None = None
    notes: str | None = None

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[LineItemIn]) -> list[LineItemIn]:
        if not v:
            raise ValueError("Sale must contain at least one item")
        return v


# ─── Response ─────────────────────────────────────────────────────────────────


class SaleItemOut(BaseModel):
    id: UUID
    product_id: UUID
    product_variant_id: UUID | None
    description: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class SalePaymentOut(BaseModel):
    method: PaymentMethod
    amount: Decimal
    reference: str | None

    class Config:
        from_attributes = True


class InvoiceOut(BaseModel):
    id: UUID
    invoice_letter: str
    voucher_type: int
    point_of_sale: int
    number: int
    cae: str
    cae_expiration: date
    total: Decimal

    class Config:
        from_attributes = True


class SaleOut(BaseModel):
    id: UUID
    sale_number: str
    status: SaleStatus
    location_id: UUID
    cash_register_id: UUID
    customer_id: UUID | None
    subtotal: Decimal
    tax_amount: Decimal
    discount_type: DiscountType | None
    discount_value: Decimal
    discount_amount: Decimal
    total: Decimal
    notes: str | None
    created_at: datetime | None
    items: list[SaleItemOut]
    payments: list[SalePaymentOut]

    class Config:
        from_attributes = True


class SaleSettlementOut(BaseModel):
    sale: SaleOut
    invoice: InvoiceOut | None = None
    unmapped_payment_methods: list[PaymentMethod] = []
