from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator

from backend.app.models.quotes import QuoteStatus
from backend.app.models.sales import DiscountType
from backend.app.models.treasury import PaymentMethod
from backend.app.schemas.sales import (
    DocumentDiscountMixin,
    InvoiceOut,
    LineItemIn,
    PaymentEntryIn,
    SaleOut,
)


# ─── Request ──────────────────────────────────────────────────────────────────


class QuoteItemsIn(DocumentDiscountMixin):
    items: list[LineItemIn]

    @field_validator("items")
    @classmethod
    def at_least_one(cls, v: list[LineItemIn]) -> list[LineItemIn]:
        if not v:
            raise ValueError("Quote must have at least one item")
        return v


class QuoteCreate(QuoteItemsIn):
    customer_id: UUID | None = None
    valid_until: date | None = None
    notes: str | None = None


class QuoteStatusUpdate(BaseModel):
    status: QuoteStatus

    @field_validator("status")
    @classmethod
    def not_converted(cls, v: QuoteStatus) -> QuoteStatus:
        if v == QuoteStatus.CONVERTED:
            raise ValueError("Use the convert endpoint to convert a quote")
        return v


class QuoteConvert(BaseModel):
    payments: list[PaymentEntryIn] | None = None
    payment_method: PaymentMethod | None = None
    notes: str | None = None


# ─── Response ─────────────────────────────────────────────────────────────────


class QuoteItemOut(BaseModel):
    id: UUID
    product_id: UUID
    product_variant_id: UUID | None
    description: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal
    discount_type: DiscountType | None
    discount_value: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class QuoteOut(BaseModel):
    id: UUID
    quote_number: str
    status: QuoteStatus
    customer_id: UUID | None
    location_id: UUID | None
    subtotal: Decimal
    tax_amount: Decimal
    discount_type: DiscountType | None
    discount_value: Decimal
    discount_amount: Decimal
    total: Decimal
    valid_until: date | None
    notes: str | None
    converted_to_sale_id: UUID | None
    created_at: datetime | None
    items: list[QuoteItemOut]

    class Config:
        from_attributes = True


class QuoteConversionOut(BaseModel):
    quote: QuoteOut
    sale: SaleOut
    invoice: InvoiceOut | None = None
    unmapped_payment_methods: list[PaymentMethod] = []
