from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator

from backend.app.models.supplier import POStatus, SupplierInvoiceStatus
from backend.app.models.treasury import PaymentMethod


# ─── Supplier invoice ─────────────────────────────────────────────────────────


class SupplierInvoiceCreate(BaseModel):
    supplier_id: UUID
    invoice_number: str
    invoice_date: date
    due_date: date | None = None
    total: Decimal
    purchase_order_id: UUID | None = None

    @field_validator("total")
    @classmethod
    def total_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Invoice total must be greater than zero")
        return v

    @field_validator("invoice_number")
    @classmethod
    def number_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Invoice number is required")
        return v.strip()


class SupplierInvoiceDispute(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Dispute reason is required")
        return v.strip()


class SupplierInvoiceResolve(BaseModel):
    resolution: str

    @field_validator("resolution")
    @classmethod
    def resolution_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Resolution notes are required")
        return v.strip()


class SupplierInvoiceOut(BaseModel):
    id: UUID
    supplier_id: UUID
    invoice_number: str
    invoice_date: date
    due_date: date | None
    total: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: SupplierInvoiceStatus
    paid_date: date | None
    dispute_reason: str | None = None

    class Config:
        from_attributes = True


# ─── Supplier payment ─────────────────────────────────────────────────────────


class AllocationIn(BaseModel):
    invoice_id: UUID
    amount: Decimal

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Amount must be greater than zero")
        return v


class SupplierPaymentCreate(BaseModel):
    supplier_id: UUID
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.TRANSFER
    cash_account_id: UUID | None = None
    payment_date: date | None = None
    reference: str | None = None
    notes: str | None = None
    allocations: list[AllocationIn] = []

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Amount must be greater than zero")
        return v

    @model_validator(mode="after")
    def allocations_within_amount(self) -> "SupplierPaymentCreate":
        allocated = sum((a.amount for a in self.allocations), Decimal("0"))
        if allocated > self.amount:
            raise ValueError(
                f"Allocated amount ({allocated}) exceeds payment amount ({self.amount})"
            )
        if len({a.invoice_id for a in self.allocations}) != len(self.allocations):
            raise ValueError("Each invoice can only be allocated once per payment")
        return self


class AllocationOut(BaseModel):
    invoice_id: UUID
    amount: Decimal

    class Config:
        from_attributes = True


class SupplierPaymentOut(BaseModel):
    id: UUID
    supplier_id: UUID
    payment_number: str
    amount: Decimal
    payment_method: PaymentMethod
    cash_account_id: UUID | None
    payment_date: date
    reference: str | None
    allocations: list[AllocationOut]
    created_at: datetime | None

    class Config:
        from_attributes = True


class SupplierPaymentVoidOut(BaseModel):
    payment_number: str
    amount: Decimal
    restored_invoices: list[SupplierInvoiceOut]


# ─── Purchase Order ───────────────────────────────────────────────────────────


class POItemCreate(BaseModel):
    product_id: UUID
    product_variant_id: UUID | None = None
    quantity: int
    unit_cost: Decimal

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v

    @field_validator("unit_cost")
    @classmethod
    def cost_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Unit cost must be non-negative")
        return v


class POItemOut(BaseModel):
    id: UUID
    product_id: UUID
    product_variant_id: UUID | None
    quantity_ordered: int
    quantity_received: int
    unit_cost: Decimal

    class Config:
        from_attributes = True


class PurchaseOrderCreate(BaseModel):
    supplier_id: UUID
    location_id: UUID
    notes: str | None = None
    items: list[POItemCreate]

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[POItemCreate]) -> list[POItemCreate]:
        if len(v) == 0:
            raise ValueError("Purchase order must have at least one item")
        return v


class ReceiveLineIn(BaseModel):
    item_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class PurchaseOrderReceive(BaseModel):
    # Empty means "receive everything still pending".
    items: list[ReceiveLineIn] = []


class PurchaseOrderOut(BaseModel):
    id: UUID
    supplier_id: UUID
    location_id: UUID
    purchase_number: str
    status: POStatus
    total: Decimal
    notes: str | None
    received_at: datetime | None
    created_at: datetime | None
    items: list[POItemOut]

    class Config:
        from_attributes = True
