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
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.database import Base
from backend.app.models.customer import Customer
from backend.app.models.mixins import money
from backend.app.models.treasury import PaymentMethod


# ─── Enums ────────────────────────────────────────────────────────────────────


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class SaleStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# ─── Sale ─────────────────────────────────────────────────────────────────────


class Sale(Base):
    """Settled sale. ``subtotal + tax_amount - discount_amount == total``."""

    __tablename__ = "sales"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("locations.id"), nullable=False)
    cash_register_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cash_registers.id"), nullable=False
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("customers.id"), nullable=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    sale_number: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[SaleStatus] = mapped_column(
        Enum(SaleStatus), nullable=False, default=SaleStatus.COMPLETED
    )
    subtotal: Mapped[Decimal] = mapped_column(money(), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    discount_type: Mapped[DiscountType | None] = mapped_column(
        Enum(DiscountType), nullable=True
    )
    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        money(), nullable=False, default=Decimal("0")
    )
    total: Mapped[Decimal] = mapped_column(money(), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    items: Mapped[list[SaleItem]] = relationship(
        back_populates="sale", cascade="all, delete-orphan"
    )
    payments: Mapped[list[SalePayment]] = relationship(
        back_populates="sale", cascade="all, delete-orphan"
    )
    customer: Mapped[Customer | None] = relationship()

    __table_args__ = (
        UniqueConstraint("tenant_id", "sale_number", name="uq_sale_tenant_number"),
        CheckConstraint("total >= 0", name="ck_sale_total_non_negative"),
        Index("ix_sales_tenant_created", "tenant_id", "created_at"),
        Index("ix_sales_customer", "customer_id"),
    )


class SaleItem(Base):
    __tablename__ = "sale_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    product_variant_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("product_variants.id"), nullable=True
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(money(), nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(money(), nullable=False, default=Decimal("0"))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(precision=5, scale=2), nullable=False)
    discount_type: Mapped[DiscountType | None] = mapped_column(
        Enum(DiscountType), nullable=True
    )
    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        money(), nullable=False, default=Decimal("0")
    )
    subtotal: Mapped[Decimal] = mapped_column(money(), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    total: Mapped[Decimal] = mapped_column(money(), nullable=False)

    sale: Mapped[Sale] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_item_quantity_positive"),
        Index("ix_sale_items_sale", "sale_id"),
    )


class SalePayment(Base):
    __tablename__ = "sale_payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    sale: Mapped[Sale] = relationship(back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_sale_payment_amount_positive"),
        Index("ix_sale_payments_sale", "sale_id"),
    )
