from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
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
from backend.app.models.mixins import money
from backend.app.models.sales import DiscountType


# ─── Enums ────────────────────────────────────────────────────────────────────


class QuoteStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CONVERTED = "CONVERTED"


# ─── Quote ────────────────────────────────────────────────────────────────────


class Quote(Base):
    __tablename__ = "quotes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    location_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("locations.id"), nullable=True
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("customers.id"), nullable=True
    )
    quote_number: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[QuoteStatus] = mapped_column(
        Enum(QuoteStatus), nullable=False, default=QuoteStatus.DRAFT
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
    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    converted_to_sale_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("sales.id"), nullable=True
    )
    created_by: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[list[QuoteItem]] = relationship(
        back_populates="quote", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "quote_number", name="uq_quote_tenant_number"),
        Index("ix_quotes_tenant_status", "tenant_id", "status"),
    )


# ─── Quote Item ───────────────────────────────────────────────────────────────


class QuoteItem(Base):
    __tablename__ = "quote_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("quotes.id"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    product_variant_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("product_variants.id"), nullable=True
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(money(), nullable=False)
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

    quote: Mapped[Quote] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_quote_item_quantity_positive"),
        Index("ix_quote_items_quote", "quote_id"),
    )
