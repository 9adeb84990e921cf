from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.database import Base
from backend.app.models.mixins import LedgerMixin, MovementMixin, money
from backend.app.models.treasury import PaymentMethod


class POStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PARTIAL = "PARTIAL"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


class SupplierInvoiceStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    DISPUTED = "DISPUTED"


# ─── Supplier ─────────────────────────────────────────────────────────────────


class Supplier(Base):
    __tablename__ = "suppliers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    cuit: Mapped[str | None] = mapped_column(String(13), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    purchase_orders: Mapped[list[PurchaseOrder]] = relationship(back_populates="supplier")

    __table_args__ = (Index("ix_suppliers_tenant", "tenant_id"),)


class SupplierAccount(LedgerMixin, Base):
    """What the business owes a supplier. Positive balance is a debt."""

    __tablename__ = "supplier_accounts"

    supplier_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("suppliers.id"), nullable=False, unique=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}


class SupplierAccountMovement(MovementMixin, Base):
    __tablename__ = "supplier_account_movements"

    supplier_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("supplier_accounts.id"), nullable=False
    )
    supplier_payment_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("supplier_payments.id"), nullable=True
    )
    supplier_invoice_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("supplier_invoices.id"), nullable=True
    )

    __table_args__ = (
        Index("ix_supplier_movements_account", "supplier_account_id"),
        Index("ix_supplier_movements_payment", "supplier_payment_id"),
    )


# ─── Supplier invoices & payments ─────────────────────────────────────────────


class SupplierInvoice(Base):
    __tablename__ = "supplier_invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    supplier_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    purchase_order_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=True
    )
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total: Mapped[Decimal] = mapped_column(money(), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(money(), nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(money(), nullable=False)
    status: Mapped[SupplierInvoiceStatus] = mapped_column(
        Enum(SupplierInvoiceStatus), nullable=False, default=SupplierInvoiceStatus.PENDING
    )
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # Reason and every resolution note, appended in order.
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint(
            "supplier_id", "invoice_number", name="uq_supplier_invoice_number"
        ),
        CheckConstraint("paid_amount >= 0", name="ck_supplier_invoice_paid_non_negative"),
        Index("ix_supplier_invoices_supplier_status", "supplier_id", "status"),
    )


class SupplierPayment(Base):
    __tablename__ = "supplier_payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    supplier_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    payment_number: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    cash_account_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("cash_accounts.id"), nullable=True
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    allocations: Mapped[list[SupplierPaymentAllocation]] = relationship(
        back_populates="payment", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "payment_number", name="uq_supplier_payment_number"),
        CheckConstraint("amount > 0", name="ck_supplier_payment_amount_positive"),
    )


class SupplierPaymentAllocation(Base):
    __tablename__ = "supplier_payment_allocations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("supplier_payments.id"), nullable=False
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("supplier_invoices.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(money(), nullable=False)

    payment: Mapped[SupplierPayment] = relationship(back_populates="allocations")
    invoice: Mapped[SupplierInvoice] = relationship()

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_allocation_amount_positive"),
        Index("ix_allocations_payment", "payment_id"),
        Index("ix_allocations_invoice", "invoice_id"),
    )


# ─── Purchase orders ──────────────────────────────────────────────────────────


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    supplier_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("locations.id"), nullable=False)
    purchase_number: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[POStatus] = mapped_column(
        Enum(POStatus), nullable=False, default=POStatus.PENDING
    )
    total: Mapped[Decimal] = mapped_column(money(), nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    supplier: Mapped[Supplier] = relationship(back_populates="purchase_orders")
    items: Mapped[list[PurchaseOrderItem]] = relationship(
        back_populates="purchase_order", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "purchase_number", name="uq_po_tenant_number"),
        Index("ix_po_supplier", "supplier_id"),
        Index("ix_po_status", "status"),
    )


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    po_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("purchase_orders.id"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    product_variant_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("product_variants.id"), nullable=True
    )
    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_cost: Mapped[Decimal] = mapped_column(money(), nullable=False)

    purchase_order: Mapped[PurchaseOrder] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity_ordered > 0", name="ck_po_item_quantity_positive"),
        CheckConstraint(
            "quantity_received <= quantity_ordered", name="ck_po_item_no_over_receipt"
        ),
        Index("ix_po_items_po", "po_id"),
    )
