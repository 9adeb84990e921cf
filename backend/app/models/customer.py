from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.database import Base
from backend.app.models.mixins import LedgerMixin, MovementMixin, money


class DocumentType(str, enum.Enum):
    CUIT = "CUIT"
    DNI = "DNI"
    OTHER = "OTHER"


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    document_type: Mapped[DocumentType | None] = mapped_column(
        Enum(DocumentType), nullable=True
    )
    document_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    account: Mapped[CustomerAccount | None] = relationship(
        back_populates="customer", uselist=False
    )

    __table_args__ = (Index("ix_customers_tenant", "tenant_id"),)


class CustomerAccount(LedgerMixin, Base):
    """Running account ("cuenta corriente"). Negative balance means the
    customer owes the business; ``credit_limit`` of 0 means unlimited."""

    __tablename__ = "customer_accounts"

    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customers.id"), nullable=False, unique=True
    )
    credit_limit: Mapped[Decimal] = mapped_column(
        money(), nullable=False, default=Decimal("0")
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    customer: Mapped[Customer] = relationship(back_populates="account")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("ix_customer_accounts_tenant", "tenant_id"),)


class CustomerAccountMovement(MovementMixin, Base):
    __tablename__ = "customer_account_movements"

    customer_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customer_accounts.id"), nullable=False
    )
    sale_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("sales.id"), nullable=True)

    __table_args__ = (
        Index("ix_customer_movements_account", "customer_account_id"),
        Index("ix_customer_movements_sale", "sale_id"),
    )
