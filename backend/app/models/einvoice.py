from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base
from backend.app.models.mixins import money


class InvoiceLetter(str, enum.Enum):
    A = "A"
    B = "B"
    C = "C"


class InvoiceStatus(str, enum.Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Invoice(Base):
    """Fiscal invoice authorized by AFIP (CAE) for a settled sale."""

    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    sale_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sales.id"), nullable=False, unique=True
    )

    # AFIP identifiers
    invoice_letter: Mapped[InvoiceLetter] = mapped_column(Enum(InvoiceLetter), nullable=False)
    voucher_type: Mapped[int] = mapped_column(Integer, nullable=False)
    point_of_sale: Mapped[int] = mapped_column(Integer, nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    cae: Mapped[str] = mapped_column(String(20), nullable=False)
    cae_expiration: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.APPROVED
    )

    # Amounts as submitted
    net_amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
    total: Mapped[Decimal] = mapped_column(money(), nullable=False)

    # Receiver
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_doc_type: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_doc_number: Mapped[str] = mapped_column(String(20), nullable=False)

    authority_response: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "point_of_sale",
            "voucher_type",
            "number",
            name="uq_invoice_tenant_pos_type_number",
        ),
        Index("ix_invoices_tenant_created", "tenant_id", "created_at"),
    )
