"""Supplier invoices, payments and payment voids.

The supplier account carries what the business owes (positive balance).
An invoice adds to it (PURCHASE); a payment takes it down and, when paid
from a treasury account, debits that account too (SUPPLIER_PAYMENT). A void
posts compensating movements for both sides and puts every allocated
invoice back to exactly where it was before the payment. A disputed
invoice takes no allocations until the dispute is resolved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.core.exceptions import InvalidStatusTransition, NotFound
from backend.app.models.mixins import MovementType
from backend.app.models.supplier import (
    Supplier,
    SupplierAccount,
    SupplierAccountMovement,
    SupplierInvoice,
    SupplierInvoiceStatus,
    SupplierPayment,
    SupplierPaymentAllocation,
)
from backend.app.models.treasury import CashAccountMovement
from backend.app.schemas.supplier import SupplierInvoiceCreate, SupplierPaymentCreate
from backend.app.services import ledger
from backend.app.services.audit import log_action
from backend.app.services.sequencer import DocumentFamily, next_document_number
from backend.app.services.unit_of_work import run_settlement

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
PAYABLE_STATUSES = frozenset({SupplierInvoiceStatus.PENDING, SupplierInvoiceStatus.PARTIAL})


@dataclass(frozen=True)
class VoidResult:
    payment_number: str
    amount: Decimal
    restored_invoices: list[SupplierInvoice]


def get_supplier(db: Session, *, tenant_id: UUID, supplier_id: UUID) -> Supplier:
    supplier = (
        db.query(Supplier)
        .filter(Supplier.id == supplier_id, Supplier.tenant_id == tenant_id)
        .first()
    )
    if supplier is None:
        raise NotFound("Supplier", supplier_id)
    return supplier


def get_or_create_supplier_account(
    db: Session, *, tenant_id: UUID, supplier_id: UUID
) -> SupplierAccount:
    account = (
        db.query(SupplierAccount)
        .filter(
            SupplierAccount.supplier_id == supplier_id,
            SupplierAccount.tenant_id == tenant_id,
        )
        .with_for_update()
        .first()
    )
    if account is None:
        account = SupplierAccount(
            tenant_id=tenant_id, supplier_id=supplier_id, current_balance=ZERO
        )
        db.add(account)
        db.flush()
    return account


def refresh_invoice_status(invoice: SupplierInvoice, *, on: date | None = None) -> None:
    """Derive status and paid date from ``paid_amount`` / ``balance``."""
    if invoice.balance <= 0:
        invoice.status = SupplierInvoiceStatus.PAID
        invoice.paid_date = invoice.paid_date or on or date.today()
    elif invoice.paid_amount > 0:
        invoice.status = SupplierInvoiceStatus.PARTIAL
        invoice.paid_date = None
    else:
        invoice.status = SupplierInvoiceStatus.PENDING
        invoice.paid_date = None


# ─── Invoices ─────────────────────────────────────────────────────────────────


def create_supplier_invoice(
    db: Session, ctx: SessionContext, data: SupplierInvoiceCreate
) -> SupplierInvoice:
    supplier = get_supplier(db, tenant_id=ctx.tenant_id, supplier_id=data.supplier_id)
    exists = (
        db.query(SupplierInvoice)
        .filter(
            SupplierInvoice.supplier_id == supplier.id,
            SupplierInvoice.invoice_number == data.invoice_number,
        )
        .first()
    )
    if exists:
        raise ValueError(f"Invoice {data.invoice_number} already registered for this supplier")

    invoice = SupplierInvoice(
        tenant_id=ctx.tenant_id,
        supplier_id=supplier.id,
        purchase_order_id=data.purchase_order_id,
        invoice_number=data.invoice_number,
        invoice_date=data.invoice_date,
        due_date=data.due_date,
        total=data.total,
        paid_amount=ZERO,
        balance=data.total,
        status=SupplierInvoiceStatus.PENDING,
    )
    db.add(invoice)
    db.flush()

    account = get_or_create_supplier_account(db, tenant_id=ctx.tenant_id, supplier_id=supplier.id)
    ledger.apply_delta(
        db,
        account,
        data.total,
        MovementType.PURCHASE,
        f"Invoice {data.invoice_number}",
        user_id=ctx.user_id,
        reference=data.invoice_number,
        supplier_invoice_id=invoice.id,
    )
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="SUPPLIER_INVOICE_CREATED",
        resource_type="supplier_invoices",
        resource_id=str(invoice.id),
        changes={
            "supplier": supplier.name,
            "invoice_number": data.invoice_number,
            "total": data.total,
        },
        ip_address=ctx.ip_address,
    )
    return invoice


def _load_invoice(db: Session, ctx: SessionContext, invoice_id: UUID) -> SupplierInvoice:
    invoice = (
        db.query(SupplierInvoice)
        .filter(SupplierInvoice.id == invoice_id, SupplierInvoice.tenant_id == ctx.tenant_id)
        .with_for_update()
        .first()
    )
    if invoice is None:
        raise NotFound("Supplier invoice", invoice_id)
    return invoice


def dispute_supplier_invoice(
    db: Session, ctx: SessionContext, invoice_id: UUID, *, reason: str
) -> SupplierInvoice:
    """Hold an unpaid invoice: payments cannot be allocated to it until resolved."""
    invoice = _load_invoice(db, ctx, invoice_id)
    if invoice.status not in PAYABLE_STATUSES:
        raise InvalidStatusTransition(
            "Supplier invoice", invoice.status.value, SupplierInvoiceStatus.DISPUTED.value
        )
    invoice.status = SupplierInvoiceStatus.DISPUTED
    invoice.dispute_reason = reason
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="SUPPLIER_INVOICE_DISPUTED",
        resource_type="supplier_invoices",
        resource_id=str(invoice.id),
        changes={"invoice_number": invoice.invoice_number, "reason": reason},
        ip_address=ctx.ip_address,
    )
    db.flush()
    logger.info("Supplier invoice %s disputed", invoice.invoice_number)
    return invoice


def resolve_supplier_invoice_dispute(
    db: Session, ctx: SessionContext, invoice_id: UUID, *, resolution: str
) -> SupplierInvoice:
    """Lift a dispute; the status is derived again from what has been paid."""
    invoice = _load_invoice(db, ctx, invoice_id)
    if invoice.status != SupplierInvoiceStatus.DISPUTED:
        raise InvalidStatusTransition(
            "Supplier invoice", invoice.status.value, SupplierInvoiceStatus.PENDING.value
        )
    refresh_invoice_status(invoice)
    note = f"--- RESOLVED {date.today().isoformat()} ---\n{resolution}"
    invoice.dispute_reason = (
        f"{invoice.dispute_reason}\n\n{note}" if invoice.dispute_reason else note
    )
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="SUPPLIER_INVOICE_DISPUTE_RESOLVED",
        resource_type="supplier_invoices",
        resource_id=str(invoice.id),
        changes={
            "invoice_number": invoice.invoice_number,
            "resolution": resolution,
            "status": invoice.status.value,
        },
        ip_address=ctx.ip_address,
    )
    db.flush()
    return invoice


# ─── Payments ─────────────────────────────────────────────────────────────────


def _create_payment(
    db: Session, ctx: SessionContext, data: SupplierPaymentCreate
) -> SupplierPayment:
    supplier = get_supplier(db, tenant_id=ctx.tenant_id, supplier_id=data.supplier_id)

    invoices: list[tuple[SupplierInvoice, Decimal]] = []
    allocated = ZERO
    for alloc in data.allocations:
        invoice = (
            db.query(SupplierInvoice)
            .filter(
                SupplierInvoice.id == alloc.invoice_id,
                SupplierInvoice.tenant_id == ctx.tenant_id,
                SupplierInvoice.supplier_id == supplier.id,
            )
            .with_for_update()
            .first()
        )
        if invoice is None:
            raise NotFound("Supplier invoice", alloc.invoice_id)
        if invoice.status not in PAYABLE_STATUSES:
            raise InvalidStatusTransition(
                "Supplier invoice", invoice.status.value, SupplierInvoiceStatus.PAID.value
            )
        if alloc.amount > invoice.balance:
            raise ValueError(
                f"Allocation of {alloc.amount} exceeds balance {invoice.balance} "
                f"of invoice {invoice.invoice_number}"
            )
        invoices.append((invoice, alloc.amount))
        allocated += alloc.amount
    if allocated > data.amount:
        raise ValueError(f"Allocated amount ({allocated}) exceeds payment amount ({data.amount})")

    payment_date = data.payment_date or date.today()
    payment_number = next_document_number(
        db, tenant_id=ctx.tenant_id, family=DocumentFamily.SUPPLIER_PAYMENT
    )
    payment = SupplierPayment(
        tenant_id=ctx.tenant_id,
        supplier_id=supplier.id,
        payment_number=payment_number,
        amount=data.amount,
        payment_method=data.payment_method,
        cash_account_id=data.cash_account_id,
        payment_date=payment_date,
        reference=data.reference,
        notes=data.notes,
        created_by=ctx.user_id,
    )
    for invoice, amount in invoices:
        payment.allocations.append(SupplierPaymentAllocation(invoice_id=invoice.id, amount=amount))
        invoice.paid_amount += amount
        invoice.balance -= amount
        refresh_invoice_status(invoice, on=payment_date)
    db.add(payment)
    db.flush()

    correlation_id = ledger.new_correlation_id("SP")
    concept = f"Payment {payment_number} to {supplier.name}"
    if data.cash_account_id is not None:
        cash_account = ledger.load_ledger(
            db, ledger.CASH_ACCOUNT, data.cash_account_id, tenant_id=ctx.tenant_id
        )
        ledger.apply_delta(
            db,
            cash_account,
            -data.amount,
            MovementType.SUPPLIER_PAYMENT,
            concept,
            user_id=ctx.user_id,
            reference=payment_number,
            correlation_id=correlation_id,
            supplier_payment_id=payment.id,
        )
    account = get_or_create_supplier_account(db, tenant_id=ctx.tenant_id, supplier_id=supplier.id)
    ledger.apply_delta(
        db,
        account,
        -data.amount,
        MovementType.SUPPLIER_PAYMENT,
        concept,
        user_id=ctx.user_id,
        reference=payment_number,
        correlation_id=correlation_id,
        supplier_payment_id=payment.id,
    )

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="SUPPLIER_PAYMENT_CREATED",
        resource_type="supplier_payments",
        resource_id=str(payment.id),
        changes={
            "payment_number": payment_number,
            "supplier": supplier.name,
            "amount": data.amount,
            "allocations": [{"invoice_id": i.id, "amount": a} for i, a in invoices],
        },
        ip_address=ctx.ip_address,
    )
    logger.info("Supplier payment %s: %s to %s", payment_number, data.amount, supplier.name)
    return payment


def create_supplier_payment(
    db: Session, ctx: SessionContext, data: SupplierPaymentCreate
) -> SupplierPayment:
    return run_settlement(
        db, lambda session: _create_payment(session, ctx, data), label="create_supplier_payment"
    )


# ─── Void ─────────────────────────────────────────────────────────────────────


def _void_payment(db: Session, ctx: SessionContext, payment_id: UUID) -> VoidResult:
    payment = (
        db.query(SupplierPayment)
        .filter(SupplierPayment.id == payment_id, SupplierPayment.tenant_id == ctx.tenant_id)
        .first()
    )
    if payment is None:
        raise NotFound("Supplier payment", payment_id)

    restored = []
    for alloc in payment.allocations:
        invoice = (
            db.query(SupplierInvoice)
            .filter(SupplierInvoice.id == alloc.invoice_id)
            .with_for_update()
            .one()
        )
        invoice.paid_amount -= alloc.amount
        invoice.balance += alloc.amount
        if invoice.status != SupplierInvoiceStatus.DISPUTED:
            refresh_invoice_status(invoice)
        restored.append(invoice)

    concept = f"Void of payment {payment.payment_number}"
    for model in (CashAccountMovement, SupplierAccountMovement):
        for movement in db.query(model).filter(model.supplier_payment_id == payment.id).all():
            ledger.void_movement(
                db, movement, user_id=ctx.user_id, concept=concept, reference=payment.payment_number
            )

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="SUPPLIER_PAYMENT_VOIDED",
        resource_type="supplier_payments",
        resource_id=str(payment.id),
        changes={
            "payment_number": payment.payment_number,
            "amount": payment.amount,
            "restored_invoices": [
                {"invoice_id": i.id, "status": i.status.value, "balance": i.balance}
                for i in restored
            ],
        },
        ip_address=ctx.ip_address,
    )
    # Allocations go with the payment (delete-orphan cascade).
    result = VoidResult(payment.payment_number, payment.amount, restored)
    db.delete(payment)
    db.flush()
    logger.info("Supplier payment %s voided", result.payment_number)
    return result


def void_supplier_payment(db: Session, ctx: SessionContext, payment_id: UUID) -> VoidResult:
    return run_settlement(
        db, lambda session: _void_payment(session, ctx, payment_id), label="void_supplier_payment"
    )
