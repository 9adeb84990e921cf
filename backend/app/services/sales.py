"""Sale settlement.

``create_sale`` runs the whole settlement in one unit of work:

1. resolve the open register (and with it the stock location)
2. draw the next ``SALE-`` number
3. price the lines and the document discount
4. reconcile the payment entries against the total
5. validate stock for every line, then write the sale and decrement stock
6. book the payments to the customer account, register and treasury

Fiscal invoicing happens only after the commit and never undoes the sale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.core.exceptions import InvalidStatusTransition, NotFound, RegisterClosed
from backend.app.models.customer import CustomerAccountMovement
from backend.app.models.einvoice import Invoice
from backend.app.models.inventory import StockMovementType
from backend.app.models.organization import Tenant
from backend.app.models.sales import Sale, SaleItem, SalePayment, SaleStatus
from backend.app.models.treasury import (
    CashAccountMovement,
    CashRegister,
    CashRegisterMovement,
    PaymentMethod,
    RegisterStatus,
)
from backend.app.schemas.sales import SaleCreate
from backend.app.services import ledger, payments, pricing, stock_ledger
from backend.app.services.audit import log_action
from backend.app.services.afip.invoice_service import issue_invoice_safely
from backend.app.services.cash_registers import resolve_open_register
from backend.app.services.catalog import ResolvedLine, resolve_line_items
from backend.app.services.customer_accounts import get_customer
from backend.app.services.sequencer import DocumentFamily, next_document_number
from backend.app.services.unit_of_work import run_settlement

logger = logging.getLogger(__name__)


@dataclass
class SettledSale:
    sale: Sale
    unmapped_methods: list[PaymentMethod] = field(default_factory=list)
    invoice: Invoice | None = None


def get_tenant(db: Session, tenant_id: UUID) -> Tenant:
    tenant = db.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant", tenant_id)
    return tenant


def get_sale(db: Session, *, tenant_id: UUID, sale_id: UUID) -> Sale:
    sale = db.query(Sale).filter(Sale.id == sale_id, Sale.tenant_id == tenant_id).first()
    if sale is None:
        raise NotFound("Sale", sale_id)
    return sale


def record_sale(
    db: Session,
    ctx: SessionContext,
    *,
    tenant: Tenant,
    register: CashRegister,
    sale_number: str,
    lines: list[ResolvedLine],
    priced: pricing.DocumentPricing,
    entries: list[payments.PaymentEntry],
    customer_id: UUID | None,
    notes: str | None,
    stock_reason: str,
) -> tuple[Sale, payments.PostingResult]:
    """Write a priced, reconciled sale: document, stock and ledger postings.

    Shared by direct sales and quote conversion. Stock for every line is
    validated before the document is written.
    """
    stock_lines = [line.stock_line() for line in lines]
    stock_ledger.validate_availability(
        db, tenant_id=tenant.id, location_id=register.location_id, lines=stock_lines
    )

    sale = Sale(
        tenant_id=tenant.id,
        location_id=register.location_id,
        cash_register_id=register.id,
        customer_id=customer_id,
        user_id=ctx.user_id,
        sale_number=sale_number,
        status=SaleStatus.COMPLETED,
        subtotal=priced.subtotal,
        tax_amount=priced.tax_amount,
        discount_type=priced.discount_type,
        discount_value=priced.discount_value,
        discount_amount=priced.discount_amount,
        total=priced.total,
        notes=notes,
    )
    for line, line_price in zip(lines, priced.lines):
        sale.items.append(
            SaleItem(
                product_id=line.product.id,
                product_variant_id=line.variant.id if line.variant else None,
                description=line.description,
                quantity=line.quantity,
                unit_price=line_price.unit_price,
                cost_price=line.cost_price,
                tax_rate=line_price.tax_rate,
                discount_type=line_price.discount_type,
                discount_value=line_price.discount_value,
                discount_amount=line_price.discount_amount,
                subtotal=line_price.subtotal,
                tax_amount=line_price.tax_amount,
                total=line_price.total,
            )
        )
    for entry in entries:
        sale.payments.append(
            SalePayment(method=entry.method, amount=entry.amount, reference=entry.reference)
        )
    db.add(sale)
    db.flush()

    stock_ledger.decrement(
        db,
        tenant_id=tenant.id,
        location_id=register.location_id,
        lines=stock_lines,
        reason=stock_reason,
        user_id=ctx.user_id,
        sale_id=sale.id,
    )
    posting = payments.post_payments(
        db,
        tenant=tenant,
        entries=entries,
        document_number=sale_number,
        customer_id=customer_id,
        cash_register=register,
        user_id=ctx.user_id,
        sale_id=sale.id,
    )
    return sale, posting


def _settle_sale(db: Session, ctx: SessionContext, data: SaleCreate) -> SettledSale:
    tenant = get_tenant(db, ctx.tenant_id)
    register = resolve_open_register(db, tenant_id=tenant.id, location_id=ctx.location_id)
    if data.customer_id is not None:
        get_customer(db, tenant_id=tenant.id, customer_id=data.customer_id)

    sale_number = next_document_number(db, tenant_id=tenant.id, family=DocumentFamily.SALE)

    lines = resolve_line_items(db, tenant_id=tenant.id, items=data.items)
    priced = pricing.price_document(
        [line.pricing_input() for line in lines], data.discount_type, data.discount_value
    )

    requested = [
        payments.PaymentEntry(method=p.method, amount=p.amount, reference=p.reference)
        for p in data.payments or []
    ]
    entries = payments.resolve_entries(requested, data.payment_method, priced.total)
    payments.check_account_entries(entries, data.customer_id)
    payments.reconcile(entries, priced.total)

    sale, posting = record_sale(
        db,
        ctx,
        tenant=tenant,
        register=register,
        sale_number=sale_number,
        lines=lines,
        priced=priced,
        entries=entries,
        customer_id=data.customer_id,
        notes=data.notes,
        stock_reason=f"Sale {sale_number}",
    )

    log_action(
        db,
        tenant_id=tenant.id,
        user_id=ctx.user_id,
        action="SALE_CREATED",
        resource_type="sales",
        resource_id=str(sale.id),
        changes={
            "sale_number": sale_number,
            "total": priced.total,
            "payments": [{"method": e.method.value, "amount": e.amount} for e in entries],
            "unmapped_methods": [m.value for m in posting.unmapped_methods],
        },
        ip_address=ctx.ip_address,
    )
    logger.info("Sale %s settled: total %s (tenant %s)", sale_number, priced.total, tenant.id)
    return SettledSale(sale=sale, unmapped_methods=posting.unmapped_methods)


def create_sale(
    db: Session, ctx: SessionContext, data: SaleCreate, *, issue_invoice: bool = True
) -> SettledSale:
    settled = run_settlement(
        db, lambda session: _settle_sale(session, ctx, data), label="create_sale"
    )
    if issue_invoice:
        settled.invoice = issue_invoice_safely(db, settled.sale.id)
    return settled


# ─── Cancellation ─────────────────────────────────────────────────────────────


_SALE_MOVEMENT_MODELS = (CustomerAccountMovement, CashRegisterMovement, CashAccountMovement)


def _cancel_sale(db: Session, ctx: SessionContext, sale_id: UUID) -> Sale:
    sale = get_sale(db, tenant_id=ctx.tenant_id, sale_id=sale_id)
    if sale.status != SaleStatus.COMPLETED:
        raise InvalidStatusTransition("Sale", sale.status.value, SaleStatus.CANCELLED.value)

    # Cash refunds come out of the till that took them; a closed till is settled.
    moved_cash = (
        db.query(CashRegisterMovement.id)
        .filter(CashRegisterMovement.sale_id == sale.id)
        .first()
    )
    if moved_cash is not None:
        register = db.get(CashRegister, sale.cash_register_id)
        if register is None or register.status != RegisterStatus.OPEN:
            raise RegisterClosed(sale.cash_register_id)

    stock_ledger.increment(
        db,
        tenant_id=sale.tenant_id,
        location_id=sale.location_id,
        lines=[
            stock_ledger.StockLine(
                quantity=item.quantity,
                product_id=item.product_id,
                product_variant_id=item.product_variant_id,
                label=item.description,
            )
            for item in sale.items
        ],
        reason=f"Cancellation of sale {sale.sale_number}",
        user_id=ctx.user_id,
        movement_type=StockMovementType.RETURN,
        sale_id=sale.id,
    )

    reversed_count = 0
    for model in _SALE_MOVEMENT_MODELS:
        for movement in db.query(model).filter(model.sale_id == sale.id).all():
            ledger.void_movement(
                db,
                movement,
                user_id=ctx.user_id,
                concept=f"Cancellation of sale {sale.sale_number}",
                reference=sale.sale_number,
            )
            reversed_count += 1

    sale.status = SaleStatus.CANCELLED
    sale.cancelled_at = datetime.now(timezone.utc)

    invoice = db.query(Invoice).filter(Invoice.sale_id == sale.id).first()
    if invoice is not None:
        logger.warning(
            "Sale %s cancelled with invoice %s-%05d-%08d; a credit note must be issued",
            sale.sale_number,
            invoice.invoice_letter.value,
            invoice.point_of_sale,
            invoice.number,
        )

    log_action(
        db,
        tenant_id=sale.tenant_id,
        user_id=ctx.user_id,
        action="SALE_CANCELLED",
        resource_type="sales",
        resource_id=str(sale.id),
        changes={"sale_number": sale.sale_number, "reversed_movements": reversed_count},
        ip_address=ctx.ip_address,
    )
    db.flush()
    return sale


def cancel_sale(db: Session, ctx: SessionContext, sale_id: UUID) -> Sale:
    return run_settlement(
        db, lambda session: _cancel_sale(session, ctx, sale_id), label="cancel_sale"
    )
