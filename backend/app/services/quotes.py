"""Price quotations.

A quote is priced exactly like a sale but touches neither stock nor any
ledger. Converting it settles a sale with the quote's stored figures (no
re-pricing) after re-checking stock, and freezes the quote as CONVERTED.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.core.exceptions import InvalidStatusTransition, NotFound
from backend.app.models.quotes import Quote, QuoteItem, QuoteStatus
from backend.app.schemas.quotes import QuoteConvert, QuoteCreate, QuoteItemsIn
from backend.app.services import payments, pricing
from backend.app.services.afip.invoice_service import issue_invoice_safely
from backend.app.services.audit import log_action
from backend.app.services.cash_registers import resolve_open_register
from backend.app.services.catalog import (
    ResolvedLine,
    get_product,
    get_variant,
    resolve_line_items,
)
from backend.app.services.customer_accounts import get_customer
from backend.app.services.sales import SettledSale, get_tenant, record_sale
from backend.app.services.sequencer import DocumentFamily, next_document_number
from backend.app.services.unit_of_work import run_settlement

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = frozenset({QuoteStatus.DRAFT, QuoteStatus.SENT})
CONVERTIBLE_STATUSES = frozenset({QuoteStatus.DRAFT, QuoteStatus.SENT, QuoteStatus.APPROVED})

# Manual status moves; CONVERTED is only reachable through convert_quote.
ALLOWED_TRANSITIONS: dict[QuoteStatus, frozenset[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SENT}),
    QuoteStatus.SENT: frozenset({QuoteStatus.APPROVED, QuoteStatus.REJECTED}),
    QuoteStatus.APPROVED: frozenset(),
    QuoteStatus.REJECTED: frozenset(),
    QuoteStatus.CONVERTED: frozenset(),
}


def get_quote(db: Session, *, tenant_id: UUID, quote_id: UUID) -> Quote:
    quote = db.query(Quote).filter(Quote.id == quote_id, Quote.tenant_id == tenant_id).first()
    if quote is None:
        raise NotFound("Quote", quote_id)
    return quote


def _apply_pricing(
    quote: Quote, lines: list[ResolvedLine], priced: pricing.DocumentPricing
) -> None:
    quote.subtotal = priced.subtotal
    quote.tax_amount = priced.tax_amount
    quote.discount_type = priced.discount_type
    quote.discount_value = priced.discount_value
    quote.discount_amount = priced.discount_amount
    quote.total = priced.total
    for line, line_price in zip(lines, priced.lines):
        quote.items.append(
            QuoteItem(
                product_id=line.product.id,
                product_variant_id=line.variant.id if line.variant else None,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                tax_rate=line.tax_rate,
                discount_type=line_price.discount_type,
                discount_value=line_price.discount_value,
                discount_amount=line_price.discount_amount,
                subtotal=line_price.subtotal,
                tax_amount=line_price.tax_amount,
                total=line_price.total,
            )
        )


def _price(
    db: Session, tenant_id: UUID, data: QuoteItemsIn
) -> tuple[list[ResolvedLine], pricing.DocumentPricing]:
    lines = resolve_line_items(db, tenant_id=tenant_id, items=data.items)
    priced = pricing.price_document(
        [line.pricing_input() for line in lines], data.discount_type, data.discount_value
    )
    return lines, priced


def create_quote(db: Session, ctx: SessionContext, data: QuoteCreate) -> Quote:
    """Create a DRAFT quote. Does NOT touch stock or any ledger."""
    if data.customer_id is not None:
        get_customer(db, tenant_id=ctx.tenant_id, customer_id=data.customer_id)
    if data.valid_until is not None and data.valid_until < date.today():
        raise ValueError("valid_until cannot be in the past")

    lines, priced = _price(db, ctx.tenant_id, data)
    quote_number = next_document_number(db, tenant_id=ctx.tenant_id, family=DocumentFamily.QUOTE)
    quote = Quote(
        tenant_id=ctx.tenant_id,
        location_id=ctx.location_id,
        customer_id=data.customer_id,
        quote_number=quote_number,
        status=QuoteStatus.DRAFT,
        valid_until=data.valid_until,
        notes=data.notes,
        created_by=ctx.user_id,
    )
    _apply_pricing(quote, lines, priced)
    db.add(quote)
    db.flush()

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="QUOTE_CREATED",
        resource_type="quotes",
        resource_id=str(quote.id),
        changes={"quote_number": quote_number, "total": priced.total, "item_count": len(lines)},
        ip_address=ctx.ip_address,
    )
    return quote


def replace_items(db: Session, ctx: SessionContext, quote_id: UUID, data: QuoteItemsIn) -> Quote:
    """Replace the full item set (and document discount) of an editable quote."""
    quote = get_quote(db, tenant_id=ctx.tenant_id, quote_id=quote_id)
    if quote.status not in EDITABLE_STATUSES:
        raise InvalidStatusTransition("Quote", quote.status.value, "EDIT")

    lines, priced = _price(db, ctx.tenant_id, data)
    quote.items.clear()
    db.flush()
    _apply_pricing(quote, lines, priced)
    db.flush()

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="QUOTE_ITEMS_REPLACED",
        resource_type="quotes",
        resource_id=str(quote.id),
        changes={"total": priced.total, "item_count": len(lines)},
        ip_address=ctx.ip_address,
    )
    return quote


def update_status(
    db: Session, ctx: SessionContext, quote_id: UUID, new_status: QuoteStatus
) -> Quote:
    quote = get_quote(db, tenant_id=ctx.tenant_id, quote_id=quote_id)
    if new_status not in ALLOWED_TRANSITIONS[quote.status]:
        raise InvalidStatusTransition("Quote", quote.status.value, new_status.value)

    old_status = quote.status
    quote.status = new_status
    db.flush()
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="QUOTE_STATUS_CHANGED",
        resource_type="quotes",
        resource_id=str(quote.id),
        changes={"from": old_status.value, "to": new_status.value},
        ip_address=ctx.ip_address,
    )
    return quote


# ─── Conversion ───────────────────────────────────────────────────────────────


def _stored_lines(db: Session, quote: Quote) -> list[ResolvedLine]:
    lines = []
    for item in quote.items:
        product = get_product(db, tenant_id=quote.tenant_id, product_id=item.product_id)
        variant = None
        if item.product_variant_id is not None:
            variant = get_variant(
                db,
                tenant_id=quote.tenant_id,
                product_id=product.id,
                variant_id=item.product_variant_id,
            )
        lines.append(
            ResolvedLine(
                product=product,
                variant=variant,
                quantity=item.quantity,
                discount_type=item.discount_type,
                discount_value=item.discount_value,
            )
        )
    return lines


def _stored_pricing(quote: Quote) -> pricing.DocumentPricing:
    """The quote's own figures, unchanged, in the shape ``record_sale`` expects."""
    priced_lines = [
        pricing.LinePricing(
            unit_price=item.unit_price,
            quantity=item.quantity,
            tax_rate=item.tax_rate,
            discount_type=item.discount_type,
            discount_value=item.discount_value,
            discount_amount=item.discount_amount,
            subtotal=item.subtotal,
            tax_amount=item.tax_amount,
            total=item.total,
        )
        for item in quote.items
    ]
    return pricing.DocumentPricing(
        lines=priced_lines,
        gross=sum((line.total for line in priced_lines), Decimal("0")),
        discount_type=quote.discount_type,
        discount_value=quote.discount_value,
        discount_amount=quote.discount_amount,
        subtotal=quote.subtotal,
        tax_amount=quote.tax_amount,
        total=quote.total,
    )


def _convert(
    db: Session, ctx: SessionContext, quote_id: UUID, data: QuoteConvert
) -> tuple[Quote, SettledSale]:
    quote = get_quote(db, tenant_id=ctx.tenant_id, quote_id=quote_id)
    if quote.status not in CONVERTIBLE_STATUSES:
        raise InvalidStatusTransition("Quote", quote.status.value, QuoteStatus.CONVERTED.value)

    tenant = get_tenant(db, ctx.tenant_id)
    register = resolve_open_register(
        db, tenant_id=tenant.id, location_id=ctx.location_id or quote.location_id
    )
    lines = _stored_lines(db, quote)
    priced = _stored_pricing(quote)

    requested = [
        payments.PaymentEntry(method=p.method, amount=p.amount, reference=p.reference)
        for p in data.payments or []
    ]
    entries = payments.resolve_entries(requested, data.payment_method, priced.total)
    payments.check_account_entries(entries, quote.customer_id)
    payments.reconcile(entries, priced.total)

    sale_number = next_document_number(db, tenant_id=tenant.id, family=DocumentFamily.SALE)
    sale, posting = record_sale(
        db,
        ctx,
        tenant=tenant,
        register=register,
        sale_number=sale_number,
        lines=lines,
        priced=priced,
        entries=entries,
        customer_id=quote.customer_id,
        notes=data.notes or quote.notes,
        stock_reason=f"Sale {sale_number} (quote {quote.quote_number})",
    )

    quote.status = QuoteStatus.CONVERTED
    quote.converted_to_sale_id = sale.id
    db.flush()

    log_action(
        db,
        tenant_id=tenant.id,
        user_id=ctx.user_id,
        action="QUOTE_CONVERTED",
        resource_type="quotes",
        resource_id=str(quote.id),
        changes={
            "quote_number": quote.quote_number,
            "sale_number": sale_number,
            "total": priced.total,
        },
        ip_address=ctx.ip_address,
    )
    logger.info(
        "Quote %s converted to sale %s: total %s", quote.quote_number, sale_number, priced.total
    )
    return quote, SettledSale(sale=sale, unmapped_methods=posting.unmapped_methods)


def convert_quote(
    db: Session,
    ctx: SessionContext,
    quote_id: UUID,
    data: QuoteConvert | None = None,
    *,
    issue_invoice: bool = True,
) -> tuple[Quote, SettledSale]:
    """Settle the quote as a sale in one unit of work, then invoice it."""
    data = data or QuoteConvert()
    quote, settled = run_settlement(
        db, lambda session: _convert(session, ctx, quote_id, data), label="convert_quote"
    )
    if issue_invoice:
        settled.invoice = issue_invoice_safely(db, settled.sale.id)
    return quote, settled
