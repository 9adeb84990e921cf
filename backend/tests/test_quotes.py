"""Tests for quotations and their conversion into sales."""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.core.exceptions import InsufficientStock, InvalidStatusTransition
from backend.app.models.customer import Customer, CustomerAccount
from backend.app.models.inventory import Product, Stock, StockMovement
from backend.app.models.quotes import Quote, QuoteStatus
from backend.app.models.sales import DiscountType, Sale
from backend.app.models.treasury import CashRegister, CashRegisterMovement, PaymentMethod
from backend.app.schemas.quotes import QuoteConvert, QuoteCreate, QuoteItemsIn
from backend.app.schemas.sales import LineItemIn, PaymentEntryIn
from backend.app.services import quotes

D = Decimal


def _create(db: Session, ctx: SessionContext, *items: LineItemIn, **kw: object) -> Quote:
    quote = quotes.create_quote(db, ctx, QuoteCreate(items=list(items), **kw))
    db.commit()
    return quote


class TestCreateQuote:
    def test_priced_like_a_sale_without_side_effects(
        self,
        db: Session,
        ctx: SessionContext,
        product_a: Product,
        product_b: Product,
        stock: dict[str, Stock],
        register: CashRegister,
    ) -> None:
        quote = _create(
            db,
            ctx,
            LineItemIn(product_id=product_a.id, quantity=2),
            LineItemIn(product_id=product_b.id, quantity=1),
            discount_type=DiscountType.PERCENTAGE,
            discount_value=D("10"),
        )
        assert quote.quote_number == "QUOTE-000001"
        assert quote.status == QuoteStatus.DRAFT
        assert quote.total == D("317.25")
        assert quote.tax_amount == D("47.25")
        assert len(quote.items) == 2

        assert db.query(StockMovement).count() == 0
        assert db.query(CashRegisterMovement).count() == 1
        db.refresh(stock["a"])
        assert stock["a"].quantity == 50

    def test_quote_may_exceed_stock(
        self, db: Session, ctx: SessionContext, product_a: Product, stock: dict[str, Stock]
    ) -> None:
        quote = _create(db, ctx, LineItemIn(product_id=product_a.id, quantity=500))
        assert quote.total == D("60500.00")

    def test_valid_until_in_the_past_rejected(
        self, db: Session, ctx: SessionContext, product_a: Product
    ) -> None:
        with pytest.raises(ValueError, match="past"):
            quotes.create_quote(
                db,
                ctx,
                QuoteCreate(
                    items=[LineItemIn(product_id=product_a.id, quantity=1)],
                    valid_until=date.today() - timedelta(days=1),
                ),
            )


class TestQuoteEditing:
    def test_replace_items_reprices(
        self, db: Session, ctx: SessionContext, product_a: Product, product_b: Product
    ) -> None:
        quote = _create(db, ctx, LineItemIn(product_id=product_a.id, quantity=1))
        quotes.replace_items(
            db,
            ctx,
            quote.id,
            QuoteItemsIn(items=[LineItemIn(product_id=product_b.id, quantity=2)]),
        )
        db.commit()
        db.refresh(quote)
        assert [i.description for i in quote.items] == ["Pan lactal"]
        assert quote.total == D("221.00")

    def test_manual_transitions(
        self, db: Session, ctx: SessionContext, product_a: Product
    ) -> None:
        quote = _create(db, ctx, LineItemIn(product_id=product_a.id, quantity=1))
        quotes.update_status(db, ctx, quote.id, QuoteStatus.SENT)
        quotes.update_status(db, ctx, quote.id, QuoteStatus.APPROVED)
        assert quote.status == QuoteStatus.APPROVED

        with pytest.raises(InvalidStatusTransition):
            quotes.update_status(db, ctx, quote.id, QuoteStatus.REJECTED)

    @pytest.mark.parametrize("target", [QuoteStatus.APPROVED, QuoteStatus.CONVERTED])
    def test_draft_cannot_skip_ahead(
        self, db: Session, ctx: SessionContext, product_a: Product, target: QuoteStatus
    ) -> None:
        quote = _create(db, ctx, LineItemIn(product_id=product_a.id, quantity=1))
        with pytest.raises(InvalidStatusTransition):
            quotes.update_status(db, ctx, quote.id, target)

    def test_approved_quote_is_frozen(
        self, db: Session, ctx: SessionContext, product_a: Product
    ) -> None:
        quote = _create(db, ctx, LineItemIn(product_id=product_a.id, quantity=1))
        quotes.update_status(db, ctx, quote.id, QuoteStatus.SENT)
        quotes.update_status(db, ctx, quote.id, QuoteStatus.APPROVED)
        with pytest.raises(InvalidStatusTransition):
            quotes.replace_items(
                db,
                ctx,
                quote.id,
                QuoteItemsIn(items=[LineItemIn(product_id=product_a.id, quantity=3)]),
            )


# ─── Conversion ───────────────────────────────────────────────────────────────


class TestConvertQuote:
    def test_conversion_uses_stored_figures(
        self,
        db: Session,
        ctx: SessionContext,
        product_a: Product,
        product_b: Product,
        stock: dict[str, Stock],
        register: CashRegister,
    ) -> None:
        quote = _create(
            db,
            ctx,
            LineItemIn(product_id=product_a.id, quantity=2),
            LineItemIn(product_id=product_b.id, quantity=1),
        )
        product_a.sale_price = D("999.00")
        db.commit()

        converted, settled = quotes.convert_quote(db, ctx, quote.id, issue_invoice=False)

        assert converted.status == QuoteStatus.CONVERTED
        assert converted.converted_to_sale_id == settled.sale.id
        assert settled.sale.total == D("352.50")
        assert settled.sale.items[0].unit_price == D("121.00")
        assert settled.sale.sale_number == "SALE-000001"
        db.refresh(stock["a"])
        assert stock["a"].quantity == 48
        db.refresh(register)
        assert register.current_balance == D("1352.50")

    def test_split_payment_on_conversion(
        self,
        db: Session,
        ctx: SessionContext,
        customer: Customer,
        product_a: Product,
        stock: dict[str, Stock],
        register: CashRegister,
    ) -> None:
        quote = _create(
            db, ctx, LineItemIn(product_id=product_a.id, quantity=2), customer_id=customer.id
        )
        data = QuoteConvert(
            payments=[
                PaymentEntryIn(method=PaymentMethod.CASH, amount=D("42.00")),
                PaymentEntryIn(method=PaymentMethod.ACCOUNT, amount=D("200.00")),
            ]
        )
        _, settled = quotes.convert_quote(db, ctx, quote.id, data, issue_invoice=False)

        assert settled.sale.customer_id == customer.id
        account = db.query(CustomerAccount).filter_by(customer_id=customer.id).one()
        assert account.current_balance == D("-200.00")

    def test_cannot_convert_twice(
        self,
        db: Session,
        ctx: SessionContext,
        product_a: Product,
        stock: dict[str, Stock],
        register: CashRegister,
    ) -> None:
        quote = _create(db, ctx, LineItemIn(product_id=product_a.id, quantity=1))
        quotes.convert_quote(db, ctx, quote.id, issue_invoice=False)
        with pytest.raises(InvalidStatusTransition):
            quotes.convert_quote(db, ctx, quote.id, issue_invoice=False)
        assert db.query(Sale).count() == 1

    def test_rejected_quote_cannot_be_converted(
        self,
        db: Session,
        ctx: SessionContext,
        product_a: Product,
        stock: dict[str, Stock],
        register: CashRegister,
    ) -> None:
        quote = _create(db, ctx, LineItemIn(product_id=product_a.id, quantity=1))
        quotes.update_status(db, ctx, quote.id, QuoteStatus.SENT)
        quotes.update_status(db, ctx, quote.id, QuoteStatus.REJECTED)
        db.commit()
        with pytest.raises(InvalidStatusTransition):
            quotes.convert_quote(db, ctx, quote.id, issue_invoice=False)

    def test_insufficient_stock_keeps_quote_open(
        self,
        db: Session,
        ctx: SessionContext,
        product_a: Product,
        stock: dict[str, Stock],
        register: CashRegister,
    ) -> None:
        quote = _create(db, ctx, LineItemIn(product_id=product_a.id, quantity=51))
        with pytest.raises(InsufficientStock):
            quotes.convert_quote(db, ctx, quote.id, issue_invoice=False)

        db.refresh(quote)
        assert quote.status == QuoteStatus.DRAFT
        assert quote.converted_to_sale_id is None
        assert db.query(Sale).count() == 0
        assert db.query(StockMovement).count() == 0
