"""Tests for per-location stock and its movement trail."""
from __future__ import annotations

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.database import SessionLocal
from backend.app.core.exceptions import ConflictError, InsufficientStock
from backend.app.models.inventory import (
    Product,
    ProductVariant,
    Stock,
    StockMovement,
    StockMovementType,
)
from backend.app.models.organization import Location, Tenant
from backend.app.services import stock_ledger
from backend.app.services.stock_ledger import StockLine
from backend.app.services.unit_of_work import run_settlement


def _quantity(stock_id: object) -> int:
    with SessionLocal() as fresh:
        return fresh.get(Stock, stock_id).quantity


class TestDecrement:
    def test_decrement_writes_movement(
        self,
        db: Session,
        tenant: Tenant,
        location: Location,
        product_a: Product,
        stock: dict[str, Stock],
    ) -> None:
        movements = stock_ledger.decrement(
            db,
            tenant_id=tenant.id,
            location_id=location.id,
            lines=[StockLine(quantity=5, product_id=product_a.id)],
            reason="Sale SALE-000001",
            user_id=None,
        )
        db.commit()

        assert _quantity(stock["a"].id) == 45
        (movement,) = movements
        assert movement.type == StockMovementType.SALE
        assert movement.quantity == -5
        assert (movement.quantity_before, movement.quantity_after) == (50, 45)

    def test_lines_for_same_item_are_merged(
        self,
        db: Session,
        tenant: Tenant,
        location: Location,
        product_a: Product,
        stock: dict[str, Stock],
    ) -> None:
        movements = stock_ledger.decrement(
            db,
            tenant_id=tenant.id,
            location_id=location.id,
            lines=[
                StockLine(quantity=3, product_id=product_a.id),
                StockLine(quantity=4, product_id=product_a.id),
            ],
            reason="merge",
            user_id=None,
        )
        assert len(movements) == 1
        assert movements[0].quantity == -7

    def test_variant_stock_is_tracked_separately(
        self,
        db: Session,
        tenant: Tenant,
        location: Location,
        product_a: Product,
        variant_a: ProductVariant,
        stock: dict[str, Stock],
    ) -> None:
        stock_ledger.decrement(
            db,
            tenant_id=tenant.id,
            location_id=location.id,
            lines=[StockLine(quantity=2, product_id=product_a.id, product_variant_id=variant_a.id)],
            reason="variant",
            user_id=None,
        )
        db.commit()
        assert _quantity(stock["variant"].id) == 8
        assert _quantity(stock["a"].id) == 50

    def test_shortfall_moves_nothing(
        self,
        db: Session,
        tenant: Tenant,
        location: Location,
        product_a: Product,
        product_b: Product,
        stock: dict[str, Stock],
    ) -> None:
        with pytest.raises(InsufficientStock) as exc_info:
            stock_ledger.decrement(
                db,
                tenant_id=tenant.id,
                location_id=location.id,
                lines=[
                    StockLine(quantity=5, product_id=product_a.id),
                    StockLine(quantity=31, product_id=product_b.id, label="Pan lactal"),
                ],
                reason="too much",
                user_id=None,
            )
        db.rollback()

        assert exc_info.value.details == {"item": "Pan lactal", "available": 30, "requested": 31}
        assert _quantity(stock["a"].id) == 50
        assert db.query(StockMovement).count() == 0

    def test_missing_stock_row_counts_as_zero(
        self, db: Session, tenant: Tenant, location: Location, product_a: Product
    ) -> None:
        with pytest.raises(InsufficientStock):
            stock_ledger.decrement(
                db,
                tenant_id=tenant.id,
                location_id=location.id,
                lines=[StockLine(quantity=1, product_id=product_a.id)],
                reason="none",
                user_id=None,
            )

    def test_non_positive_quantity_raises(
        self, db: Session, tenant: Tenant, location: Location, product_a: Product
    ) -> None:
        with pytest.raises(ValueError, match="greater than zero"):
            stock_ledger.validate_availability(
                db,
                tenant_id=tenant.id,
                location_id=location.id,
                lines=[StockLine(quantity=0, product_id=product_a.id)],
            )


class TestIncrement:
    def test_creates_missing_row(
        self, db: Session, tenant: Tenant, location: Location, product_b: Product
    ) -> None:
        stock_ledger.increment(
            db,
            tenant_id=tenant.id,
            location_id=location.id,
            lines=[StockLine(quantity=12, product_id=product_b.id)],
            reason="Purchase PO-000001",
            user_id=None,
            movement_type=StockMovementType.PURCHASE,
        )
        db.commit()
        assert (
            stock_ledger.get_quantity(
                db, tenant_id=tenant.id, location_id=location.id, product_id=product_b.id
            )
            == 12
        )
        movement = db.query(StockMovement).one()
        assert movement.type == StockMovementType.PURCHASE
        assert movement.quantity_before == 0


class TestConcurrency:
    def test_second_writer_on_stale_row_fails(
        self, db: Session, stock: dict[str, Stock]
    ) -> None:
        stock_id = stock["a"].id
        first, second = SessionLocal(), SessionLocal()
        try:
            row_first = first.get(Stock, stock_id)
            row_second = second.get(Stock, stock_id)

            row_first.quantity -= 40
            first.commit()

            row_second.quantity -= 40
            with pytest.raises(StaleDataError):
                second.commit()
            second.rollback()
        finally:
            first.close()
            second.close()
        assert _quantity(stock_id) == 10

    def test_unit_of_work_retries_and_revalidates(
        self,
        db: Session,
        tenant: Tenant,
        location: Location,
        product_a: Product,
        stock: dict[str, Stock],
    ) -> None:
        stock_id = stock["a"].id
        attempts: list[int] = []

        def operation(session: Session) -> list[StockMovement]:
            session.get(Stock, stock_id)
            attempts.append(1)
            if len(attempts) == 1:
                with SessionLocal() as competitor:
                    competitor.get(Stock, stock_id).quantity -= 45
                    competitor.commit()
            return stock_ledger.decrement(
                session,
                tenant_id=tenant.id,
                location_id=location.id,
                lines=[StockLine(quantity=5, product_id=product_a.id)],
                reason="race",
                user_id=None,
            )

        run_settlement(db, operation, label="race", backoff_base=0)
        assert len(attempts) == 2
        assert _quantity(stock_id) == 0

    def test_retry_that_no_longer_fits_raises_insufficient_stock(
        self,
        db: Session,
        tenant: Tenant,
        location: Location,
        product_a: Product,
        stock: dict[str, Stock],
    ) -> None:
        stock_id = stock["a"].id
        attempts: list[int] = []

        def operation(session: Session) -> list[StockMovement]:
            session.get(Stock, stock_id)
            attempts.append(1)
            if len(attempts) == 1:
                with SessionLocal() as competitor:
                    competitor.get(Stock, stock_id).quantity -= 48
                    competitor.commit()
            return stock_ledger.decrement(
                session,
                tenant_id=tenant.id,
                location_id=location.id,
                lines=[StockLine(quantity=5, product_id=product_a.id)],
                reason="race",
                user_id=None,
            )

        with pytest.raises(InsufficientStock):
            run_settlement(db, operation, label="race", backoff_base=0)
        assert _quantity(stock_id) == 2

    def test_exhausted_retries_raise_conflict(
        self, db: Session, stock: dict[str, Stock]
    ) -> None:
        stock_id = stock["a"].id

        def operation(session: Session) -> None:
            row = session.get(Stock, stock_id)
            with SessionLocal() as competitor:
                competitor.get(Stock, stock_id).quantity -= 1
                competitor.commit()
            row.quantity -= 1
            session.flush()

        with pytest.raises(ConflictError) as exc_info:
            run_settlement(db, operation, label="always_stale", attempts=2, backoff_base=0)
        assert exc_info.value.details["attempts"] == 2
        assert _quantity(stock_id) == 48
