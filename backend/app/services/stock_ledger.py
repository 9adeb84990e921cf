"""Per-location stock with an append-only movement trail.

Decrements validate every requested line before touching any row, so a
document either moves all of its stock or none. Quantities are written
through the mapper's version counter: a concurrent writer that read the
same row fails its flush with ``StaleDataError`` and is retried by the
settlement unit of work, re-validating against the fresh quantity.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.exceptions import InsufficientStock
from backend.app.models.inventory import Stock, StockMovement, StockMovementType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockLine:
    """One requested quantity change. Exactly one of the ids is set."""

    quantity: int
    product_id: UUID | None = None
    product_variant_id: UUID | None = None
    label: str = ""

    @property
    def key(self) -> tuple[str, UUID]:
        if self.product_variant_id is not None:
            return ("variant", self.product_variant_id)
        if self.product_id is not None:
            return ("product", self.product_id)
        raise ValueError("Stock line needs a product or a variant")


def _aggregate(lines: list[StockLine]) -> OrderedDict[tuple[str, UUID], StockLine]:
    merged: OrderedDict[tuple[str, UUID], StockLine] = OrderedDict()
    for line in lines:
        if line.quantity <= 0:
            raise ValueError("Quantity must be greater than zero")
        current = merged.get(line.key)
        if current is None:
            merged[line.key] = line
        else:
            merged[line.key] = StockLine(
                quantity=current.quantity + line.quantity,
                product_id=current.product_id,
                product_variant_id=current.product_variant_id,
                label=current.label,
            )
    return merged


def _load_stock(
    db: Session, *, tenant_id: UUID, location_id: UUID, line: StockLine
) -> Stock | None:
    query = db.query(Stock).filter(
        Stock.tenant_id == tenant_id, Stock.location_id == location_id
    )
    if line.product_variant_id is not None:
        query = query.filter(Stock.product_variant_id == line.product_variant_id)
    else:
        query = query.filter(Stock.product_id == line.product_id)
    return query.with_for_update().first()


def get_quantity(
    db: Session,
    *,
    tenant_id: UUID,
    location_id: UUID,
    product_id: UUID | None = None,
    product_variant_id: UUID | None = None,
) -> int:
    line = StockLine(quantity=1, product_id=product_id, product_variant_id=product_variant_id)
    stock = _load_stock(db, tenant_id=tenant_id, location_id=location_id, line=line)
    return stock.quantity if stock else 0


def validate_availability(
    db: Session, *, tenant_id: UUID, location_id: UUID, lines: list[StockLine]
) -> dict[tuple[str, UUID], Stock]:
    """Check every line against on-hand stock; raise on the first shortfall."""
    rows: dict[tuple[str, UUID], Stock] = {}
    for key, line in _aggregate(lines).items():
        stock = _load_stock(db, tenant_id=tenant_id, location_id=location_id, line=line)
        if stock is None or stock.quantity < line.quantity:
            available = stock.quantity if stock else 0
            raise InsufficientStock(line.label or str(key[1]), available, line.quantity)
        rows[key] = stock
    return rows


def _record(
    db: Session,
    *,
    stock: Stock,
    delta: int,
    movement_type: StockMovementType,
    reason: str,
    user_id: UUID | None,
    sale_id: UUID | None,
    purchase_order_id: UUID | None,
) -> StockMovement:
    before = stock.quantity
    stock.quantity = before + delta
    movement = StockMovement(
        tenant_id=stock.tenant_id,
        stock_id=stock.id,
        location_id=stock.location_id,
        product_id=stock.product_id,
        product_variant_id=stock.product_variant_id,
        type=movement_type,
        quantity=delta,
        quantity_before=before,
        quantity_after=stock.quantity,
        reason=reason,
        user_id=user_id,
        sale_id=sale_id,
        purchase_order_id=purchase_order_id,
    )
    db.add(movement)
    return movement


def decrement(
    db: Session,
    *,
    tenant_id: UUID,
    location_id: UUID,
    lines: list[StockLine],
    reason: str,
    user_id: UUID | None,
    movement_type: StockMovementType = StockMovementType.SALE,
    sale_id: UUID | None = None,
) -> list[StockMovement]:
    rows = validate_availability(
        db, tenant_id=tenant_id, location_id=location_id, lines=lines
    )
    movements = []
    for key, line in _aggregate(lines).items():
        stock = rows[key]
        movements.append(
            _record(
                db,
                stock=stock,
                delta=-line.quantity,
                movement_type=movement_type,
                reason=reason,
                user_id=user_id,
                sale_id=sale_id,
                purchase_order_id=None,
            )
        )
    db.flush()
    return movements


def increment(
    db: Session,
    *,
    tenant_id: UUID,
    location_id: UUID,
    lines: list[StockLine],
    reason: str,
    user_id: UUID | None,
    movement_type: StockMovementType,
    sale_id: UUID | None = None,
    purchase_order_id: UUID | None = None,
) -> list[StockMovement]:
    """Add stock (purchase receipt, sale reversal); creates missing rows."""
    movements = []
    for line in _aggregate(lines).values():
        stock = _load_stock(db, tenant_id=tenant_id, location_id=location_id, line=line)
        if stock is None:
            stock = Stock(
                tenant_id=tenant_id,
                location_id=location_id,
                product_id=None if line.product_variant_id else line.product_id,
                product_variant_id=line.product_variant_id,
                quantity=0,
            )
            db.add(stock)
            db.flush()
            logger.info(
                "Created stock row for %s at location %s", line.label or line.key[1], location_id
            )
        movements.append(
            _record(
                db,
                stock=stock,
                delta=line.quantity,
                movement_type=movement_type,
                reason=reason,
                user_id=user_id,
                sale_id=sale_id,
                purchase_order_id=purchase_order_id,
            )
        )
    db.flush()
    return movements
