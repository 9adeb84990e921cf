from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.exceptions import NotFound
from backend.app.models.inventory import Product, ProductVariant
from backend.app.models.sales import DiscountType
from backend.app.schemas.sales import LineItemIn
from backend.app.services.pricing import LineInput
from backend.app.services.stock_ledger import StockLine


@dataclass(frozen=True)
class ResolvedLine:
    """A requested line joined with catalog data (price, tax, cost)."""

    product: Product
    variant: ProductVariant | None
    quantity: int
    discount_type: DiscountType | None
    discount_value: Decimal

    @property
    def description(self) -> str:
        return self.variant.display_name if self.variant else self.product.name

    @property
    def unit_price(self) -> Decimal:
        return self.variant.sale_price if self.variant else self.product.sale_price

    @property
    def cost_price(self) -> Decimal:
        return self.variant.cost_price if self.variant else self.product.cost_price

    @property
    def tax_rate(self) -> Decimal:
        return self.product.tax_rate

    def pricing_input(self) -> LineInput:
        return LineInput(
            unit_price=self.unit_price,
            quantity=self.quantity,
            tax_rate=self.tax_rate,
            discount_type=self.discount_type,
            discount_value=self.discount_value,
        )

    def stock_line(self) -> StockLine:
        return StockLine(
            quantity=self.quantity,
            product_id=self.product.id,
            product_variant_id=self.variant.id if self.variant else None,
            label=self.description,
        )


def get_product(db: Session, *, tenant_id: UUID, product_id: UUID) -> Product:
    product = (
        db.query(Product)
        .filter(
            Product.id == product_id,
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True),
        )
        .first()
    )
    if product is None:
        raise NotFound("Product", product_id)
    return product


def get_variant(
    db: Session, *, tenant_id: UUID, product_id: UUID, variant_id: UUID
) -> ProductVariant:
    variant = (
        db.query(ProductVariant)
        .filter(
            ProductVariant.id == variant_id,
            ProductVariant.tenant_id == tenant_id,
            ProductVariant.product_id == product_id,
            ProductVariant.is_active.is_(True),
        )
        .first()
    )
    if variant is None:
        raise NotFound("Product variant", variant_id)
    return variant


def resolve_line_items(
    db: Session, *, tenant_id: UUID, items: list[LineItemIn]
) -> list[ResolvedLine]:
    resolved = []
    for item in items:
        product = get_product(db, tenant_id=tenant_id, product_id=item.product_id)
        variant = None
        if item.product_variant_id is not None:
            variant = get_variant(
                db,
                tenant_id=tenant_id,
                product_id=product.id,
                variant_id=item.product_variant_id,
            )
        resolved.append(
            ResolvedLine(
                product=product,
                variant=variant,
                quantity=item.quantity,
                discount_type=item.discount_type,
                discount_value=item.discount_value or Decimal("0"),
            )
        )
    return resolved
