"""Tax-inclusive pricing.

Unit prices already include VAT. For every line::

    base       = unit_price * quantity
    total      = base - line_discount
    tax        = total * rate / (100 + rate)
    subtotal   = total - tax

The document discount is taken from the sum of line totals and the tax is
scaled by ``total / gross`` so it matches the discounted amount. The
document subtotal is what remains once that tax is removed from the
pre-discount gross, which keeps ``subtotal + tax - discount == total``
exact to the cent.

All amounts are ``Decimal`` rounded half-up to cents at each step.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from backend.app.models.sales import DiscountType

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ─── Inputs / results ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LineInput:
    unit_price: Decimal
    quantity: int
    tax_rate: Decimal
    discount_type: DiscountType | None = None
    discount_value: Decimal = ZERO


@dataclass(frozen=True)
class LinePricing:
    unit_price: Decimal
    quantity: int
    tax_rate: Decimal
    discount_type: DiscountType | None
    discount_value: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class TaxBucket:
    """Net base and tax for one VAT rate, after the document discount."""

    rate: Decimal
    base: Decimal
    amount: Decimal


@dataclass(frozen=True)
class DocumentPricing:
    lines: list[LinePricing]
    gross: Decimal
    discount_type: DiscountType | None
    discount_value: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    tax_breakdown: list[TaxBucket] = field(default_factory=list)

    @property
    def net_amount(self) -> Decimal:
        """Taxable amount after discount (what the fiscal authority calls net)."""
        return self.total - self.tax_amount


# ─── Calculations ─────────────────────────────────────────────────────────────


def calculate_discount(
    base: Decimal, discount_type: DiscountType | None, value: Decimal | None
) -> Decimal:
    """Discount amount for ``base``; never negative and never above ``base``."""
    if discount_type is None or value is None or value <= 0 or base <= 0:
        return ZERO
    if discount_type == DiscountType.PERCENTAGE:
        return min(to_cents(base * value / HUNDRED), base)
    return min(to_cents(value), base)


def price_line(line: LineInput) -> LinePricing:
    if line.quantity <= 0:
        raise ValueError("Quantity must be greater than zero")
    if line.unit_price <= 0:
        raise ValueError("Unit price must be greater than zero")
    if line.tax_rate < 0 or line.tax_rate > HUNDRED:
        raise ValueError("Tax rate must be between 0 and 100")

    base = to_cents(line.unit_price * line.quantity)
    discount = calculate_discount(base, line.discount_type, line.discount_value)
    total = base - discount
    tax = to_cents(total * line.tax_rate / (HUNDRED + line.tax_rate))
    return LinePricing(
        unit_price=line.unit_price,
        quantity=line.quantity,
        tax_rate=line.tax_rate,
        discount_type=line.discount_type if discount > 0 else None,
        discount_value=line.discount_value if discount > 0 else ZERO,
        discount_amount=discount,
        subtotal=total - tax,
        tax_amount=tax,
        total=total,
    )


def _tax_breakdown(
    lines: list[LinePricing], ratio: Decimal, tax_amount: Decimal, net_amount: Decimal
) -> list[TaxBucket]:
    base_by_rate: dict[Decimal, Decimal] = defaultdict(lambda: ZERO)
    tax_by_rate: dict[Decimal, Decimal] = defaultdict(lambda: ZERO)
    for line in lines:
        base_by_rate[line.tax_rate] += line.subtotal
        tax_by_rate[line.tax_rate] += line.tax_amount

    buckets = [
        TaxBucket(
            rate=rate,
            base=to_cents(base_by_rate[rate] * ratio),
            amount=to_cents(tax_by_rate[rate] * ratio),
        )
        for rate in sorted(base_by_rate)
    ]
    if not buckets:
        return buckets

    # Rounding residue goes to the largest bucket so the breakdown sums exactly.
    largest = max(range(len(buckets)), key=lambda i: buckets[i].base)
    base_residue = net_amount - sum((b.base for b in buckets), ZERO)
    tax_residue = tax_amount - sum((b.amount for b in buckets), ZERO)
    bucket = buckets[largest]
    buckets[largest] = TaxBucket(
        rate=bucket.rate,
        base=bucket.base + base_residue,
        amount=bucket.amount + tax_residue,
    )
    return buckets


def price_document(
    lines: list[LineInput],
    discount_type: DiscountType | None = None,
    discount_value: Decimal | None = None,
) -> DocumentPricing:
    if not lines:
        raise ValueError("At least one item is required")

    priced = [price_line(line) for line in lines]
    gross = sum((line.total for line in priced), ZERO)
    line_tax = sum((line.tax_amount for line in priced), ZERO)

    discount = calculate_discount(gross, discount_type, discount_value)
    total = gross - discount
    ratio = total / gross if gross > 0 else Decimal("1")
    tax = to_cents(line_tax * ratio)

    return DocumentPricing(
        lines=priced,
        gross=gross,
        discount_type=discount_type if discount > 0 else None,
        discount_value=(discount_value or ZERO) if discount > 0 else ZERO,
        discount_amount=discount,
        subtotal=gross - tax,
        tax_amount=tax,
        total=total,
        tax_breakdown=_tax_breakdown(priced, ratio, tax, total - tax),
    )
