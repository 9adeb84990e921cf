"""Tests for tax-inclusive line and document pricing."""
from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from backend.app.models.sales import DiscountType
from backend.app.services.pricing import (
    LineInput,
    calculate_discount,
    price_document,
    price_line,
    to_cents,
)

D = Decimal


def _line(price: str, qty: int = 1, rate: str = "21", **kw: Any) -> LineInput:
    return LineInput(unit_price=D(price), quantity=qty, tax_rate=D(rate), **kw)


# ─── Lines ────────────────────────────────────────────────────────────────────


class TestPriceLine:
    def test_tax_is_extracted_from_inclusive_price(self) -> None:
        line = price_line(_line("121.00", 2))
        assert line.total == D("242.00")
        assert line.tax_amount == D("42.00")
        assert line.subtotal == D("200.00")

    def test_reduced_rate(self) -> None:
        line = price_line(_line("110.50", rate="10.5"))
        assert line.tax_amount == D("10.50")
        assert line.subtotal == D("100.00")

    def test_zero_rate_has_no_tax(self) -> None:
        line = price_line(_line("50.00", 3, rate="0"))
        assert line.tax_amount == D("0.00")
        assert line.subtotal == line.total == D("150.00")

    def test_rounds_half_up_to_cents(self) -> None:
        line = price_line(_line("0.10", 3))
        assert line.total == D("0.30")
        assert line.tax_amount == D("0.05")
        assert line.subtotal == D("0.25")

    def test_percentage_line_discount(self) -> None:
        line = price_line(
            _line("121.00", discount_type=DiscountType.PERCENTAGE, discount_value=D("10"))
        )
        assert line.discount_amount == D("12.10")
        assert line.total == D("108.90")
        assert line.tax_amount == D("18.90")
        assert line.subtotal == D("90.00")

    def test_fixed_discount_is_capped_at_line_amount(self) -> None:
        line = price_line(
            _line("121.00", discount_type=DiscountType.FIXED, discount_value=D("500"))
        )
        assert line.discount_amount == D("121.00")
        assert line.total == D("0.00")

    def test_no_discount_clears_discount_fields(self) -> None:
        line = price_line(
            _line("121.00", discount_type=DiscountType.PERCENTAGE, discount_value=D("0"))
        )
        assert line.discount_type is None
        assert line.discount_value == D("0")

    @pytest.mark.parametrize(
        "line, message",
        [
            (_line("10.00", 0), "Quantity"),
            (_line("-1.00"), "Unit price"),
            (_line("0"), "Unit price"),
            (_line("10.00", rate="101"), "Tax rate"),
        ],
    )
    def test_invalid_input_raises(self, line: LineInput, message: str) -> None:
        with pytest.raises(ValueError, match=message):
            price_line(line)


class TestCalculateDiscount:
    def test_none_type_means_no_discount(self) -> None:
        assert calculate_discount(D("100"), None, D("10")) == D("0")

    def test_negative_value_means_no_discount(self) -> None:
        assert calculate_discount(D("100"), DiscountType.FIXED, D("-5")) == D("0")

    def test_percentage_over_100_is_capped(self) -> None:
        assert calculate_discount(D("80.00"), DiscountType.PERCENTAGE, D("150")) == D("80.00")


# ─── Documents ────────────────────────────────────────────────────────────────


class TestPriceDocument:
    def test_sums_lines_without_discount(self) -> None:
        doc = price_document([_line("121.00", 2), _line("110.50", rate="10.5")])
        assert doc.gross == D("352.50")
        assert doc.total == D("352.50")
        assert doc.tax_amount == D("52.50")
        assert doc.subtotal == D("300.00")
        assert doc.discount_amount == D("0")

    def test_document_discount_scales_tax(self) -> None:
        doc = price_document(
            [_line("121.00", 2), _line("110.50", rate="10.5")],
            DiscountType.PERCENTAGE,
            D("10"),
        )
        assert doc.discount_amount == D("35.25")
        assert doc.total == D("317.25")
        assert doc.tax_amount == D("47.25")
        assert doc.subtotal == D("305.25")
        assert doc.subtotal + doc.tax_amount - doc.discount_amount == doc.total

    def test_tax_breakdown_per_rate(self) -> None:
        doc = price_document(
            [_line("121.00", 2), _line("110.50", rate="10.5")],
            DiscountType.PERCENTAGE,
            D("10"),
        )
        by_rate = {bucket.rate: bucket for bucket in doc.tax_breakdown}
        assert by_rate[D("21")].base == D("180.00")
        assert by_rate[D("21")].amount == D("37.80")
        assert by_rate[D("10.5")].base == D("90.00")
        assert by_rate[D("10.5")].amount == D("9.45")
        assert doc.net_amount == D("270.00")

    def test_breakdown_absorbs_rounding_residue(self) -> None:
        doc = price_document(
            [_line("0.10", 3), _line("0.07", 1, rate="10.5"), _line("9.99", 7)],
            DiscountType.FIXED,
            D("1.11"),
        )
        assert sum(b.base for b in doc.tax_breakdown) == doc.net_amount
        assert sum(b.amount for b in doc.tax_breakdown) == doc.tax_amount

    def test_identity_holds_for_awkward_amounts(self) -> None:
        doc = price_document(
            [_line("33.33", 3), _line("0.01", 7, rate="10.5"), _line("19.99", 1, rate="27")],
            DiscountType.PERCENTAGE,
            D("7.5"),
        )
        assert doc.subtotal + doc.tax_amount - doc.discount_amount == doc.total
        assert doc.total == to_cents(doc.total)

    def test_fixed_discount_larger_than_gross_gives_zero_total(self) -> None:
        doc = price_document([_line("10.00")], DiscountType.FIXED, D("50"))
        assert doc.discount_amount == D("10.00")
        assert doc.total == D("0.00")
        assert doc.tax_amount == D("0.00")

    def test_empty_document_raises(self) -> None:
        with pytest.raises(ValueError, match="At least one item"):
            price_document([])
