"""
Tests for the dealer cost model.

Covers:
- Cost basis selection (dealer cost over base price, undefined otherwise)
- Markup clamping to [0, 200]
- Retail / margin rounding half-up
- Batch totals
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from warranty_engines.cost_model import (
    batch_totals,
    clamp_markup_pct,
    cost_basis,
    margin,
    margin_pct,
    quote,
    require_cost_basis,
    retail,
)
from warranty_kernel.exceptions import PricingUnavailableError, ValidationError


def _source(dealer_cost=None, base_price=None):
    return SimpleNamespace(dealer_cost_cents=dealer_cost, base_price_cents=base_price)


class TestCostBasis:

    def test_dealer_cost_wins(self):
        assert cost_basis(_source(dealer_cost=15_000, base_price=20_000)) == 15_000

    def test_zero_dealer_cost_is_a_real_cost(self):
        assert cost_basis(_source(dealer_cost=0, base_price=20_000)) == 0

    @pytest.mark.parametrize("bad", [None, float("nan"), float("inf"), "15000", True])
    def test_non_numeric_dealer_cost_falls_back_to_base(self, bad):
        assert cost_basis(_source(dealer_cost=bad, base_price=20_000)) == 20_000

    def test_undefined_when_neither_is_numeric(self):
        assert cost_basis(_source()) is None
        assert cost_basis(None) is None

    def test_require_cost_basis_fails_closed(self):
        with pytest.raises(PricingUnavailableError):
            require_cost_basis(_source(), "variant-1")

    def test_fractional_cost_rounds_half_up(self):
        assert cost_basis(_source(dealer_cost=Decimal("100.5"))) == 101


class TestMarkup:

    @pytest.mark.parametrize(
        "value, expected",
        [
            (10, Decimal("10")),
            (250, Decimal("200")),
            (-5, Decimal("0")),
            ("12.5", Decimal("12.5")),
            ("lots", Decimal("0")),
            (float("nan"), Decimal("0")),
            (None, Decimal("0")),
        ],
    )
    def test_clamp(self, value, expected):
        assert clamp_markup_pct(value) == expected

    def test_retail_clamps_markup(self):
        assert retail(10_000, 250) == 30_000

    def test_retail_without_markup_is_cost(self):
        assert retail(10_000, None) == 10_000

    def test_retail_of_undefined_cost(self):
        assert retail(None, 10) is None

    def test_retail_rounds_half_up(self):
        # 333 * 1.15 = 382.95
        assert retail(333, 15) == 383
        # 50 * 1.01 = 50.5
        assert retail(50, 1) == 51


class TestMargin:

    def test_margin_and_pct(self):
        assert margin(20_000, 22_000) == 2_000
        assert margin_pct(20_000, 22_000) == Decimal("10")

    def test_margin_pct_undefined_for_zero_cost(self):
        assert margin_pct(0, 1_000) is None
        assert margin(None, 1_000) is None

    def test_quote(self):
        priced = quote(_source(base_price=20_000), 10)
        assert (priced.cost_cents, priced.retail_cents, priced.margin_cents) == (20_000, 22_000, 2_000)
        assert priced.markup_pct == Decimal("10")

    def test_quote_without_markup_shows_cost(self):
        priced = quote(_source(base_price=20_000), None)
        assert priced.retail_cents == 20_000
        assert priced.markup_pct is None

    def test_quote_undefined_cost(self):
        assert quote(_source(), 10) is None


class TestBatchTotals:

    def test_totals_with_tax(self):
        assert batch_totals([20_000, 15_000], Decimal("0.13")) == (35_000, 4_550, 39_550)

    def test_tax_rounds_half_up(self):
        # 1005 * 0.05 = 50.25 -> 50 ; 1010 * 0.05 = 50.5 -> 51
        assert batch_totals([1_005], Decimal("0.05")) == (1_005, 50, 1_055)
        assert batch_totals([1_010], Decimal("0.05")) == (1_010, 51, 1_061)

    def test_empty_batch(self):
        assert batch_totals([], Decimal("0")) == (0, 0, 0)

    @pytest.mark.parametrize("rate", [Decimal("-0.01"), Decimal("NaN"), 0.13])
    def test_invalid_rate(self, rate):
        with pytest.raises(ValidationError):
            batch_totals([100], rate)
