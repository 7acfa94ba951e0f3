"""
Tests for the domain value objects.

Covers:
- TermLimit tags: unset vs unlimited vs bounded, nullable round trip
- MileageBand inclusive bounds and validation
- Numeric coercion at input boundaries
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from warranty_kernel.domain.values import (
    MileageBand,
    TermKind,
    TermLimit,
    finite_number,
    integral_or_none,
    optional_cents,
    parse_decimal,
    require_cents,
    round_half_up,
)
from warranty_kernel.exceptions import ValidationError


class TestTermLimit:

    def test_pricing_null_means_unlimited(self):
        assert TermLimit.from_nullable(None).is_unlimited

    def test_product_null_means_unset(self):
        term = TermLimit.from_nullable(None, null_means=TermKind.UNSET)
        assert term.kind is TermKind.UNSET
        assert not term.is_set

    def test_bounded_from_float(self):
        assert TermLimit.from_nullable(36.0) == TermLimit.of(36)

    @pytest.mark.parametrize("value", [float("nan"), "thirty", True])
    def test_non_numeric(self, value):
        with pytest.raises(ValidationError):
            TermLimit.from_nullable(value)

    def test_negative_bounded(self):
        with pytest.raises(ValidationError):
            TermLimit.of(-1)

    def test_tag_without_value(self):
        with pytest.raises(ValidationError):
            TermLimit(TermKind.UNLIMITED, 12)

    @pytest.mark.parametrize(
        "term, minimum, expected",
        [
            (TermLimit.unlimited(), 1_000_000, True),
            (TermLimit.unset(), 1, False),
            (TermLimit.unset(), None, True),
            (TermLimit.of(36), 36, True),
            (TermLimit.of(24), 36, False),
        ],
    )
    def test_satisfies_minimum(self, term, minimum, expected):
        assert term.satisfies_minimum(minimum) is expected

    def test_str(self):
        assert [str(t) for t in (TermLimit.of(48), TermLimit.unlimited(), TermLimit.unset())] == [
            "48", "unlimited", "unset",
        ]

    @given(st.one_of(st.none(), st.integers(min_value=0, max_value=10**7)))
    def test_nullable_round_trip(self, value):
        assert TermLimit.from_nullable(value).to_nullable() == value


class TestMileageBand:

    def test_inclusive_bounds(self):
        band = MileageBand(0, 100_000)
        assert band.contains(0)
        assert band.contains(100_000)
        assert not band.contains(100_001)

    def test_open_ended(self):
        band = MileageBand.from_nullable(50_000, None)
        assert not band.is_bounded
        assert band.contains(Decimal("9999999"))
        assert not band.contains(49_999)

    def test_null_min_is_zero(self):
        assert MileageBand.from_nullable(None, 10).min_km == 0

    @pytest.mark.parametrize("low, high", [(-1, None), (10, 5), (0, -3)])
    def test_invalid(self, low, high):
        with pytest.raises(ValidationError):
            MileageBand(low, high)


class TestNumbers:

    @pytest.mark.parametrize(
        "value, expected",
        [(5, Decimal(5)), (1.5, Decimal("1.5")), (Decimal("2"), Decimal(2)),
         (True, None), ("7", None), (float("inf"), None), (Decimal("NaN"), None), (None, None)],
    )
    def test_finite_number(self, value, expected):
        assert finite_number(value) == expected

    @pytest.mark.parametrize("value, expected", [(Decimal("2.5"), 3), (Decimal("-2.5"), -3), (Decimal("2.49"), 2)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_integral_or_none(self):
        assert integral_or_none(1999.5) == 2000
        assert integral_or_none("1999") is None

    def test_cents(self):
        assert require_cents("price", 1234.4) == 1234
        assert optional_cents("price", None) is None
        assert require_cents("refund", -5, allow_negative=True) == -5
        with pytest.raises(ValidationError):
            require_cents("price", -5)
        with pytest.raises(ValidationError):
            require_cents("price", None)

    @pytest.mark.parametrize("value", ["abc", "Infinity", "NaN", False, ""])
    def test_parse_decimal_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_decimal("rate", value)

    def test_parse_decimal_strips(self):
        assert parse_decimal("rate", " 0.13 ") == Decimal("0.13")
