"""
Tests for the product eligibility gate.

Covers:
- Published gate
- Vehicle age and mileage caps, including unknown inputs
- Make / model allowlists (normalized exact match)
- Trim allowlist (substring match in either direction)
- Monotonicity: adding a restriction never admits more vehicles
"""

from datetime import date
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from warranty_engines.eligibility import (
    GATE_MAKE,
    GATE_MILEAGE,
    GATE_MODEL,
    GATE_PUBLISHED,
    GATE_TRIM,
    GATE_VEHICLE_AGE,
    evaluate_product_eligibility,
    is_product_eligible,
    matches_trim_allowlist,
)
from warranty_kernel.domain.catalog import Product
from warranty_kernel.domain.vehicle import VehicleAttributes

AS_OF = date(2024, 6, 1)


def _product(**fields) -> Product:
    data = {"id": uuid4(), "provider_id": "provider-1", "name": "Powertrain", "published": True}
    data.update(fields)
    return Product(**data)


def _vehicle(**fields) -> VehicleAttributes:
    data = {
        "vin": "1HGCM82633A004352",
        "model_year": 2021,
        "make": "Honda",
        "model": "Accord",
        "trim": "EX-L",
        "mileage_km": 50_000,
    }
    data.update(fields)
    return VehicleAttributes(**data)


class TestPublishedGate:

    def test_unrestricted_published_product_is_eligible(self):
        assert is_product_eligible(_product(), _vehicle(), as_of=AS_OF)

    def test_unpublished_product_never_matches(self):
        result = evaluate_product_eligibility(_product(published=False), _vehicle(), as_of=AS_OF)
        assert not result.eligible
        assert result.failed_gates == (GATE_PUBLISHED,)


class TestAgeGate:

    def test_age_at_cap_passes(self):
        product = _product(max_vehicle_age_years=3)
        assert is_product_eligible(product, _vehicle(model_year=2021), as_of=AS_OF)

    def test_age_over_cap_fails(self):
        product = _product(max_vehicle_age_years=3)
        result = evaluate_product_eligibility(product, _vehicle(model_year=2020), as_of=AS_OF)
        assert result.failed_gates == (GATE_VEHICLE_AGE,)

    def test_unknown_year_fails_only_when_capped(self):
        vehicle = _vehicle(model_year="unknown")
        assert vehicle.model_year is None
        assert is_product_eligible(_product(), vehicle, as_of=AS_OF)
        assert not is_product_eligible(_product(max_vehicle_age_years=10), vehicle, as_of=AS_OF)

    def test_string_year_is_parsed(self):
        product = _product(max_vehicle_age_years=3)
        assert is_product_eligible(product, _vehicle(model_year="2022"), as_of=AS_OF)


class TestMileageGate:

    @pytest.mark.parametrize("mileage", [0, 119_999, 120_000])
    def test_within_cap(self, mileage):
        assert is_product_eligible(_product(max_mileage_km=120_000), _vehicle(mileage_km=mileage), as_of=AS_OF)

    def test_over_cap(self):
        result = evaluate_product_eligibility(
            _product(max_mileage_km=120_000), _vehicle(mileage_km=120_001), as_of=AS_OF
        )
        assert result.failed_gates == (GATE_MILEAGE,)

    @pytest.mark.parametrize("mileage", [None, float("nan"), float("inf"), -5, "90000"])
    def test_unknown_or_invalid_mileage_fails_when_capped(self, mileage):
        vehicle = _vehicle(mileage_km=mileage)
        assert not is_product_eligible(_product(max_mileage_km=120_000), vehicle, as_of=AS_OF)
        assert is_product_eligible(_product(), vehicle, as_of=AS_OF)


class TestAllowlists:

    def test_make_matches_case_and_punctuation_insensitively(self):
        product = _product(make_allowlist=("HONDA", "Toyota"))
        assert is_product_eligible(product, _vehicle(make=" honda "), as_of=AS_OF)

    def test_make_not_listed(self):
        product = _product(make_allowlist=("Toyota",))
        result = evaluate_product_eligibility(product, _vehicle(), as_of=AS_OF)
        assert result.failed_gates == (GATE_MAKE,)

    def test_missing_make_fails_non_empty_allowlist(self):
        product = _product(make_allowlist=("Honda",))
        assert not is_product_eligible(product, _vehicle(make=None), as_of=AS_OF)

    def test_model_is_exact_not_substring(self):
        product = _product(model_allowlist=("Accord Hybrid",))
        result = evaluate_product_eligibility(product, _vehicle(model="Accord"), as_of=AS_OF)
        assert result.failed_gates == (GATE_MODEL,)

    @pytest.mark.parametrize(
        "allowed, trim, expected",
        [
            (("EX",), "EX-L Navi", True),       # allowlist entry inside vehicle trim
            (("EX-L Navi",), "EX L", True),     # vehicle trim inside allowlist entry
            (("Touring",), "EX-L", False),
            (("EX",), None, False),
            ((), None, True),
        ],
    )
    def test_trim_substring_either_direction(self, allowed, trim, expected):
        assert matches_trim_allowlist(allowed, trim) is expected

    def test_all_failed_gates_reported(self):
        product = _product(
            published=False,
            max_vehicle_age_years=1,
            max_mileage_km=10_000,
            make_allowlist=("Ford",),
            model_allowlist=("F-150",),
            trim_allowlist=("Lariat",),
        )
        result = evaluate_product_eligibility(product, _vehicle(), as_of=AS_OF)
        assert result.failed_gates == (
            GATE_PUBLISHED, GATE_VEHICLE_AGE, GATE_MILEAGE, GATE_MAKE, GATE_MODEL, GATE_TRIM,
        )


# ---------------------------------------------------------------------------
# Monotonicity
# ---------------------------------------------------------------------------

_makes = st.sampled_from(["Honda", "Toyota", "Ford", "Kia"])


@st.composite
def _vehicles(draw):
    return _vehicle(
        model_year=draw(st.one_of(st.none(), st.integers(min_value=1995, max_value=2025))),
        make=draw(_makes),
        mileage_km=draw(st.one_of(st.none(), st.integers(min_value=0, max_value=400_000))),
    )


class TestMonotonicity:

    @settings(max_examples=200, deadline=None)
    @given(
        vehicle=_vehicles(),
        age_cap=st.integers(min_value=0, max_value=30),
        km_cap=st.integers(min_value=0, max_value=400_000),
        allowed=st.lists(_makes, min_size=1, max_size=3, unique=True),
    )
    def test_adding_restrictions_never_admits_more(self, vehicle, age_cap, km_cap, allowed):
        loose = _product()
        with_age = _product(max_vehicle_age_years=age_cap)
        with_age_km = _product(max_vehicle_age_years=age_cap, max_mileage_km=km_cap)
        strict = _product(
            max_vehicle_age_years=age_cap,
            max_mileage_km=km_cap,
            make_allowlist=tuple(allowed),
        )

        ladder = [
            is_product_eligible(p, vehicle, as_of=AS_OF)
            for p in (loose, with_age, with_age_km, strict)
        ]
        # Once a vehicle drops out, stricter products never take it back.
        for looser, stricter in zip(ladder, ladder[1:]):
            assert looser or not stricter

    @settings(max_examples=100, deadline=None)
    @given(vehicle=_vehicles(), cap=st.integers(min_value=0, max_value=400_000))
    def test_lowering_mileage_cap_never_admits_more(self, vehicle, cap):
        higher = is_product_eligible(_product(max_mileage_km=cap + 1), vehicle, as_of=AS_OF)
        lower = is_product_eligible(_product(max_mileage_km=cap), vehicle, as_of=AS_OF)
        assert higher or not lower
