"""
warranty_engines.variant_resolver -- Pure pricing-variant resolution.

Responsibility:
    Narrow a product's pricing variants to those usable for a vehicle and
    select exactly one primary variant by a deterministic tie-break.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import warranty_kernel/domain types.

Resolution stages:
    1. Vehicle fit (hard filter): mileage known, finite, non-negative and
       inside the variant's mileage band; a declared vehicle class must
       equal the vehicle's class exactly (case-sensitive).
    2. Optional search constraints: minimum term months, minimum term km,
       maximum deductible. Unlimited terms satisfy any minimum.
    3. Tie-break: if any candidate has a finite band maximum, keep only
       the candidates sharing the smallest such maximum (tightest band).
       Then prefer ``is_default``, else the first in stored order.

    Skipping stage 3's tightening would let a broad catch-all band price a
    vehicle that also falls inside a narrower, more specific band.

Failure modes:
    - ``resolve_variant`` returns None when nothing matches.
    - ``require_variant`` raises NoEligibleVariantError instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from warranty_kernel.domain.catalog import PricingVariant, Product
from warranty_kernel.domain.vehicle import VehicleAttributes
from warranty_kernel.exceptions import NoEligibleVariantError


@dataclass(frozen=True)
class VariantConstraints:
    """Dealer search filters applied after the vehicle-fit stage."""

    min_term_months: int | None = None
    min_term_km: int | None = None
    max_deductible_cents: int | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.min_term_months is None
            and self.min_term_km is None
            and self.max_deductible_cents is None
        )


def variant_fits_vehicle(variant: PricingVariant, vehicle: VehicleAttributes) -> bool:
    """Stage 1: mileage band and required vehicle class."""
    mileage = vehicle.valid_mileage_km
    if mileage is None:
        return False
    if not variant.mileage_band.contains(mileage):
        return False

    required_class = variant.vehicle_class
    if required_class:
        vehicle_class = (vehicle.vehicle_class or "").strip()
        if not vehicle_class or vehicle_class != required_class:
            return False

    return True


def variant_meets_constraints(variant: PricingVariant, constraints: VariantConstraints | None) -> bool:
    """Stage 2: minimum terms and deductible cap."""
    if constraints is None:
        return True
    if not variant.term_months.satisfies_minimum(constraints.min_term_months):
        return False
    if not variant.term_km.satisfies_minimum(constraints.min_term_km):
        return False
    cap = constraints.max_deductible_cents
    if cap is not None and variant.deductible_cents > cap:
        return False
    return True


def product_meets_constraints(product: Product, constraints: VariantConstraints | None) -> bool:
    """Stage 2 for a product offered without pricing rows.

    Product terms default to UNSET, which fails any requested minimum. An
    absent product deductible passes the cap.
    """
    if constraints is None:
        return True
    if not product.term_months.satisfies_minimum(constraints.min_term_months):
        return False
    if not product.term_km.satisfies_minimum(constraints.min_term_km):
        return False
    cap = constraints.max_deductible_cents
    deductible = product.deductible_cents
    if cap is not None and deductible is not None and deductible > cap:
        return False
    return True


def matching_variants(
    variants: Sequence[PricingVariant],
    vehicle: VehicleAttributes,
    constraints: VariantConstraints | None = None,
) -> list[PricingVariant]:
    """Stages 1 and 2, preserving stored order."""
    return [
        v for v in variants
        if variant_fits_vehicle(v, vehicle) and variant_meets_constraints(v, constraints)
    ]


def default_variant(candidates: Sequence[PricingVariant]) -> PricingVariant | None:
    """The ``is_default`` candidate, else the first one."""
    if not candidates:
        return None
    for v in candidates:
        if v.is_default:
            return v
    return candidates[0]


def select_primary_variant(candidates: Sequence[PricingVariant]) -> PricingVariant | None:
    """Stage 3: tightest finite band first, then default, then stored order."""
    if not candidates:
        return None

    finite_maxima = [v.mileage_band.max_km for v in candidates if v.mileage_band.max_km is not None]
    if not finite_maxima:
        return default_variant(candidates)

    tightest = min(finite_maxima)
    return default_variant([v for v in candidates if v.mileage_band.max_km == tightest])


def resolve_variant(
    variants: Sequence[PricingVariant],
    vehicle: VehicleAttributes,
    constraints: VariantConstraints | None = None,
) -> PricingVariant | None:
    """Resolve the primary pricing variant for a vehicle, or None."""
    return select_primary_variant(matching_variants(variants, vehicle, constraints))


def require_variant(
    product_id: str,
    variants: Sequence[PricingVariant],
    vehicle: VehicleAttributes,
    constraints: VariantConstraints | None = None,
) -> PricingVariant:
    """Like ``resolve_variant`` but raises NoEligibleVariantError on no match."""
    variant = resolve_variant(variants, vehicle, constraints)
    if variant is None:
        if vehicle.valid_mileage_km is None:
            reason = "vehicle mileage is unknown or invalid"
        elif not variants:
            reason = "product has no pricing variants"
        else:
            reason = "no pricing row matches vehicle"
        raise NoEligibleVariantError(product_id, reason)
    return variant
