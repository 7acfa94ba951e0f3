"""
warranty_engines.eligibility -- Pure product eligibility gate.

Responsibility:
    Decide whether a product is offered to a vehicle at all. This is a
    coarse boolean gate, not a ranking: every gate must pass.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import warranty_kernel/domain types.

Gates:
    - published: unpublished products never match.
    - vehicle_age: ``as_of.year - model_year`` must not exceed
      ``max_vehicle_age_years``; unknown model year fails when capped.
    - mileage: dealer-supplied mileage must not exceed ``max_mileage_km``;
      unknown mileage fails when capped.
    - make / model / trim: a non-empty allowlist requires the normalized
      vehicle field to be present and listed. Trim accepts a substring
      match in either direction (trim codes vs. trim names).

Purity:
    No clock access. The effective date is the explicit ``as_of``
    argument so results are reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from warranty_kernel.domain.catalog import Product
from warranty_kernel.domain.vehicle import VehicleAttributes, normalize_label

GATE_PUBLISHED = "published"
GATE_VEHICLE_AGE = "vehicle_age"
GATE_MILEAGE = "mileage"
GATE_MAKE = "make"
GATE_MODEL = "model"
GATE_TRIM = "trim"


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of the eligibility gate with the names of failed gates."""

    product_id: str
    failed_gates: tuple[str, ...] = ()

    @property
    def eligible(self) -> bool:
        return not self.failed_gates


def vehicle_age_years(model_year: int | None, as_of: date) -> int | None:
    if model_year is None:
        return None
    return as_of.year - model_year


def passes_age_gate(product: Product, vehicle: VehicleAttributes, as_of: date) -> bool:
    cap = product.max_vehicle_age_years
    if cap is None:
        return True
    age = vehicle_age_years(vehicle.model_year, as_of)
    return age is not None and age <= cap


def passes_mileage_gate(product: Product, vehicle: VehicleAttributes) -> bool:
    cap = product.max_mileage_km
    if cap is None:
        return True
    mileage = vehicle.valid_mileage_km
    return mileage is not None and mileage <= cap


def _normalized_allowlist(entries: tuple[str, ...]) -> list[str]:
    return [n for n in (normalize_label(e) for e in entries) if n]


def matches_allowlist(entries: tuple[str, ...], value: str | None) -> bool:
    """Exact match after normalization; empty allowlist matches anything."""
    allowed = _normalized_allowlist(entries)
    if not allowed:
        return True
    normalized = normalize_label(value)
    return bool(normalized) and normalized in allowed


def matches_trim_allowlist(entries: tuple[str, ...], trim: str | None) -> bool:
    """Substring match in either direction after normalization."""
    allowed = _normalized_allowlist(entries)
    if not allowed:
        return True
    normalized = normalize_label(trim)
    if not normalized:
        return False
    return any(normalized in t or t in normalized for t in allowed)


def evaluate_product_eligibility(
    product: Product,
    vehicle: VehicleAttributes,
    *,
    as_of: date,
) -> EligibilityResult:
    """Evaluate every gate and report which ones failed.

    Args:
        product: Catalog product with optional caps and allowlists.
        vehicle: Decoded vehicle plus dealer-supplied mileage.
        as_of: Effective date used for vehicle age.

    Returns:
        EligibilityResult; ``eligible`` is True only when no gate failed.
    """
    failed: list[str] = []
    if not product.published:
        failed.append(GATE_PUBLISHED)
    if not passes_age_gate(product, vehicle, as_of):
        failed.append(GATE_VEHICLE_AGE)
    if not passes_mileage_gate(product, vehicle):
        failed.append(GATE_MILEAGE)
    if not matches_allowlist(product.make_allowlist, vehicle.make):
        failed.append(GATE_MAKE)
    if not matches_allowlist(product.model_allowlist, vehicle.model):
        failed.append(GATE_MODEL)
    if not matches_trim_allowlist(product.trim_allowlist, vehicle.trim):
        failed.append(GATE_TRIM)
    return EligibilityResult(product_id=str(product.id), failed_gates=tuple(failed))


def is_product_eligible(product: Product, vehicle: VehicleAttributes, *, as_of: date) -> bool:
    """True when the product may be offered to the vehicle."""
    return evaluate_product_eligibility(product, vehicle, as_of=as_of).eligible
