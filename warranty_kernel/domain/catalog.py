"""
Catalog types -- products published by providers, their pricing variants
and optional add-ons.

Responsibility:
    Frozen value objects for ``Product``, ``PricingVariant`` and
    ``ProductAddon``. These are the inputs of the eligibility filter, the
    variant resolver and the cost model.

Architecture position:
    Kernel > Domain -- pure value objects. ZERO I/O.

Invariants enforced:
    - Eligibility caps, prices and deductibles are non-negative.
    - Allowlists are stored as tuples (immutable); empty means no
      restriction on that axis.
    - ``PricingVariant.base_price_cents`` is required; ``dealer_cost_cents``
      is an optional override of the cost basis.
    - Variant terms use ``TermLimit``: a stored NULL means "unlimited".
    - Add-ons always carry a positive base price, so their cost basis is
      never undefined.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from warranty_kernel.domain.values import MileageBand, TermLimit
from warranty_kernel.exceptions import ValidationError


class ProductType(str, Enum):
    """Kind of coverage a product provides."""

    EXTENDED_WARRANTY = "EXTENDED_WARRANTY"
    GAP = "GAP"
    TIRE_RIM = "TIRE_RIM"
    APPEARANCE = "APPEARANCE"
    OTHER = "OTHER"


def _non_negative(field_name: str, value: int | None) -> None:
    if value is not None and value < 0:
        raise ValidationError(field_name, "must not be negative")


def _allowlist(values) -> tuple[str, ...]:
    return tuple(v.strip() for v in (values or ()) if v and v.strip())


@dataclass(frozen=True)
class Product:
    """
    A coverage offering published by a provider.

    Guarantees:
        - Never eligible-matched while ``published`` is False.
        - Product-level terms default to ``TermLimit.unset()``.
    """

    id: UUID
    provider_id: str
    name: str
    product_type: ProductType = ProductType.EXTENDED_WARRANTY
    program_code: str | None = None
    coverage_details: str | None = None
    exclusions: str | None = None
    term_months: TermLimit = field(default_factory=TermLimit.unset)
    term_km: TermLimit = field(default_factory=TermLimit.unset)
    deductible_cents: int | None = None
    max_vehicle_age_years: int | None = None
    max_mileage_km: int | None = None
    make_allowlist: tuple[str, ...] = ()
    model_allowlist: tuple[str, ...] = ()
    trim_allowlist: tuple[str, ...] = ()
    base_price_cents: int | None = None
    dealer_cost_cents: int | None = None
    published: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("name", "product name is required")
        if not self.provider_id:
            raise ValidationError("provider_id", "product must belong to a provider")
        for name in (
            "deductible_cents",
            "max_vehicle_age_years",
            "max_mileage_km",
            "base_price_cents",
            "dealer_cost_cents",
        ):
            _non_negative(name, getattr(self, name))
        object.__setattr__(self, "make_allowlist", _allowlist(self.make_allowlist))
        object.__setattr__(self, "model_allowlist", _allowlist(self.model_allowlist))
        object.__setattr__(self, "trim_allowlist", _allowlist(self.trim_allowlist))


@dataclass(frozen=True)
class PricingVariant:
    """
    One priced configuration under a product.

    Contract:
        Immutable once created; the only mutations are create and delete.

    Guarantees:
        - ``mileage_band`` defaults to ``[0, unbounded]``.
        - ``vehicle_class`` is None or a non-empty, trimmed string.
    """

    id: UUID
    product_id: UUID
    provider_id: str
    base_price_cents: int
    term_months: TermLimit = field(default_factory=TermLimit.unlimited)
    term_km: TermLimit = field(default_factory=TermLimit.unlimited)
    mileage_band: MileageBand = field(default_factory=MileageBand)
    vehicle_class: str | None = None
    claim_limit_cents: int | None = None
    deductible_cents: int = 0
    dealer_cost_cents: int | None = None
    is_default: bool = False
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        for name in ("base_price_cents", "deductible_cents", "dealer_cost_cents", "claim_limit_cents"):
            _non_negative(name, getattr(self, name))
        required = (self.vehicle_class or "").strip()
        object.__setattr__(self, "vehicle_class", required or None)

    @property
    def term_key(self) -> tuple[int | None, int | None, int]:
        """(term months, term km, deductible): unique within a product."""
        return (self.term_months.to_nullable(), self.term_km.to_nullable(), self.deductible_cents)


class AddonPricingType(str, Enum):
    """How a provider bills an add-on. Informational; pricing is per sale."""

    FIXED = "FIXED"
    PER_TERM = "PER_TERM"
    PER_CLAIM = "PER_CLAIM"


@dataclass(frozen=True)
class ProductAddon:
    """
    An optional extra sold on top of a product's pricing row.

    Guarantees:
        - ``base_price_cents`` is positive.
        - ``min_price_cents <= max_price_cents`` when both are set.
        - ``applicable_variant_ids`` is ignored while
          ``applies_to_all_variants`` is True.
    """

    id: UUID
    product_id: UUID
    provider_id: str
    name: str
    base_price_cents: int
    pricing_type: AddonPricingType = AddonPricingType.FIXED
    description: str | None = None
    applies_to_all_variants: bool = True
    applicable_variant_ids: tuple[UUID, ...] = ()
    min_price_cents: int | None = None
    max_price_cents: int | None = None
    dealer_cost_cents: int | None = None
    active: bool = True
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("name", "add-on name is required")
        if self.base_price_cents is None or self.base_price_cents <= 0:
            raise ValidationError("base_price_cents", "must be a positive amount")
        for name in ("min_price_cents", "max_price_cents", "dealer_cost_cents"):
            _non_negative(name, getattr(self, name))
        if (
            self.min_price_cents is not None
            and self.max_price_cents is not None
            and self.max_price_cents < self.min_price_cents
        ):
            raise ValidationError("max_price_cents", "must not be below min_price_cents")
        object.__setattr__(self, "name", self.name.strip())
        object.__setattr__(self, "applicable_variant_ids", tuple(self.applicable_variant_ids))
