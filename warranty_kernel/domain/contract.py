"""
Contract types -- one customer sale and its frozen pricing snapshot.

Responsibility:
    ``Contract`` is the immutable snapshot of a sale as stored; the
    lifecycle engine derives new snapshots from it. ``PricingSnapshot`` is
    the copy of the selected variant's price terms taken at selection
    time and never re-derived; ``AddonSnapshot`` does the same for each
    add-on sold with it.

Architecture position:
    Kernel > Domain -- pure value objects. ZERO I/O.

Invariants enforced:
    - ``warranty_id`` is a deterministic function of the contract id.
    - The field groups below define which keys a patch may carry; the
      lifecycle engine enforces which of them are editable per status.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from warranty_kernel.domain.catalog import PricingVariant


class ContractStatus(str, Enum):
    """Contract lifecycle status. Strictly linear."""

    DRAFT = "DRAFT"
    SOLD = "SOLD"
    REMITTED = "REMITTED"
    PAID = "PAID"


def warranty_id_from_contract_id(contract_id: UUID | str) -> str:
    """Human-readable warranty id: ``WH-`` plus 12 hex chars of the id."""
    compact = str(contract_id).replace("-", "").upper()
    return f"WH-{compact[:12]}"


@dataclass(frozen=True)
class PricingSnapshot:
    """Price terms copied from the selected variant at selection time."""

    term_months: int | None
    term_km: int | None
    deductible_cents: int
    base_price_cents: int
    dealer_cost_cents: int | None

    @classmethod
    def from_variant(cls, variant: PricingVariant) -> PricingSnapshot:
        return cls(
            term_months=variant.term_months.to_nullable(),
            term_km=variant.term_km.to_nullable(),
            deductible_cents=variant.deductible_cents,
            base_price_cents=variant.base_price_cents,
            dealer_cost_cents=variant.dealer_cost_cents,
        )


@dataclass(frozen=True)
class AddonSnapshot:
    """
    One add-on as sold: its terms and the prices fixed at selection time.

    ``cost_cents`` is the dealer's cost basis; ``retail_cents`` is that
    cost under the dealer's markup when the offer was selected.
    """

    addon_id: UUID
    name: str
    pricing_type: str
    base_price_cents: int
    min_price_cents: int
    max_price_cents: int
    cost_cents: int
    retail_cents: int
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "addon_id": str(self.addon_id),
            "name": self.name,
            "description": self.description,
            "pricing_type": self.pricing_type,
            "base_price_cents": self.base_price_cents,
            "min_price_cents": self.min_price_cents,
            "max_price_cents": self.max_price_cents,
            "cost_cents": self.cost_cents,
            "retail_cents": self.retail_cents,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AddonSnapshot:
        return cls(
            addon_id=UUID(str(data["addon_id"])),
            name=data["name"],
            description=data.get("description"),
            pricing_type=data["pricing_type"],
            base_price_cents=data["base_price_cents"],
            min_price_cents=data["min_price_cents"],
            max_price_cents=data["max_price_cents"],
            cost_cents=data["cost_cents"],
            retail_cents=data["retail_cents"],
        )


CUSTOMER_FIELDS: tuple[str, ...] = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "customer_address",
    "customer_city",
    "customer_province",
    "customer_postal_code",
)

VEHICLE_FIELDS: tuple[str, ...] = (
    "vin",
    "vehicle_year",
    "vehicle_make",
    "vehicle_model",
    "vehicle_trim",
    "vehicle_mileage_km",
    "vehicle_body_class",
    "vehicle_engine",
    "vehicle_transmission",
    "vehicle_class",
)

SELECTION_FIELDS: tuple[str, ...] = (
    "product_id",
    "pricing_variant_id",
    "provider_id",
    "pricing",
    "addons",
    "addon_total_cost_cents",
    "addon_total_retail_cents",
)

# Keys an update patch may carry besides ``status``.
EDITABLE_FIELDS: frozenset[str] = frozenset(
    ("contract_number",) + CUSTOMER_FIELDS + VEHICLE_FIELDS + SELECTION_FIELDS
)

# Attribution written by the lifecycle engine, never by a patch.
STAMP_FIELDS: frozenset[str] = frozenset({
    "sold_by_user_id", "sold_by_email", "sold_at",
    "remitted_by_user_id", "remitted_by_email", "remitted_at",
    "paid_by_user_id", "paid_by_email", "paid_at",
})


@dataclass(frozen=True)
class Contract:
    """
    Immutable snapshot of a contract record.

    ``version`` increases by one on every save and is the optimistic
    concurrency token checked by storage backends.
    """

    id: UUID
    contract_number: str
    dealer_id: str | None
    customer_name: str
    status: ContractStatus = ContractStatus.DRAFT
    provider_id: str | None = None
    product_id: UUID | None = None
    pricing_variant_id: UUID | None = None
    pricing: PricingSnapshot | None = None
    addons: tuple[AddonSnapshot, ...] = ()
    addon_total_cost_cents: int = 0
    addon_total_retail_cents: int = 0

    customer_email: str | None = None
    customer_phone: str | None = None
    customer_address: str | None = None
    customer_city: str | None = None
    customer_province: str | None = None
    customer_postal_code: str | None = None

    vin: str | None = None
    vehicle_year: int | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_trim: str | None = None
    vehicle_mileage_km: int | None = None
    vehicle_body_class: str | None = None
    vehicle_engine: str | None = None
    vehicle_transmission: str | None = None
    vehicle_class: str | None = None

    created_by_user_id: str | None = None
    created_by_email: str | None = None
    sold_by_user_id: str | None = None
    sold_by_email: str | None = None
    sold_at: datetime | None = None
    remitted_by_user_id: str | None = None
    remitted_by_email: str | None = None
    remitted_at: datetime | None = None
    paid_by_user_id: str | None = None
    paid_by_email: str | None = None
    paid_at: datetime | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1

    @property
    def warranty_id(self) -> str:
        return warranty_id_from_contract_id(self.id)

    @property
    def is_locked(self) -> bool:
        return self.status is not ContractStatus.DRAFT

    @property
    def has_pricing(self) -> bool:
        return self.pricing is not None
