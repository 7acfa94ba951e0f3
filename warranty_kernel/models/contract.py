"""
Module: warranty_kernel.models.contract
Responsibility: ORM persistence for customer warranty contracts,
    including the flattened pricing snapshot, the add-on snapshot and
    per-stage attribution.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - Business fields are frozen once status leaves DRAFT; only status,
      stamps, updated_at and version may change (db/immutability.py).
    - Only DRAFT contracts may be deleted (db/immutability.py).
    - The pricing snapshot is present iff ``pricing_base_price_cents`` is
      not NULL.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from warranty_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from warranty_kernel.domain.contract import AddonSnapshot, Contract, ContractStatus, PricingSnapshot

# Columns that may change after a contract leaves DRAFT.
LIFECYCLE_COLUMNS: frozenset[str] = frozenset({
    "status",
    "sold_by_user_id", "sold_by_email", "sold_at",
    "remitted_by_user_id", "remitted_by_email", "remitted_at",
    "paid_by_user_id", "paid_by_email", "paid_at",
    "updated_at", "version",
})


class ContractModel(TrackedBase):
    """Persistent warranty contract."""

    __tablename__ = "warranty_contracts"

    __table_args__ = (
        Index("idx_contract_dealer_status", "dealer_id", "status"),
        Index("idx_contract_provider", "provider_id"),
    )

    contract_number: Mapped[str] = mapped_column(String(100), nullable=False)
    dealer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ContractStatus.DRAFT.value)

    provider_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    product_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    pricing_variant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    pricing_term_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pricing_term_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pricing_deductible_cents: Mapped[int | None] = mapped_column(nullable=True)
    pricing_base_price_cents: Mapped[int | None] = mapped_column(nullable=True)
    pricing_dealer_cost_cents: Mapped[int | None] = mapped_column(nullable=True)
    addon_snapshot: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    addon_total_cost_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    addon_total_retail_cents: Mapped[int] = mapped_column(nullable=False, default=0)

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_province: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    vin: Mapped[str | None] = mapped_column(String(32), nullable=True)
    vehicle_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    vehicle_make: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_trim: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_mileage_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    vehicle_body_class: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_engine: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_transmission: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_class: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sold_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sold_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sold_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    remitted_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    remitted_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    remitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    paid_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    paid_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<Contract {self.id} {self.contract_number} status={self.status}>"

    def to_dto(self) -> Contract:
        pricing = None
        if self.pricing_base_price_cents is not None:
            pricing = PricingSnapshot(
                term_months=self.pricing_term_months,
                term_km=self.pricing_term_km,
                deductible_cents=self.pricing_deductible_cents or 0,
                base_price_cents=self.pricing_base_price_cents,
                dealer_cost_cents=self.pricing_dealer_cost_cents,
            )
        return Contract(
            id=self.id,
            contract_number=self.contract_number,
            dealer_id=self.dealer_id,
            customer_name=self.customer_name,
            status=ContractStatus(self.status),
            provider_id=self.provider_id,
            product_id=self.product_id,
            pricing_variant_id=self.pricing_variant_id,
            pricing=pricing,
            addons=tuple(AddonSnapshot.from_dict(item) for item in self.addon_snapshot or ()),
            addon_total_cost_cents=self.addon_total_cost_cents,
            addon_total_retail_cents=self.addon_total_retail_cents,
            customer_email=self.customer_email,
            customer_phone=self.customer_phone,
            customer_address=self.customer_address,
            customer_city=self.customer_city,
            customer_province=self.customer_province,
            customer_postal_code=self.customer_postal_code,
            vin=self.vin,
            vehicle_year=self.vehicle_year,
            vehicle_make=self.vehicle_make,
            vehicle_model=self.vehicle_model,
            vehicle_trim=self.vehicle_trim,
            vehicle_mileage_km=self.vehicle_mileage_km,
            vehicle_body_class=self.vehicle_body_class,
            vehicle_engine=self.vehicle_engine,
            vehicle_transmission=self.vehicle_transmission,
            vehicle_class=self.vehicle_class,
            created_by_user_id=self.created_by_user_id,
            created_by_email=self.created_by_email,
            sold_by_user_id=self.sold_by_user_id,
            sold_by_email=self.sold_by_email,
            sold_at=self.sold_at,
            remitted_by_user_id=self.remitted_by_user_id,
            remitted_by_email=self.remitted_by_email,
            remitted_at=self.remitted_at,
            paid_by_user_id=self.paid_by_user_id,
            paid_by_email=self.paid_by_email,
            paid_at=self.paid_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )

    @staticmethod
    def column_values(dto: Contract) -> dict:
        pricing = dto.pricing
        return {
            "contract_number": dto.contract_number,
            "dealer_id": dto.dealer_id,
            "status": dto.status.value,
            "provider_id": dto.provider_id,
            "product_id": dto.product_id,
            "pricing_variant_id": dto.pricing_variant_id,
            "pricing_term_months": pricing.term_months if pricing else None,
            "pricing_term_km": pricing.term_km if pricing else None,
            "pricing_deductible_cents": pricing.deductible_cents if pricing else None,
            "pricing_base_price_cents": pricing.base_price_cents if pricing else None,
            "pricing_dealer_cost_cents": pricing.dealer_cost_cents if pricing else None,
            "addon_snapshot": [item.to_dict() for item in dto.addons],
            "addon_total_cost_cents": dto.addon_total_cost_cents,
            "addon_total_retail_cents": dto.addon_total_retail_cents,
            "customer_name": dto.customer_name,
            "customer_email": dto.customer_email,
            "customer_phone": dto.customer_phone,
            "customer_address": dto.customer_address,
            "customer_city": dto.customer_city,
            "customer_province": dto.customer_province,
            "customer_postal_code": dto.customer_postal_code,
            "vin": dto.vin,
            "vehicle_year": dto.vehicle_year,
            "vehicle_make": dto.vehicle_make,
            "vehicle_model": dto.vehicle_model,
            "vehicle_trim": dto.vehicle_trim,
            "vehicle_mileage_km": dto.vehicle_mileage_km,
            "vehicle_body_class": dto.vehicle_body_class,
            "vehicle_engine": dto.vehicle_engine,
            "vehicle_transmission": dto.vehicle_transmission,
            "vehicle_class": dto.vehicle_class,
            "created_by_user_id": dto.created_by_user_id,
            "created_by_email": dto.created_by_email,
            "sold_by_user_id": dto.sold_by_user_id,
            "sold_by_email": dto.sold_by_email,
            "sold_at": dto.sold_at,
            "remitted_by_user_id": dto.remitted_by_user_id,
            "remitted_by_email": dto.remitted_by_email,
            "remitted_at": dto.remitted_at,
            "paid_by_user_id": dto.paid_by_user_id,
            "paid_by_email": dto.paid_by_email,
            "paid_at": dto.paid_at,
            "created_at": dto.created_at,
            "updated_at": dto.updated_at,
            "version": dto.version,
        }

    @classmethod
    def from_dto(cls, dto: Contract) -> ContractModel:
        return cls(id=dto.id, **cls.column_values(dto))
