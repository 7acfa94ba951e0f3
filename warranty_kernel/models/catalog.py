"""
Module: warranty_kernel.models.catalog
Responsibility: ORM persistence for provider products, their pricing
    variants and their add-ons.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - Pricing variants are never updated (db/immutability.py); the only
      mutations are INSERT and DELETE.
    - Add-on names are unique within a product.
    - Variant term columns store NULL for "unlimited"; product term
      columns carry an explicit kind so "unset" and "unlimited" survive
      a round trip.
    - ``position`` preserves stored order within a product, which the
      variant resolver relies on for its final tie-break.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from warranty_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from warranty_kernel.domain.catalog import (
    AddonPricingType,
    PricingVariant,
    Product,
    ProductAddon,
    ProductType,
)
from warranty_kernel.domain.values import MileageBand, TermKind, TermLimit


class ProductModel(TrackedBase):
    """Persistent catalog product."""

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_product_provider", "provider_id"),
        Index("idx_product_published", "published"),
    )

    provider_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_type: Mapped[str] = mapped_column(String(30), nullable=False)
    program_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    coverage_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    exclusions: Mapped[str | None] = mapped_column(Text, nullable=True)

    term_months_kind: Mapped[str] = mapped_column(String(10), nullable=False, default=TermKind.UNSET.value)
    term_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    term_km_kind: Mapped[str] = mapped_column(String(10), nullable=False, default=TermKind.UNSET.value)
    term_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deductible_cents: Mapped[int | None] = mapped_column(nullable=True)

    max_vehicle_age_years: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_mileage_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    make_allowlist: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    model_allowlist: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    trim_allowlist: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    base_price_cents: Mapped[int | None] = mapped_column(nullable=True)
    dealer_cost_cents: Mapped[int | None] = mapped_column(nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.name!r} published={self.published}>"

    def to_dto(self) -> Product:
        """Convert ORM model to frozen domain DTO."""
        return Product(
            id=self.id,
            provider_id=self.provider_id,
            name=self.name,
            product_type=ProductType(self.product_type),
            program_code=self.program_code,
            coverage_details=self.coverage_details,
            exclusions=self.exclusions,
            term_months=TermLimit(TermKind(self.term_months_kind), self.term_months),
            term_km=TermLimit(TermKind(self.term_km_kind), self.term_km),
            deductible_cents=self.deductible_cents,
            max_vehicle_age_years=self.max_vehicle_age_years,
            max_mileage_km=self.max_mileage_km,
            make_allowlist=tuple(self.make_allowlist or ()),
            model_allowlist=tuple(self.model_allowlist or ()),
            trim_allowlist=tuple(self.trim_allowlist or ()),
            base_price_cents=self.base_price_cents,
            dealer_cost_cents=self.dealer_cost_cents,
            published=self.published,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )

    @staticmethod
    def column_values(dto: Product) -> dict:
        return {
            "provider_id": dto.provider_id,
            "name": dto.name,
            "product_type": dto.product_type.value,
            "program_code": dto.program_code,
            "coverage_details": dto.coverage_details,
            "exclusions": dto.exclusions,
            "term_months_kind": dto.term_months.kind.value,
            "term_months": dto.term_months.value,
            "term_km_kind": dto.term_km.kind.value,
            "term_km": dto.term_km.value,
            "deductible_cents": dto.deductible_cents,
            "max_vehicle_age_years": dto.max_vehicle_age_years,
            "max_mileage_km": dto.max_mileage_km,
            "make_allowlist": list(dto.make_allowlist),
            "model_allowlist": list(dto.model_allowlist),
            "trim_allowlist": list(dto.trim_allowlist),
            "base_price_cents": dto.base_price_cents,
            "dealer_cost_cents": dto.dealer_cost_cents,
            "published": dto.published,
            "created_at": dto.created_at,
            "updated_at": dto.updated_at,
            "version": dto.version,
        }

    @classmethod
    def from_dto(cls, dto: Product) -> ProductModel:
        """Create ORM model from domain DTO."""
        return cls(id=dto.id, **cls.column_values(dto))


class PricingVariantModel(Base):
    """Persistent pricing variant. Insert and delete only."""

    __tablename__ = "pricing_variants"

    __table_args__ = (
        Index("idx_variant_product_position", "product_id", "position"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_id: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    term_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    term_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_km: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    vehicle_class: Mapped[str | None] = mapped_column(String(100), nullable=True)

    claim_limit_cents: Mapped[int | None] = mapped_column(nullable=True)
    deductible_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    base_price_cents: Mapped[int] = mapped_column(nullable=False)
    dealer_cost_cents: Mapped[int | None] = mapped_column(nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<PricingVariant {self.id} product={self.product_id} max_km={self.max_km}>"

    def to_dto(self) -> PricingVariant:
        return PricingVariant(
            id=self.id,
            product_id=self.product_id,
            provider_id=self.provider_id,
            base_price_cents=self.base_price_cents,
            term_months=TermLimit.from_nullable(self.term_months),
            term_km=TermLimit.from_nullable(self.term_km),
            mileage_band=MileageBand(min_km=self.min_km, max_km=self.max_km),
            vehicle_class=self.vehicle_class,
            claim_limit_cents=self.claim_limit_cents,
            deductible_cents=self.deductible_cents,
            dealer_cost_cents=self.dealer_cost_cents,
            is_default=self.is_default,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: PricingVariant, position: int = 0) -> PricingVariantModel:
        return cls(
            id=dto.id,
            product_id=dto.product_id,
            provider_id=dto.provider_id,
            position=position,
            term_months=dto.term_months.to_nullable(),
            term_km=dto.term_km.to_nullable(),
            min_km=dto.mileage_band.min_km,
            max_km=dto.mileage_band.max_km,
            vehicle_class=dto.vehicle_class,
            claim_limit_cents=dto.claim_limit_cents,
            deductible_cents=dto.deductible_cents,
            base_price_cents=dto.base_price_cents,
            dealer_cost_cents=dto.dealer_cost_cents,
            is_default=dto.is_default,
            created_at=dto.created_at,
        )


class ProductAddonModel(Base):
    """Persistent product add-on."""

    __tablename__ = "product_addons"

    __table_args__ = (
        UniqueConstraint("product_id", "name", name="uq_addon_product_name"),
        Index("idx_addon_product_position", "product_id", "position"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_id: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    pricing_type: Mapped[str] = mapped_column(String(20), nullable=False, default=AddonPricingType.FIXED.value)
    applies_to_all_variants: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Variant ids as strings; ignored while applies_to_all_variants is set.
    applicable_variant_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    base_price_cents: Mapped[int] = mapped_column(nullable=False)
    min_price_cents: Mapped[int | None] = mapped_column(nullable=True)
    max_price_cents: Mapped[int | None] = mapped_column(nullable=True)
    dealer_cost_cents: Mapped[int | None] = mapped_column(nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<ProductAddon {self.id} {self.name!r} product={self.product_id}>"

    def to_dto(self) -> ProductAddon:
        return ProductAddon(
            id=self.id,
            product_id=self.product_id,
            provider_id=self.provider_id,
            name=self.name,
            description=self.description,
            pricing_type=AddonPricingType(self.pricing_type),
            applies_to_all_variants=self.applies_to_all_variants,
            applicable_variant_ids=tuple(UUID(v) for v in self.applicable_variant_ids or ()),
            base_price_cents=self.base_price_cents,
            min_price_cents=self.min_price_cents,
            max_price_cents=self.max_price_cents,
            dealer_cost_cents=self.dealer_cost_cents,
            active=self.active,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: ProductAddon, position: int = 0) -> ProductAddonModel:
        return cls(
            id=dto.id,
            product_id=dto.product_id,
            provider_id=dto.provider_id,
            position=position,
            name=dto.name,
            description=dto.description,
            pricing_type=dto.pricing_type.value,
            applies_to_all_variants=dto.applies_to_all_variants,
            applicable_variant_ids=[str(v) for v in dto.applicable_variant_ids],
            base_price_cents=dto.base_price_cents,
            min_price_cents=dto.min_price_cents,
            max_price_cents=dto.max_price_cents,
            dealer_cost_cents=dto.dealer_cost_cents,
            active=dto.active,
            created_at=dto.created_at,
        )
