"""
CatalogService -- provider products, their pricing variants and add-ons.

Responsibility:
    Creates, edits, publishes and unpublishes products; creates and
    deletes pricing variants and add-ons; serves the published catalog
    read by the offer search.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Only the owning provider edits or publishes a product and creates
      or deletes its variants and add-ons.
    - Pricing variants are immutable: ``update_pricing_variant`` always
      raises PricingVariantImmutableError.
    - Within a product, (term months, term km, deductible) is unique.
    - Add-on names are unique within a product, and an add-on restricted
      to pricing rows names only rows of its own product.

Failure modes:
    - ProductNotFoundError / PricingVariantNotFoundError /
      ProductAddonNotFoundError.
    - NotAuthorizedError: actor is not the owning provider.
    - ValidationError: malformed fields, duplicate variant terms or
      duplicate add-on names.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any
from uuid import UUID, uuid4

from warranty_engines.addons import applicable_addons
from warranty_kernel.domain.audit import AuditKind
from warranty_kernel.domain.catalog import (
    AddonPricingType,
    PricingVariant,
    Product,
    ProductAddon,
    ProductType,
)
from warranty_kernel.domain.identity import Actor
from warranty_kernel.domain.values import (
    MileageBand,
    TermKind,
    TermLimit,
    integral_or_none,
    optional_cents,
    require_cents,
)
from warranty_kernel.exceptions import (
    PricingVariantImmutableError,
    PricingVariantNotFoundError,
    ProductAddonNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from warranty_kernel.logging_config import LogContext, get_logger
from warranty_kernel.services.base import BaseService

logger = get_logger("services.catalog")

PRODUCT_FIELDS: frozenset[str] = frozenset({
    "name",
    "product_type",
    "program_code",
    "coverage_details",
    "exclusions",
    "term_months",
    "term_km",
    "deductible_cents",
    "max_vehicle_age_years",
    "max_mileage_km",
    "make_allowlist",
    "model_allowlist",
    "trim_allowlist",
    "base_price_cents",
    "dealer_cost_cents",
})

VARIANT_FIELDS: frozenset[str] = frozenset({
    "term_months",
    "term_km",
    "min_km",
    "max_km",
    "vehicle_class",
    "claim_limit_cents",
    "deductible_cents",
    "base_price_cents",
    "dealer_cost_cents",
    "is_default",
})

ADDON_FIELDS: frozenset[str] = frozenset({
    "name",
    "description",
    "pricing_type",
    "applies_to_all_variants",
    "applicable_variant_ids",
    "base_price_cents",
    "min_price_cents",
    "max_price_cents",
    "dealer_cost_cents",
    "active",
})


def _optional_count(field: str, value: Any) -> int | None:
    if value is None or value == "":
        return None
    number = integral_or_none(value)
    if number is None or number < 0:
        raise ValidationError(field, f"must be a non-negative number, got {value!r}")
    return number


def _allowlist(field: str, value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ValidationError(field, "must be a list of names")
    return tuple(str(v).strip() for v in value if str(v).strip())


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _product_type(value: Any) -> ProductType:
    if isinstance(value, ProductType):
        return value
    try:
        return ProductType(str(value).strip().upper())
    except ValueError:
        raise ValidationError("product_type", f"unknown product type {value!r}") from None


def _product_term(field: str, value: Any) -> TermLimit:
    if isinstance(value, TermLimit):
        return value
    if isinstance(value, str) and value.strip().lower() == TermKind.UNLIMITED.value:
        return TermLimit.unlimited()
    return TermLimit.from_nullable(_optional_count(field, value), null_means=TermKind.UNSET)


def _coerce_product_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    unknown = sorted(set(data) - PRODUCT_FIELDS)
    if unknown:
        raise ValidationError(unknown[0], "not an editable product field")

    values: dict[str, Any] = {}
    for field, value in data.items():
        if field == "name":
            values[field] = str(value or "").strip()
        elif field == "product_type":
            values[field] = _product_type(value)
        elif field in ("term_months", "term_km"):
            values[field] = _product_term(field, value)
        elif field in ("deductible_cents", "base_price_cents", "dealer_cost_cents"):
            values[field] = optional_cents(field, value)
        elif field in ("max_vehicle_age_years", "max_mileage_km"):
            values[field] = _optional_count(field, value)
        elif field.endswith("_allowlist"):
            values[field] = _allowlist(field, value)
        else:
            values[field] = _text(value)
    return values


def _build_variant(product: Product, data: Mapping[str, Any], now) -> PricingVariant:
    unknown = sorted(set(data) - VARIANT_FIELDS)
    if unknown:
        raise ValidationError(unknown[0], "not a pricing variant field")
    if data.get("base_price_cents") is None:
        raise ValidationError("base_price_cents", "pricing variant needs a base price")

    return PricingVariant(
        id=uuid4(),
        product_id=product.id,
        provider_id=product.provider_id,
        base_price_cents=require_cents("base_price_cents", data["base_price_cents"]),
        term_months=TermLimit.from_nullable(_optional_count("term_months", data.get("term_months"))),
        term_km=TermLimit.from_nullable(_optional_count("term_km", data.get("term_km"))),
        mileage_band=MileageBand(
            min_km=_optional_count("min_km", data.get("min_km")) or 0,
            max_km=_optional_count("max_km", data.get("max_km")),
        ),
        vehicle_class=_text(data.get("vehicle_class")),
        claim_limit_cents=optional_cents("claim_limit_cents", data.get("claim_limit_cents")),
        deductible_cents=optional_cents("deductible_cents", data.get("deductible_cents")) or 0,
        dealer_cost_cents=optional_cents("dealer_cost_cents", data.get("dealer_cost_cents")),
        is_default=bool(data.get("is_default", False)),
        created_at=now,
    )


def _addon_pricing_type(value: Any) -> AddonPricingType:
    if value is None:
        return AddonPricingType.FIXED
    if isinstance(value, AddonPricingType):
        return value
    try:
        return AddonPricingType(str(value).strip().upper())
    except ValueError:
        raise ValidationError("pricing_type", f"unknown add-on pricing type {value!r}") from None


def _variant_ids(value: Any) -> tuple[UUID, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, UUID)):
        value = [value]
    ids = []
    for item in value:
        try:
            ids.append(item if isinstance(item, UUID) else UUID(str(item).strip()))
        except ValueError:
            raise ValidationError("applicable_variant_ids", f"not a pricing row id: {item!r}") from None
    return tuple(dict.fromkeys(ids))


def _build_addon(
    product: Product,
    variant_ids: set[UUID],
    data: Mapping[str, Any],
    now,
) -> ProductAddon:
    unknown = sorted(set(data) - ADDON_FIELDS)
    if unknown:
        raise ValidationError(unknown[0], "not an add-on field")
    if data.get("base_price_cents") is None:
        raise ValidationError("base_price_cents", "add-on needs a base price")

    applicable = _variant_ids(data.get("applicable_variant_ids"))
    # Naming rows without the flag restricts the add-on to them.
    applies_to_all = bool(data.get("applies_to_all_variants", not applicable))
    if not applies_to_all:
        if not applicable:
            raise ValidationError("applicable_variant_ids", "name at least one pricing row")
        foreign = [v for v in applicable if v not in variant_ids]
        if foreign:
            raise ValidationError("applicable_variant_ids", f"{foreign[0]} is not a pricing row of this product")

    return ProductAddon(
        id=uuid4(),
        product_id=product.id,
        provider_id=product.provider_id,
        name=str(data.get("name") or "").strip(),
        description=_text(data.get("description")),
        pricing_type=_addon_pricing_type(data.get("pricing_type")),
        applies_to_all_variants=applies_to_all,
        applicable_variant_ids=() if applies_to_all else applicable,
        base_price_cents=require_cents("base_price_cents", data["base_price_cents"]),
        min_price_cents=optional_cents("min_price_cents", data.get("min_price_cents")),
        max_price_cents=optional_cents("max_price_cents", data.get("max_price_cents")),
        dealer_cost_cents=optional_cents("dealer_cost_cents", data.get("dealer_cost_cents")),
        active=bool(data.get("active", True)),
        created_at=now,
    )


class CatalogService(BaseService):
    """Provider catalog management and published catalog reads."""

    # -- reads ---------------------------------------------------------------

    def get_product(self, product_id: UUID) -> Product:
        product = self.storage.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def list_published_products(self) -> list[Product]:
        return self.storage.list_products(published=True)

    def list_provider_products(self, provider_id: str) -> list[Product]:
        return self.storage.list_products(provider_id=provider_id)

    def list_pricing_variants(self, product_id: UUID) -> list[PricingVariant]:
        """Variants of a product in stored order."""
        return self.storage.list_variants(product_id)

    def list_addons(self, product_id: UUID) -> list[ProductAddon]:
        """Every add-on of a product, active or not, in stored order."""
        return self.storage.list_addons(product_id)

    def list_applicable_addons(self, product_id: UUID, variant_id: UUID | None) -> list[ProductAddon]:
        """Active add-ons a dealer may sell with ``variant_id``."""
        return applicable_addons(self.storage.list_addons(product_id), variant_id)

    # -- products ------------------------------------------------------------

    def create_product(self, data: Mapping[str, Any], actor: Actor) -> Product:
        """
        Create an unpublished product owned by the acting provider.

        Args:
            data: Product fields (see ``PRODUCT_FIELDS``); ``name`` required.
            actor: Provider creating the product.

        Raises:
            NotAuthorizedError: Actor is not a provider.
            ValidationError: Malformed fields.
        """
        self._authorize(actor.is_provider, actor, "create_product")
        now = self.clock.now()
        product = Product(
            id=uuid4(),
            provider_id=actor.provider_id,
            name=str(data.get("name") or "").strip(),
            created_at=now,
            updated_at=now,
        )
        product = replace(product, **_coerce_product_fields(data))

        with LogContext.bind(actor_id=actor.user_id, entity_id=str(product.id)):
            with self.storage.transaction():
                product = self.storage.add_product(product)
                self.audit.record(
                    AuditKind.PRODUCT_CREATED, actor,
                    entity_type="Product", entity_id=product.id,
                    provider_id=product.provider_id,
                    meta={"name": product.name},
                )
            logger.info(
                "product_created",
                extra={"product_id": str(product.id), "provider_id": product.provider_id},
            )
        return product

    def _owned_product_for_update(self, product_id: UUID, actor: Actor, action: str) -> Product:
        product = self.storage.get_product(product_id, for_update=True)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        self._authorize(actor.acts_for_provider(product.provider_id), actor, action, product_id)
        return product

    def update_product(self, product_id: UUID, patch: Mapping[str, Any], actor: Actor) -> Product:
        """Edit product fields. Publication has its own operations."""
        changes = _coerce_product_fields(patch)
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(product_id)):
            with self.storage.transaction():
                product = self._owned_product_for_update(product_id, actor, "update_product")
                updated = replace(product, updated_at=self.clock.now(), **changes)
                updated = self.storage.save_product(updated, expected_version=product.version)
                self.audit.record(
                    AuditKind.PRODUCT_UPDATED, actor,
                    entity_type="Product", entity_id=product_id,
                    provider_id=product.provider_id,
                    meta={"fields": sorted(changes)},
                )
            logger.info("product_updated", extra={"product_id": str(product_id), "fields": sorted(changes)})
        return updated

    def publish_product(self, product_id: UUID, actor: Actor) -> Product:
        return self._set_published(product_id, actor, True)

    def unpublish_product(self, product_id: UUID, actor: Actor) -> Product:
        return self._set_published(product_id, actor, False)

    def _set_published(self, product_id: UUID, actor: Actor, published: bool) -> Product:
        action = "publish_product" if published else "unpublish_product"
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(product_id)):
            with self.storage.transaction():
                product = self._owned_product_for_update(product_id, actor, action)
                if product.published is published:
                    return product
                updated = self.storage.save_product(
                    replace(product, published=published, updated_at=self.clock.now()),
                    expected_version=product.version,
                )
                self.audit.record(
                    AuditKind.PRODUCT_PUBLISHED if published else AuditKind.PRODUCT_UNPUBLISHED,
                    actor,
                    entity_type="Product", entity_id=product_id,
                    provider_id=product.provider_id,
                )
            logger.info(
                "product_published" if published else "product_unpublished",
                extra={"product_id": str(product_id)},
            )
        return updated

    # -- pricing variants ----------------------------------------------------

    def create_pricing_variant(
        self,
        product_id: UUID,
        data: Mapping[str, Any],
        actor: Actor,
    ) -> PricingVariant:
        """
        Add a pricing row to a product.

        Raises:
            ValidationError: Missing base price, inverted mileage band, or a
                row with the same (term months, term km, deductible) exists.
        """
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(product_id)):
            with self.storage.transaction():
                product = self._owned_product_for_update(product_id, actor, "create_pricing_variant")
                variant = _build_variant(product, data, self.clock.now())
                for existing in self.storage.list_variants(product_id):
                    if existing.term_key == variant.term_key:
                        raise ValidationError(
                            "term",
                            f"a pricing row with terms {variant.term_key} already exists",
                        )
                variant = self.storage.add_variant(variant)
                self.audit.record(
                    AuditKind.PRICING_VARIANT_CREATED, actor,
                    entity_type="PricingVariant", entity_id=variant.id,
                    provider_id=product.provider_id,
                    meta={"product_id": str(product_id), "base_price_cents": variant.base_price_cents},
                )
            logger.info(
                "pricing_variant_created",
                extra={
                    "product_id": str(product_id),
                    "variant_id": str(variant.id),
                    "max_km": variant.mileage_band.max_km,
                },
            )
        return variant

    def update_pricing_variant(self, variant_id: UUID, patch: Mapping[str, Any], actor: Actor) -> None:
        """Variants cannot be edited; delete and recreate instead."""
        field = sorted(patch)[0] if patch else "*"
        logger.warning(
            "pricing_variant_update_refused",
            extra={"variant_id": str(variant_id), "actor_id": actor.user_id},
        )
        raise PricingVariantImmutableError(str(variant_id), field)

    def delete_pricing_variant(self, variant_id: UUID, actor: Actor) -> None:
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(variant_id)):
            with self.storage.transaction():
                variant = self.storage.get_variant(variant_id)
                if variant is None:
                    raise PricingVariantNotFoundError(str(variant_id))
                self._owned_product_for_update(variant.product_id, actor, "delete_pricing_variant")
                self.storage.delete_variant(variant_id)
                self.audit.record(
                    AuditKind.PRICING_VARIANT_DELETED, actor,
                    entity_type="PricingVariant", entity_id=variant_id,
                    provider_id=variant.provider_id,
                    meta={"product_id": str(variant.product_id)},
                )
            logger.info("pricing_variant_deleted", extra={"variant_id": str(variant_id)})

    # -- add-ons -------------------------------------------------------------

    def create_addon(self, product_id: UUID, data: Mapping[str, Any], actor: Actor) -> ProductAddon:
        """
        Add an optional extra to a product.

        ``applicable_variant_ids`` restricts the add-on to those pricing
        rows; without it the add-on applies to every row.

        Raises:
            ValidationError: Missing or non-positive base price, inverted
                price bounds, a foreign pricing row, or a duplicate name.
        """
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(product_id)):
            with self.storage.transaction():
                product = self._owned_product_for_update(product_id, actor, "create_addon")
                variant_ids = {v.id for v in self.storage.list_variants(product_id)}
                addon = _build_addon(product, variant_ids, data, self.clock.now())
                if any(a.name == addon.name for a in self.storage.list_addons(product_id)):
                    raise ValidationError("name", f"an add-on named {addon.name!r} already exists")
                addon = self.storage.add_addon(addon)
                self.audit.record(
                    AuditKind.PRODUCT_ADDON_CREATED, actor,
                    entity_type="ProductAddon", entity_id=addon.id,
                    provider_id=product.provider_id,
                    meta={
                        "product_id": str(product_id),
                        "name": addon.name,
                        "base_price_cents": addon.base_price_cents,
                    },
                )
            logger.info(
                "product_addon_created",
                extra={
                    "product_id": str(product_id),
                    "addon_id": str(addon.id),
                    "applies_to_all_variants": addon.applies_to_all_variants,
                },
            )
        return addon

    def delete_addon(self, addon_id: UUID, actor: Actor) -> None:
        """Remove an add-on. Contracts already priced keep their snapshot."""
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(addon_id)):
            with self.storage.transaction():
                addon = self.storage.get_addon(addon_id)
                if addon is None:
                    raise ProductAddonNotFoundError(str(addon_id))
                self._owned_product_for_update(addon.product_id, actor, "delete_addon")
                self.storage.delete_addon(addon_id)
                self.audit.record(
                    AuditKind.PRODUCT_ADDON_DELETED, actor,
                    entity_type="ProductAddon", entity_id=addon_id,
                    provider_id=addon.provider_id,
                    meta={"product_id": str(addon.product_id), "name": addon.name},
                )
            logger.info("product_addon_deleted", extra={"addon_id": str(addon_id)})
