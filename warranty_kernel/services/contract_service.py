"""
ContractService -- dealer contracts from draft to paid.

Responsibility:
    Creates draft contracts, edits them while DRAFT, prices them by
    selecting an offer, advances their status and deletes unsold drafts.
    Every mutation is attributed to the acting user and audited.

Architecture position:
    Kernel > Services -- imperative shell around
    ``warranty_engines.lifecycle``.

Invariants enforced:
    - Status is strictly linear (DRAFT -> SOLD -> REMITTED -> PAID);
      requesting the current status is a no-op.
    - Once a contract leaves DRAFT only ``status`` may change; the whole
      patch is rejected otherwise.
    - Product, variant, pricing snapshot and add-on snapshot are written
      only by ``select_offer``; snapshots are copied once and never
      re-derived. Re-selecting a DRAFT replaces the add-ons wholesale.
    - Only the creating user deletes a contract, and only while DRAFT.

Failure modes:
    - ContractNotFoundError, NotAuthorizedError.
    - ValidationError, ContractLockedError, InvalidTransitionError from
      the lifecycle engine.
    - NoEligibleVariantError / PricingUnavailableError from selection.
    - ConcurrencyConflictError when a concurrent writer won.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID, uuid4

from warranty_engines.addons import addon_totals, select_addons
from warranty_engines.cost_model import require_cost_basis
from warranty_engines.eligibility import evaluate_product_eligibility
from warranty_engines.lifecycle import (
    apply_contract_patch,
    check_contract_deletable,
    coerce_contract_status,
)
from warranty_engines.variant_resolver import require_variant, variant_fits_vehicle
from warranty_kernel.domain.audit import AuditKind
from warranty_kernel.domain.catalog import PricingVariant, Product
from warranty_kernel.domain.contract import Contract, ContractStatus, PricingSnapshot
from warranty_kernel.domain.identity import Actor
from warranty_kernel.domain.vehicle import VehicleAttributes
from warranty_kernel.exceptions import (
    ContractNotFoundError,
    NoEligibleVariantError,
    NotAuthorizedError,
    PricingVariantNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from warranty_kernel.logging_config import LogContext, get_logger
from warranty_kernel.services.base import BaseService

logger = get_logger("services.contract")

_STATUS_AUDIT_KINDS = {
    ContractStatus.SOLD: AuditKind.CONTRACT_SOLD,
    ContractStatus.REMITTED: AuditKind.CONTRACT_REMITTED,
    ContractStatus.PAID: AuditKind.CONTRACT_PAID,
}

_REQUIRED_ON_CREATE = ("contract_number", "customer_name")


def vehicle_from_contract(contract: Contract) -> VehicleAttributes:
    """The vehicle snapshot stored on a contract, for eligibility and pricing."""
    return VehicleAttributes(
        vin=contract.vin or "",
        model_year=contract.vehicle_year,
        make=contract.vehicle_make,
        model=contract.vehicle_model,
        trim=contract.vehicle_trim,
        body_class=contract.vehicle_body_class,
        engine=contract.vehicle_engine,
        transmission=contract.vehicle_transmission,
        mileage_km=contract.vehicle_mileage_km,
        vehicle_class=contract.vehicle_class,
    )


def snapshot_from_product(product: Product, cost_cents: int) -> PricingSnapshot:
    """Pricing snapshot for a product sold without pricing rows."""
    return PricingSnapshot(
        term_months=product.term_months.to_nullable(),
        term_km=product.term_km.to_nullable(),
        deductible_cents=product.deductible_cents or 0,
        base_price_cents=(
            product.base_price_cents if product.base_price_cents is not None else cost_cents
        ),
        dealer_cost_cents=product.dealer_cost_cents,
    )


class ContractService(BaseService):
    """Contract lifecycle operations for dealers, providers and admins."""

    # -- access ---------------------------------------------------------------

    @staticmethod
    def _can_view(contract: Contract, actor: Actor) -> bool:
        return (
            actor.is_admin
            or actor.acts_for_dealer(contract.dealer_id)
            or actor.acts_for_provider(contract.provider_id)
        )

    def _authorize_status(self, contract: Contract, desired: ContractStatus, actor: Actor) -> None:
        """PAID is recorded by admins or the contract's provider; earlier stages by its dealer."""
        if desired is ContractStatus.PAID:
            allowed = actor.is_admin or actor.acts_for_provider(contract.provider_id)
        else:
            allowed = actor.acts_for_dealer(contract.dealer_id)
        self._authorize(allowed, actor, f"set_status_{desired.value.lower()}", contract.id)

    def _markup_pct(self, dealer_id: str | None):
        markup = self.storage.get_markup(dealer_id) if dealer_id else None
        return None if markup is None else markup.markup_pct

    def _load(self, contract_id: UUID, *, for_update: bool = False) -> Contract:
        contract = self.storage.get_contract(contract_id, for_update=for_update)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        return contract

    # -- reads ---------------------------------------------------------------

    def get(self, contract_id: UUID, actor: Actor) -> Contract:
        contract = self._load(contract_id)
        self._authorize(self._can_view(contract, actor), actor, "view_contract", contract_id)
        return contract

    def list_contracts(self, actor: Actor, status: ContractStatus | None = None) -> list[Contract]:
        """Contracts visible to the actor, optionally filtered by status."""
        if status is not None:
            status = coerce_contract_status(status)
        if actor.is_admin:
            return self.storage.list_contracts(status=status)
        if actor.is_dealer:
            return self.storage.list_contracts(dealer_id=actor.dealer_id, status=status)
        if actor.is_provider:
            return self.storage.list_contracts(provider_id=actor.provider_id, status=status)
        raise NotAuthorizedError(actor.user_id, "list_contracts")

    # -- mutations -----------------------------------------------------------

    def create_draft(self, data: Mapping[str, Any], actor: Actor) -> Contract:
        """
        Create a DRAFT contract for the acting dealer.

        Args:
            data: Contract number, customer and vehicle fields. Status,
                stamps and product selection are not accepted here.
            actor: Dealer user; becomes the creator.

        Raises:
            NotAuthorizedError: Actor is not a dealer user.
            ValidationError: Missing required fields or malformed values.
        """
        self._authorize(actor.is_dealer, actor, "create_contract")
        if "status" in data:
            raise ValidationError("status", "new contracts always start as DRAFT")
        for field in _REQUIRED_ON_CREATE:
            if field not in data:
                raise ValidationError(field, "is required")

        now = self.clock.now()
        skeleton = Contract(
            id=uuid4(),
            contract_number="",
            dealer_id=actor.dealer_id,
            customer_name="",
            created_by_user_id=actor.user_id,
            created_by_email=actor.email,
            created_at=now,
            updated_at=now,
        )
        contract = apply_contract_patch(skeleton, data, actor, now)

        with LogContext.bind(actor_id=actor.user_id, dealer_id=actor.dealer_id, entity_id=str(contract.id)):
            with self.storage.transaction():
                contract = self.storage.add_contract(contract)
                self.audit.record(
                    AuditKind.CONTRACT_CREATED, actor,
                    entity_type="Contract", entity_id=contract.id,
                    dealer_id=contract.dealer_id,
                    meta={"contract_number": contract.contract_number},
                )
            logger.info(
                "contract_created",
                extra={"contract_id": str(contract.id), "contract_number": contract.contract_number},
            )
        return contract

    def update(self, contract_id: UUID, patch: Mapping[str, Any], actor: Actor) -> Contract:
        """
        Apply a field patch and/or status change.

        Field edits need the contract's dealer; a ``status`` key is
        authorized per target stage. Fields apply first, status last.
        """
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(contract_id)):
            with self.storage.transaction():
                contract = self._load(contract_id, for_update=True)
                fields = sorted(k for k in patch if k != "status")
                if fields:
                    self._authorize(
                        actor.acts_for_dealer(contract.dealer_id), actor, "update_contract", contract_id
                    )
                desired = None
                if "status" in patch:
                    desired = coerce_contract_status(patch["status"])
                    self._authorize_status(contract, desired, actor)

                updated = apply_contract_patch(contract, patch, actor, self.clock.now())
                if updated is contract:
                    logger.debug("contract_update_noop", extra={"contract_id": str(contract_id)})
                    return contract
                updated = self.storage.save_contract(updated, expected_version=contract.version)

                if fields:
                    self.audit.record(
                        AuditKind.CONTRACT_UPDATED, actor,
                        entity_type="Contract", entity_id=contract_id,
                        dealer_id=contract.dealer_id,
                        meta={"fields": fields},
                    )
                if desired is not None and desired is not contract.status:
                    self.audit.record(
                        _STATUS_AUDIT_KINDS[desired], actor,
                        entity_type="Contract", entity_id=contract_id,
                        dealer_id=contract.dealer_id,
                        provider_id=contract.provider_id,
                        meta={"from_status": contract.status.value, "to_status": desired.value},
                    )

            if desired is not None and desired is not contract.status:
                logger.info(
                    "contract_status_changed",
                    extra={
                        "contract_id": str(contract_id),
                        "from_status": contract.status.value,
                        "to_status": desired.value,
                    },
                )
            if fields:
                logger.info("contract_updated", extra={"contract_id": str(contract_id), "fields": fields})
        return updated

    def transition(self, contract_id: UUID, status: ContractStatus | str, actor: Actor) -> Contract:
        return self.update(contract_id, {"status": status}, actor)

    def mark_sold(self, contract_id: UUID, actor: Actor) -> Contract:
        return self.transition(contract_id, ContractStatus.SOLD, actor)

    def _selected_variant(
        self,
        product: Product,
        vehicle: VehicleAttributes,
        variant_id: UUID | None,
    ) -> PricingVariant | None:
        variants = self.storage.list_variants(product.id)
        if variant_id is None:
            return require_variant(str(product.id), variants, vehicle) if variants else None

        variant = next((v for v in variants if v.id == variant_id), None)
        if variant is None:
            raise PricingVariantNotFoundError(str(variant_id))
        if not variant_fits_vehicle(variant, vehicle):
            raise NoEligibleVariantError(str(product.id), "selected pricing row does not fit vehicle")
        return variant

    def select_offer(
        self,
        contract_id: UUID,
        product_id: UUID,
        actor: Actor,
        *,
        variant_id: UUID | None = None,
        addon_ids: Iterable[UUID] = (),
    ) -> Contract:
        """
        Price a DRAFT contract with a product and one of its variants.

        Without ``variant_id`` the resolver picks the primary variant for
        the contract's vehicle. The variant's terms are copied into the
        contract's pricing snapshot. Each of ``addon_ids`` is priced under
        the dealer's current markup and frozen with the contract.

        Raises:
            ValidationError: Product not eligible for the contract vehicle,
                or an add-on that is unknown, inactive or not offered with
                the selected pricing row.
            NoEligibleVariantError: No pricing row fits the vehicle.
            PricingUnavailableError: Cost basis undefined.
            ContractLockedError: Contract is no longer DRAFT.
        """
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(contract_id)):
            with self.storage.transaction():
                contract = self._load(contract_id, for_update=True)
                self._authorize(
                    actor.acts_for_dealer(contract.dealer_id), actor, "select_offer", contract_id
                )
                product = self.storage.get_product(product_id)
                if product is None:
                    raise ProductNotFoundError(str(product_id))

                vehicle = vehicle_from_contract(contract)
                eligibility = evaluate_product_eligibility(
                    product, vehicle, as_of=self.clock.today()
                )
                if not eligibility.eligible:
                    raise ValidationError(
                        "product_id",
                        f"product not eligible for vehicle: {', '.join(eligibility.failed_gates)}",
                    )

                variant = self._selected_variant(product, vehicle, variant_id)
                if variant is not None:
                    require_cost_basis(variant, str(variant.id))
                    snapshot = PricingSnapshot.from_variant(variant)
                else:
                    snapshot = snapshot_from_product(
                        product, require_cost_basis(product, str(product.id))
                    )

                addons = select_addons(
                    self.storage.list_addons(product.id),
                    variant.id if variant is not None else None,
                    addon_ids,
                    self._markup_pct(contract.dealer_id),
                )
                addon_cost, addon_retail = addon_totals(addons)

                patch = {
                    "product_id": product.id,
                    "pricing_variant_id": variant.id if variant is not None else None,
                    "provider_id": product.provider_id,
                    "pricing": snapshot,
                    "addons": addons,
                    "addon_total_cost_cents": addon_cost,
                    "addon_total_retail_cents": addon_retail,
                }
                updated = apply_contract_patch(
                    contract, patch, actor, self.clock.now(), allow_selection=True
                )
                updated = self.storage.save_contract(updated, expected_version=contract.version)
                self.audit.record(
                    AuditKind.CONTRACT_PRICED, actor,
                    entity_type="Contract", entity_id=contract_id,
                    dealer_id=contract.dealer_id,
                    provider_id=product.provider_id,
                    meta={
                        "product_id": str(product.id),
                        "pricing_variant_id": str(variant.id) if variant is not None else None,
                        "base_price_cents": snapshot.base_price_cents,
                        "addon_ids": [str(a.addon_id) for a in addons],
                        "addon_total_cost_cents": addon_cost,
                    },
                )
            logger.info(
                "contract_priced",
                extra={
                    "contract_id": str(contract_id),
                    "product_id": str(product.id),
                    "pricing_variant_id": str(variant.id) if variant is not None else None,
                    "addon_count": len(addons),
                },
            )
        return updated

    def delete(self, contract_id: UUID, actor: Actor) -> None:
        """Delete a DRAFT contract; only its creator may."""
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(contract_id)):
            with self.storage.transaction():
                contract = self._load(contract_id, for_update=True)
                self._authorize(
                    contract.created_by_user_id is not None
                    and actor.user_id == contract.created_by_user_id,
                    actor,
                    "delete_contract",
                    contract_id,
                )
                check_contract_deletable(contract)
                self.storage.delete_contract(contract_id)
                self.audit.record(
                    AuditKind.CONTRACT_DELETED, actor,
                    entity_type="Contract", entity_id=contract_id,
                    dealer_id=contract.dealer_id,
                    meta={"contract_number": contract.contract_number},
                )
            logger.info("contract_deleted", extra={"contract_id": str(contract_id)})
