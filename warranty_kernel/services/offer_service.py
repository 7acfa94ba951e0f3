"""
OfferService -- match a vehicle against the published catalog.

Responsibility:
    Decodes a VIN through an injected decoder, runs every published
    product through the eligibility gate, resolves the primary pricing
    variant for the vehicle and quotes it under the dealer's markup.

Architecture position:
    Kernel > Services -- imperative shell over the pure engines
    (eligibility, variant_resolver, cost_model).

Resolution rules:
    - Ineligible products are not offered.
    - A product with pricing variants is offered only when the resolver
      finds a primary variant; the offer carries that variant.
    - A product without variants is offered at product-level cost when
      it meets the search constraints.
    - An offer with an undefined cost basis has ``quote=None``. It is
      listed but cannot be selected.

Failure modes:
    - ValidationError: malformed VIN.
    - VehicleDecodeError: no decoder configured, or the decoder failed.
    - NoEligibleVariantError / PricingUnavailableError from ``quote_for``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from warranty_engines.cost_model import PriceQuote, quote, require_cost_basis
from warranty_engines.eligibility import EligibilityResult, evaluate_product_eligibility
from warranty_engines.variant_resolver import (
    VariantConstraints,
    product_meets_constraints,
    resolve_variant,
)
from warranty_kernel.domain.catalog import PricingVariant, Product
from warranty_kernel.domain.clock import Clock
from warranty_kernel.domain.vehicle import VehicleAttributes, clean_vin
from warranty_kernel.exceptions import (
    PricingVariantNotFoundError,
    ProductNotFoundError,
    VehicleDecodeError,
    WarrantyError,
)
from warranty_kernel.logging_config import get_logger
from warranty_kernel.services.base import BaseService
from warranty_kernel.storage.base import StorageBackend

logger = get_logger("services.offer")


class VinDecoder(Protocol):
    """External VIN decoding collaborator."""

    def decode(self, vin: str) -> VehicleAttributes: ...


@dataclass(frozen=True)
class Offer:
    """One product offered for a vehicle, with its resolved price."""

    product: Product
    variant: PricingVariant | None
    quote: PriceQuote | None
    eligibility: EligibilityResult

    @property
    def priced(self) -> bool:
        return self.quote is not None


class OfferService(BaseService):
    """Vehicle decode and catalog matching for dealers."""

    def __init__(
        self,
        storage: StorageBackend,
        clock: Clock | None = None,
        decoder: VinDecoder | None = None,
    ):
        super().__init__(storage, clock)
        self._decoder = decoder

    def decode_vehicle(self, raw_vin: str) -> VehicleAttributes:
        """
        Clean a VIN and decode it.

        Raises:
            ValidationError: VIN empty or shorter than 10 characters.
            VehicleDecodeError: Decoder missing or failed.
        """
        vin = clean_vin(raw_vin)
        if self._decoder is None:
            raise VehicleDecodeError(vin, "no VIN decoder configured")
        try:
            vehicle = self._decoder.decode(vin)
        except WarrantyError:
            raise
        except Exception as exc:
            logger.warning("vin_decode_failed", extra={"vin": vin, "error": str(exc)})
            raise VehicleDecodeError(vin, str(exc)) from exc
        if vehicle is None:
            raise VehicleDecodeError(vin, "decoder returned no vehicle")
        logger.info(
            "vin_decoded",
            extra={"vin": vin, "make": vehicle.make, "model": vehicle.model},
        )
        return vehicle

    def _markup_pct(self, dealer_id: str | None):
        if not dealer_id:
            return None
        markup = self.storage.get_markup(dealer_id)
        return None if markup is None else markup.markup_pct

    def find_offers(
        self,
        vehicle: VehicleAttributes,
        *,
        dealer_id: str | None = None,
        constraints: VariantConstraints | None = None,
    ) -> list[Offer]:
        """
        Offers for a vehicle in catalog order.

        Args:
            vehicle: Decoded vehicle with dealer-supplied mileage and class.
            dealer_id: Dealer whose markup prices the offers; None shows cost.
            constraints: Optional minimum terms and deductible cap.
        """
        as_of = self.clock.today()
        markup_pct = self._markup_pct(dealer_id)
        offers: list[Offer] = []
        skipped = 0

        for product in self.storage.list_products(published=True):
            eligibility = evaluate_product_eligibility(product, vehicle, as_of=as_of)
            if not eligibility.eligible:
                skipped += 1
                continue

            variants = self.storage.list_variants(product.id)
            if variants:
                variant = resolve_variant(variants, vehicle, constraints)
                if variant is None:
                    skipped += 1
                    continue
                offers.append(Offer(product, variant, quote(variant, markup_pct), eligibility))
            elif product_meets_constraints(product, constraints):
                offers.append(Offer(product, None, quote(product, markup_pct), eligibility))
            else:
                skipped += 1

        logger.info(
            "offers_found",
            extra={
                "vin": vehicle.vin,
                "dealer_id": dealer_id,
                "offer_count": len(offers),
                "skipped_count": skipped,
            },
        )
        return offers

    def quote_for(
        self,
        product_id: UUID,
        variant_id: UUID | None = None,
        dealer_id: str | None = None,
    ) -> PriceQuote:
        """Quote one product or variant; undefined cost raises PricingUnavailableError."""
        product = self.storage.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        source: Any = product
        if variant_id is not None:
            source = self.storage.get_variant(variant_id)
            if source is None or source.product_id != product.id:
                raise PricingVariantNotFoundError(str(variant_id))
        require_cost_basis(source, str(variant_id or product_id))
        return quote(source, self._markup_pct(dealer_id))
