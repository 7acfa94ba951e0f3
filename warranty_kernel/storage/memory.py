"""
InMemoryStorage -- dictionary-backed StorageBackend.

A single re-entrant writer lock serializes transactions. The outermost
``transaction()`` snapshots every table on entry and restores the
snapshot if the block raises, so multi-entity operations are all or
nothing exactly as with the SQL backend. Entities are frozen dataclasses,
which makes a shallow copy of each table a complete snapshot.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from uuid import UUID

from warranty_kernel.domain.audit import AuditEvent, AuditKind
from warranty_kernel.domain.catalog import PricingVariant, Product, ProductAddon
from warranty_kernel.domain.contract import Contract, ContractStatus
from warranty_kernel.domain.markup import DealerMarkup
from warranty_kernel.domain.remittance import RemittanceBatch, RemittanceStatus
from warranty_kernel.exceptions import (
    ConcurrencyConflictError,
    ContractNotFoundError,
    PricingVariantNotFoundError,
    ProductAddonNotFoundError,
    ProductNotFoundError,
    RemittanceBatchNotFoundError,
    ValidationError,
)
from warranty_kernel.logging_config import get_logger
from warranty_kernel.storage.base import StorageBackend

logger = get_logger("storage.memory")

_TABLES = ("_products", "_variants", "_addons", "_contracts", "_batches", "_markups", "_audit")


class InMemoryStorage(StorageBackend):
    """Process-local storage with snapshot rollback."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._products: dict[UUID, Product] = {}
        self._variants: dict[UUID, PricingVariant] = {}
        self._addons: dict[UUID, ProductAddon] = {}
        self._contracts: dict[UUID, Contract] = {}
        self._batches: dict[UUID, RemittanceBatch] = {}
        self._markups: dict[str, DealerMarkup] = {}
        self._audit: list[AuditEvent] = []

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = {name: getattr(self, name).copy() for name in _TABLES}
            self._depth = 1
            try:
                yield
            except Exception:
                for name, table in snapshot.items():
                    setattr(self, name, table)
                logger.warning("transaction_rolled_back", exc_info=True)
                raise
            finally:
                self._depth = 0

    @staticmethod
    def _check_version(entity_type: str, entity_id, current, expected_version: int) -> None:
        if current.version != expected_version:
            raise ConcurrencyConflictError(entity_type, str(entity_id), expected_version, current.version)

    # Products

    def add_product(self, product: Product) -> Product:
        with self._lock:
            if product.id in self._products:
                raise ValidationError("id", f"product {product.id} already exists")
            self._products[product.id] = product
            return product

    def get_product(self, product_id: UUID, *, for_update: bool = False) -> Product | None:
        with self._lock:
            return self._products.get(product_id)

    def save_product(self, product: Product, *, expected_version: int) -> Product:
        with self._lock:
            current = self._products.get(product.id)
            if current is None:
                raise ProductNotFoundError(str(product.id))
            self._check_version("Product", product.id, current, expected_version)
            saved = replace(product, version=expected_version + 1)
            self._products[product.id] = saved
            return saved

    def list_products(self, *, provider_id: str | None = None, published: bool | None = None) -> list[Product]:
        with self._lock:
            return [
                p for p in self._products.values()
                if (provider_id is None or p.provider_id == provider_id)
                and (published is None or p.published is published)
            ]

    # Pricing variants

    def add_variant(self, variant: PricingVariant) -> PricingVariant:
        with self._lock:
            if variant.product_id not in self._products:
                raise ProductNotFoundError(str(variant.product_id))
            self._variants[variant.id] = variant
            return variant

    def get_variant(self, variant_id: UUID) -> PricingVariant | None:
        with self._lock:
            return self._variants.get(variant_id)

    def list_variants(self, product_id: UUID) -> list[PricingVariant]:
        with self._lock:
            return [v for v in self._variants.values() if v.product_id == product_id]

    def delete_variant(self, variant_id: UUID) -> None:
        with self._lock:
            if self._variants.pop(variant_id, None) is None:
                raise PricingVariantNotFoundError(str(variant_id))

    # Product add-ons

    def add_addon(self, addon: ProductAddon) -> ProductAddon:
        with self._lock:
            if addon.product_id not in self._products:
                raise ProductNotFoundError(str(addon.product_id))
            self._addons[addon.id] = addon
            return addon

    def get_addon(self, addon_id: UUID) -> ProductAddon | None:
        with self._lock:
            return self._addons.get(addon_id)

    def list_addons(self, product_id: UUID) -> list[ProductAddon]:
        with self._lock:
            return [a for a in self._addons.values() if a.product_id == product_id]

    def delete_addon(self, addon_id: UUID) -> None:
        with self._lock:
            if self._addons.pop(addon_id, None) is None:
                raise ProductAddonNotFoundError(str(addon_id))

    # Contracts

    def add_contract(self, contract: Contract) -> Contract:
        with self._lock:
            if contract.id in self._contracts:
                raise ValidationError("id", f"contract {contract.id} already exists")
            self._contracts[contract.id] = contract
            return contract

    def get_contract(self, contract_id: UUID, *, for_update: bool = False) -> Contract | None:
        with self._lock:
            return self._contracts.get(contract_id)

    def save_contract(self, contract: Contract, *, expected_version: int) -> Contract:
        with self._lock:
            current = self._contracts.get(contract.id)
            if current is None:
                raise ContractNotFoundError(str(contract.id))
            self._check_version("Contract", contract.id, current, expected_version)
            saved = replace(contract, version=expected_version + 1)
            self._contracts[contract.id] = saved
            return saved

    def delete_contract(self, contract_id: UUID) -> None:
        with self._lock:
            if self._contracts.pop(contract_id, None) is None:
                raise ContractNotFoundError(str(contract_id))

    def list_contracts(
        self,
        *,
        dealer_id: str | None = None,
        provider_id: str | None = None,
        status: ContractStatus | None = None,
    ) -> list[Contract]:
        with self._lock:
            return [
                c for c in self._contracts.values()
                if (dealer_id is None or c.dealer_id == dealer_id)
                and (provider_id is None or c.provider_id == provider_id)
                and (status is None or c.status is status)
            ]

    # Remittance batches

    def add_batch(self, batch: RemittanceBatch) -> RemittanceBatch:
        with self._lock:
            if batch.id in self._batches:
                raise ValidationError("id", f"batch {batch.id} already exists")
            self._batches[batch.id] = batch
            return batch

    def get_batch(self, batch_id: UUID, *, for_update: bool = False) -> RemittanceBatch | None:
        with self._lock:
            return self._batches.get(batch_id)

    def save_batch(self, batch: RemittanceBatch, *, expected_version: int) -> RemittanceBatch:
        with self._lock:
            current = self._batches.get(batch.id)
            if current is None:
                raise RemittanceBatchNotFoundError(str(batch.id))
            self._check_version("RemittanceBatch", batch.id, current, expected_version)
            saved = replace(batch, version=expected_version + 1)
            self._batches[batch.id] = saved
            return saved

    def list_batches(
        self,
        *,
        dealer_id: str | None = None,
        remittance_status: RemittanceStatus | None = None,
    ) -> list[RemittanceBatch]:
        with self._lock:
            return [
                b for b in self._batches.values()
                if (dealer_id is None or b.dealer_id == dealer_id)
                and (remittance_status is None or b.remittance_status is remittance_status)
            ]

    # Dealer markup

    def get_markup(self, dealer_id: str) -> DealerMarkup | None:
        with self._lock:
            return self._markups.get(dealer_id)

    def put_markup(self, markup: DealerMarkup) -> DealerMarkup:
        with self._lock:
            self._markups[markup.dealer_id] = markup
            return markup

    # Audit

    def append_audit(self, event: AuditEvent) -> AuditEvent:
        with self._lock:
            self._audit.append(event)
            return event

    def list_audit(
        self,
        *,
        entity_id: str | None = None,
        kind: AuditKind | None = None,
        dealer_id: str | None = None,
    ) -> list[AuditEvent]:
        with self._lock:
            return [
                e for e in self._audit
                if (entity_id is None or e.entity_id == str(entity_id))
                and (kind is None or e.kind is kind)
                and (dealer_id is None or e.dealer_id == dealer_id)
            ]
