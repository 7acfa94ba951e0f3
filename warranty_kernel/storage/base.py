"""
StorageBackend -- the persistence seam the services depend on.

Responsibility:
    Defines the operations the services need over products, pricing
    variants, add-ons, contracts, remittance batches, dealer markups and
    audit events. Concrete backends: ``InMemoryStorage`` (tests, tooling) and
    ``SqlAlchemyStorage`` (production).

Architecture position:
    Kernel > Storage. Imports domain value objects and exceptions only.
    Services never depend on which backend is active.

Concurrency contract:
    - Every mutating service call runs inside ``transaction()``. Nested
      calls join the outermost transaction.
    - ``for_update=True`` reads take a write lock on the entity (a row
      lock in SQL, the backend writer lock in memory) until the
      transaction ends.
    - ``save_*(entity, expected_version=n)`` raises
      ConcurrencyConflictError when the stored version is not ``n`` and
      returns the saved snapshot with ``version = n + 1``.
    - Any exception inside ``transaction()`` discards every write made
      in it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import AbstractContextManager
from uuid import UUID

from warranty_kernel.domain.audit import AuditEvent, AuditKind
from warranty_kernel.domain.catalog import PricingVariant, Product, ProductAddon
from warranty_kernel.domain.contract import Contract, ContractStatus
from warranty_kernel.domain.markup import DealerMarkup
from warranty_kernel.domain.remittance import RemittanceBatch, RemittanceStatus


class StorageBackend(ABC):
    """Abstract persistence backend."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Atomic unit of work; rolls back every write on exception."""

    # Products

    @abstractmethod
    def add_product(self, product: Product) -> Product: ...

    @abstractmethod
    def get_product(self, product_id: UUID, *, for_update: bool = False) -> Product | None: ...

    @abstractmethod
    def save_product(self, product: Product, *, expected_version: int) -> Product: ...

    @abstractmethod
    def list_products(
        self,
        *,
        provider_id: str | None = None,
        published: bool | None = None,
    ) -> list[Product]: ...

    # Pricing variants

    @abstractmethod
    def add_variant(self, variant: PricingVariant) -> PricingVariant: ...

    @abstractmethod
    def get_variant(self, variant_id: UUID) -> PricingVariant | None: ...

    @abstractmethod
    def list_variants(self, product_id: UUID) -> list[PricingVariant]:
        """Variants of a product in stored (insertion) order."""

    @abstractmethod
    def delete_variant(self, variant_id: UUID) -> None: ...

    # Product add-ons

    @abstractmethod
    def add_addon(self, addon: ProductAddon) -> ProductAddon: ...

    @abstractmethod
    def get_addon(self, addon_id: UUID) -> ProductAddon | None: ...

    @abstractmethod
    def list_addons(self, product_id: UUID) -> list[ProductAddon]:
        """Add-ons of a product in stored (insertion) order."""

    @abstractmethod
    def delete_addon(self, addon_id: UUID) -> None: ...

    # Contracts

    @abstractmethod
    def add_contract(self, contract: Contract) -> Contract: ...

    @abstractmethod
    def get_contract(self, contract_id: UUID, *, for_update: bool = False) -> Contract | None: ...

    @abstractmethod
    def save_contract(self, contract: Contract, *, expected_version: int) -> Contract: ...

    @abstractmethod
    def delete_contract(self, contract_id: UUID) -> None: ...

    @abstractmethod
    def list_contracts(
        self,
        *,
        dealer_id: str | None = None,
        provider_id: str | None = None,
        status: ContractStatus | None = None,
    ) -> list[Contract]: ...

    # Remittance batches

    @abstractmethod
    def add_batch(self, batch: RemittanceBatch) -> RemittanceBatch: ...

    @abstractmethod
    def get_batch(self, batch_id: UUID, *, for_update: bool = False) -> RemittanceBatch | None: ...

    @abstractmethod
    def save_batch(self, batch: RemittanceBatch, *, expected_version: int) -> RemittanceBatch: ...

    @abstractmethod
    def list_batches(
        self,
        *,
        dealer_id: str | None = None,
        remittance_status: RemittanceStatus | None = None,
    ) -> list[RemittanceBatch]: ...

    # Dealer markup

    @abstractmethod
    def get_markup(self, dealer_id: str) -> DealerMarkup | None: ...

    @abstractmethod
    def put_markup(self, markup: DealerMarkup) -> DealerMarkup: ...

    # Audit

    @abstractmethod
    def append_audit(self, event: AuditEvent) -> AuditEvent: ...

    @abstractmethod
    def list_audit(
        self,
        *,
        entity_id: str | None = None,
        kind: AuditKind | None = None,
        dealer_id: str | None = None,
    ) -> list[AuditEvent]:
        """Audit events in insertion order."""

    def iter_contracts(self, contract_ids) -> Iterator[Contract | None]:
        """Contracts for ``contract_ids`` in order, locked for update."""
        for contract_id in contract_ids:
            yield self.get_contract(contract_id, for_update=True)
