"""
SqlAlchemyStorage -- StorageBackend over SQLAlchemy 2.0 sessions.

Responsibility:
    Maps frozen domain snapshots to ORM rows and back. Returns DTOs,
    never ORM entities.

Transactions:
    ``transaction()`` opens one session (via ``session_scope``) and binds
    it to the current context; nested calls reuse it. Calls made outside
    a transaction run in their own short transaction.

Locking:
    ``for_update=True`` issues ``SELECT ... FOR UPDATE`` (ignored by
    SQLite, whose writer lock already serializes transactions) and
    refreshes the identity map from the row.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import replace
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from warranty_kernel.db.engine import session_scope
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
)
from warranty_kernel.logging_config import get_logger
from warranty_kernel.models import (
    AuditEventModel,
    ContractModel,
    DealerMarkupModel,
    PricingVariantModel,
    ProductAddonModel,
    ProductModel,
    RemittanceBatchModel,
)
from warranty_kernel.storage.base import StorageBackend

logger = get_logger("storage.sql")


class SqlAlchemyStorage(StorageBackend):
    """Relational storage; the schema must exist (see ``create_tables``)."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._current: ContextVar[Session | None] = ContextVar(
            f"warranty_sql_session_{id(self)}", default=None,
        )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._current.get() is not None:
            yield
            return
        with session_scope(self._session_factory) as session:
            token = self._current.set(session)
            try:
                yield
                session.flush()
            finally:
                self._current.reset(token)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._current.get()
        if session is not None:
            yield session
            return
        with self.transaction():
            yield self._current.get()

    @staticmethod
    def _load(session: Session, model, entity_id, for_update: bool):
        stmt = select(model).where(model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _apply(row, values: dict) -> None:
        for key, value in values.items():
            if getattr(row, key) != value:
                setattr(row, key, value)

    def _save(self, model, not_found, entity_type: str, dto, expected_version: int):
        with self._session() as session:
            row = self._load(session, model, dto.id, for_update=True)
            if row is None:
                raise not_found(str(dto.id))
            if row.version != expected_version:
                raise ConcurrencyConflictError(entity_type, str(dto.id), expected_version, row.version)
            saved = replace(dto, version=expected_version + 1)
            self._apply(row, model.column_values(saved))
            session.flush()
            return row.to_dto()

    # Products

    def add_product(self, product: Product) -> Product:
        with self._session() as session:
            row = ProductModel.from_dto(product)
            session.add(row)
            session.flush()
            return row.to_dto()

    def get_product(self, product_id: UUID, *, for_update: bool = False) -> Product | None:
        with self._session() as session:
            row = self._load(session, ProductModel, product_id, for_update)
            return row.to_dto() if row is not None else None

    def save_product(self, product: Product, *, expected_version: int) -> Product:
        return self._save(ProductModel, ProductNotFoundError, "Product", product, expected_version)

    def list_products(self, *, provider_id: str | None = None, published: bool | None = None) -> list[Product]:
        with self._session() as session:
            stmt = select(ProductModel).order_by(ProductModel.created_at, ProductModel.name)
            if provider_id is not None:
                stmt = stmt.where(ProductModel.provider_id == provider_id)
            if published is not None:
                stmt = stmt.where(ProductModel.published == published)
            return [row.to_dto() for row in session.execute(stmt).scalars()]

    # Pricing variants

    def add_variant(self, variant: PricingVariant) -> PricingVariant:
        with self._session() as session:
            if session.get(ProductModel, variant.product_id) is None:
                raise ProductNotFoundError(str(variant.product_id))
            last = session.execute(
                select(func.max(PricingVariantModel.position))
                .where(PricingVariantModel.product_id == variant.product_id)
            ).scalar()
            row = PricingVariantModel.from_dto(variant, position=(last or 0) + 1)
            session.add(row)
            session.flush()
            return row.to_dto()

    def get_variant(self, variant_id: UUID) -> PricingVariant | None:
        with self._session() as session:
            row = session.get(PricingVariantModel, variant_id)
            return row.to_dto() if row is not None else None

    def list_variants(self, product_id: UUID) -> list[PricingVariant]:
        with self._session() as session:
            stmt = (
                select(PricingVariantModel)
                .where(PricingVariantModel.product_id == product_id)
                .order_by(PricingVariantModel.position)
            )
            return [row.to_dto() for row in session.execute(stmt).scalars()]

    def delete_variant(self, variant_id: UUID) -> None:
        with self._session() as session:
            row = session.get(PricingVariantModel, variant_id)
            if row is None:
                raise PricingVariantNotFoundError(str(variant_id))
            session.delete(row)
            session.flush()

    # Product add-ons

    def add_addon(self, addon: ProductAddon) -> ProductAddon:
        with self._session() as session:
            if session.get(ProductModel, addon.product_id) is None:
                raise ProductNotFoundError(str(addon.product_id))
            last = session.execute(
                select(func.max(ProductAddonModel.position))
                .where(ProductAddonModel.product_id == addon.product_id)
            ).scalar()
            row = ProductAddonModel.from_dto(addon, position=(last or 0) + 1)
            session.add(row)
            session.flush()
            return row.to_dto()

    def get_addon(self, addon_id: UUID) -> ProductAddon | None:
        with self._session() as session:
            row = session.get(ProductAddonModel, addon_id)
            return row.to_dto() if row is not None else None

    def list_addons(self, product_id: UUID) -> list[ProductAddon]:
        with self._session() as session:
            stmt = (
                select(ProductAddonModel)
                .where(ProductAddonModel.product_id == product_id)
                .order_by(ProductAddonModel.position)
            )
            return [row.to_dto() for row in session.execute(stmt).scalars()]

    def delete_addon(self, addon_id: UUID) -> None:
        with self._session() as session:
            row = session.get(ProductAddonModel, addon_id)
            if row is None:
                raise ProductAddonNotFoundError(str(addon_id))
            session.delete(row)
            session.flush()

    # Contracts

    def add_contract(self, contract: Contract) -> Contract:
        with self._session() as session:
            row = ContractModel.from_dto(contract)
            session.add(row)
            session.flush()
            return row.to_dto()

    def get_contract(self, contract_id: UUID, *, for_update: bool = False) -> Contract | None:
        with self._session() as session:
            row = self._load(session, ContractModel, contract_id, for_update)
            return row.to_dto() if row is not None else None

    def save_contract(self, contract: Contract, *, expected_version: int) -> Contract:
        return self._save(ContractModel, ContractNotFoundError, "Contract", contract, expected_version)

    def delete_contract(self, contract_id: UUID) -> None:
        with self._session() as session:
            row = self._load(session, ContractModel, contract_id, for_update=True)
            if row is None:
                raise ContractNotFoundError(str(contract_id))
            session.delete(row)
            session.flush()

    def list_contracts(
        self,
        *,
        dealer_id: str | None = None,
        provider_id: str | None = None,
        status: ContractStatus | None = None,
    ) -> list[Contract]:
        with self._session() as session:
            stmt = select(ContractModel).order_by(ContractModel.created_at, ContractModel.contract_number)
            if dealer_id is not None:
                stmt = stmt.where(ContractModel.dealer_id == dealer_id)
            if provider_id is not None:
                stmt = stmt.where(ContractModel.provider_id == provider_id)
            if status is not None:
                stmt = stmt.where(ContractModel.status == status.value)
            return [row.to_dto() for row in session.execute(stmt).scalars()]

    # Remittance batches

    def add_batch(self, batch: RemittanceBatch) -> RemittanceBatch:
        with self._session() as session:
            row = RemittanceBatchModel.from_dto(batch)
            session.add(row)
            session.flush()
            return row.to_dto()

    def get_batch(self, batch_id: UUID, *, for_update: bool = False) -> RemittanceBatch | None:
        with self._session() as session:
            row = self._load(session, RemittanceBatchModel, batch_id, for_update)
            return row.to_dto() if row is not None else None

    def save_batch(self, batch: RemittanceBatch, *, expected_version: int) -> RemittanceBatch:
        return self._save(
            RemittanceBatchModel, RemittanceBatchNotFoundError, "RemittanceBatch", batch, expected_version,
        )

    def list_batches(
        self,
        *,
        dealer_id: str | None = None,
        remittance_status: RemittanceStatus | None = None,
    ) -> list[RemittanceBatch]:
        with self._session() as session:
            stmt = select(RemittanceBatchModel).order_by(
                RemittanceBatchModel.created_at, RemittanceBatchModel.batch_number,
            )
            if dealer_id is not None:
                stmt = stmt.where(RemittanceBatchModel.dealer_id == dealer_id)
            if remittance_status is not None:
                stmt = stmt.where(RemittanceBatchModel.remittance_status == remittance_status.value)
            return [row.to_dto() for row in session.execute(stmt).scalars()]

    # Dealer markup

    def get_markup(self, dealer_id: str) -> DealerMarkup | None:
        with self._session() as session:
            row = session.execute(
                select(DealerMarkupModel).where(DealerMarkupModel.dealer_id == dealer_id)
            ).scalar_one_or_none()
            return row.to_dto() if row is not None else None

    def put_markup(self, markup: DealerMarkup) -> DealerMarkup:
        with self._session() as session:
            row = session.execute(
                select(DealerMarkupModel)
                .where(DealerMarkupModel.dealer_id == markup.dealer_id)
                .with_for_update()
            ).scalar_one_or_none()
            if row is None:
                row = DealerMarkupModel(dealer_id=markup.dealer_id)
                session.add(row)
            row.markup_pct = markup.markup_pct
            row.updated_at = markup.updated_at
            row.updated_by_user_id = markup.updated_by_user_id
            session.flush()
            return row.to_dto()

    # Audit

    def append_audit(self, event: AuditEvent) -> AuditEvent:
        with self._session() as session:
            last = session.execute(select(func.max(AuditEventModel.seq))).scalar()
            session.add(AuditEventModel.from_dto(event, seq=(last or 0) + 1))
            session.flush()
            return event

    def list_audit(
        self,
        *,
        entity_id: str | None = None,
        kind: AuditKind | None = None,
        dealer_id: str | None = None,
    ) -> list[AuditEvent]:
        with self._session() as session:
            stmt = select(AuditEventModel).order_by(AuditEventModel.seq)
            if entity_id is not None:
                stmt = stmt.where(AuditEventModel.entity_id == str(entity_id))
            if kind is not None:
                stmt = stmt.where(AuditEventModel.kind == kind.value)
            if dealer_id is not None:
                stmt = stmt.where(AuditEventModel.dealer_id == dealer_id)
            return [row.to_dto() for row in session.execute(stmt).scalars()]
