"""
Tests for the storage backends.

Covers:
- Same service behaviour on the in-memory and SQLAlchemy backends
- Round trip of contracts, add-ons, batches and audit events through SQLite
- Optimistic version conflicts and transaction rollback
- Flush-time lock listeners against direct ORM writes
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from warranty_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from warranty_kernel.domain.audit import AuditKind
from warranty_kernel.domain.clock import DeterministicClock
from warranty_kernel.domain.contract import ContractStatus
from warranty_kernel.domain.remittance import PaymentMethod, RemittanceStatus
from warranty_kernel.exceptions import (
    AuditEventImmutableError,
    ConcurrencyConflictError,
    ContractLockedError,
    PricingVariantImmutableError,
    RemittanceLockedError,
)
from warranty_kernel.models import (
    AuditEventModel,
    ContractModel,
    PricingVariantModel,
    RemittanceBatchModel,
)
from warranty_kernel.services import (
    CatalogService,
    ContractService,
    MarkupService,
    RemittanceService,
)

CONTRACT_FIELDS = {
    "contract_number": "C-1001",
    "customer_name": "Jordan Lee",
    "vin": "1HGCM82633A004352",
    "vehicle_year": 2021,
    "vehicle_make": "Honda",
    "vehicle_model": "Accord",
    "vehicle_trim": "EX-L",
    "vehicle_mileage_km": 90_000,
}


class Services:
    """All services over one backend and one clock."""

    def __init__(self, storage, clock):
        self.storage = storage
        self.catalog = CatalogService(storage, clock)
        self.contracts = ContractService(storage, clock)
        self.remittances = RemittanceService(storage, clock, default_tax_rate=Decimal("0.13"))
        self.markup = MarkupService(storage, clock)


def _sold_contract(services, provider_actor, dealer_actor):
    product = services.catalog.create_product(
        {"name": "Powertrain Plus", "max_mileage_km": 120_000}, provider_actor
    )
    services.catalog.publish_product(product.id, provider_actor)
    variant = services.catalog.create_pricing_variant(
        product.id,
        {"term_months": 36, "term_km": 60_000, "max_km": 100_000, "base_price_cents": 20_000},
        provider_actor,
    )
    contract = services.contracts.create_draft(CONTRACT_FIELDS, dealer_actor)
    services.contracts.select_offer(contract.id, product.id, dealer_actor, variant_id=variant.id)
    return services.contracts.mark_sold(contract.id, dealer_actor), variant


@pytest.fixture
def services(storage):
    return Services(storage, DeterministicClock())


@pytest.fixture
def sql_services(sql_storage):
    return Services(sql_storage, DeterministicClock())


class TestBackendParity:

    def test_full_lifecycle(self, services, provider_actor, dealer_actor, admin_actor):
        contract, variant = _sold_contract(services, provider_actor, dealer_actor)
        batch = services.remittances.create_batch([contract.id], dealer_actor, batch_number="RB-1")
        services.remittances.submit(batch.id, dealer_actor)
        services.remittances.approve(batch.id, admin_actor, notes="ok")
        paid = services.remittances.mark_paid(
            batch.id, provider_actor, payment_method="EFT", payment_date=date(2024, 1, 5)
        )

        assert paid.remittance_status is RemittanceStatus.PAID
        assert paid.payment_method is PaymentMethod.EFT
        assert paid.payment_date == date(2024, 1, 5)
        assert paid.tax_rate == Decimal("0.13")
        assert (paid.subtotal_cents, paid.tax_cents, paid.total_cents) == (20_000, 2_600, 22_600)
        assert paid.contract_ids == (contract.id,)

        stored = services.contracts.get(contract.id, admin_actor)
        assert stored.status is ContractStatus.PAID
        assert stored.pricing_variant_id == variant.id
        assert stored.pricing.term_months == 36
        assert stored.sold_at.tzinfo is not None

    def test_audit_order_and_content(self, services, provider_actor, dealer_actor):
        contract, _ = _sold_contract(services, provider_actor, dealer_actor)
        events = services.storage.list_audit(entity_id=str(contract.id))
        assert [e.kind for e in events] == [
            AuditKind.CONTRACT_CREATED,
            AuditKind.CONTRACT_PRICED,
            AuditKind.CONTRACT_SOLD,
        ]
        assert all(e.dealer_id == dealer_actor.dealer_id for e in events)
        assert services.storage.list_audit(kind=AuditKind.PRODUCT_PUBLISHED)[0].actor_role == "PROVIDER"

    def test_markup_upsert(self, services, dealer_actor):
        services.markup.set_markup_pct(dealer_actor.dealer_id, "7.5", dealer_actor)
        services.markup.set_markup_pct(dealer_actor.dealer_id, 9, dealer_actor)
        assert services.markup.get_markup_pct(dealer_actor.dealer_id) == Decimal("9")

    def test_variant_order_survives_deletion(self, services, provider_actor):
        product = services.catalog.create_product({"name": "Tire"}, provider_actor)
        ids = [
            services.catalog.create_pricing_variant(
                product.id, {"deductible_cents": d, "base_price_cents": 1_000}, provider_actor
            ).id
            for d in (0, 100, 200)
        ]
        services.catalog.delete_pricing_variant(ids[1], provider_actor)
        services.catalog.create_pricing_variant(
            product.id, {"deductible_cents": 300, "base_price_cents": 1_000}, provider_actor
        )
        listed = [v.deductible_cents for v in services.catalog.list_pricing_variants(product.id)]
        assert listed == [0, 200, 300]

    def test_version_conflict(self, services, dealer_actor):
        contract = services.contracts.create_draft(CONTRACT_FIELDS, dealer_actor)
        services.contracts.update(contract.id, {"customer_name": "Sam Park"}, dealer_actor)
        with pytest.raises(ConcurrencyConflictError):
            services.storage.save_contract(contract, expected_version=contract.version)

    def test_addon_snapshot_round_trip(self, services, provider_actor, dealer_actor):
        product = services.catalog.create_product(
            {"name": "Powertrain Plus", "max_mileage_km": 120_000}, provider_actor
        )
        services.catalog.publish_product(product.id, provider_actor)
        low = services.catalog.create_pricing_variant(
            product.id, {"max_km": 100_000, "base_price_cents": 20_000}, provider_actor
        )
        roadside = services.catalog.create_addon(
            product.id,
            {"name": "Roadside", "base_price_cents": 4_000, "pricing_type": "PER_TERM",
             "applicable_variant_ids": [low.id]},
            provider_actor,
        )
        services.catalog.create_addon(product.id, {"name": "Rental", "base_price_cents": 1_500}, provider_actor)
        assert [a.name for a in services.catalog.list_addons(product.id)] == ["Roadside", "Rental"]
        assert services.storage.get_addon(roadside.id) == roadside

        services.markup.set_markup_pct(dealer_actor.dealer_id, "25", dealer_actor)
        contract = services.contracts.create_draft(CONTRACT_FIELDS, dealer_actor)
        services.contracts.select_offer(
            contract.id, product.id, dealer_actor, variant_id=low.id, addon_ids=[roadside.id]
        )
        sold = services.contracts.mark_sold(contract.id, dealer_actor)

        stored = services.contracts.get(sold.id, dealer_actor)
        assert stored.addons == sold.addons
        assert stored.addons[0].addon_id == roadside.id
        assert stored.addons[0].pricing_type == "PER_TERM"
        assert (stored.addon_total_cost_cents, stored.addon_total_retail_cents) == (4_000, 5_000)

        batch = services.remittances.create_batch([sold.id], dealer_actor)
        assert batch.subtotal_cents == 24_000

    def test_transaction_rollback(self, services, dealer_actor):
        contract = services.contracts.create_draft(CONTRACT_FIELDS, dealer_actor)
        with pytest.raises(RuntimeError):
            with services.storage.transaction():
                services.storage.delete_contract(contract.id)
                raise RuntimeError("abort")
        assert services.storage.get_contract(contract.id) == contract


class TestLockListeners:

    def test_sold_contract_business_field(self, sql_services, sql_engine, provider_actor, dealer_actor):
        contract, _ = _sold_contract(sql_services, provider_actor, dealer_actor)
        with Session(sql_engine) as session:
            row = session.get(ContractModel, contract.id)
            row.customer_name = "Someone Else"
            with pytest.raises(ContractLockedError) as exc_info:
                session.flush()
        assert exc_info.value.fields == ("customer_name",)

    def test_sold_contract_addon_columns(self, sql_services, sql_engine, provider_actor, dealer_actor):
        contract, _ = _sold_contract(sql_services, provider_actor, dealer_actor)
        with Session(sql_engine) as session:
            row = session.get(ContractModel, contract.id)
            row.addon_total_cost_cents = 1
            with pytest.raises(ContractLockedError) as exc_info:
                session.flush()
        assert exc_info.value.fields == ("addon_total_cost_cents",)

    def test_sold_contract_status_move_allowed(self, sql_services, sql_engine, provider_actor, dealer_actor):
        contract, _ = _sold_contract(sql_services, provider_actor, dealer_actor)
        with Session(sql_engine) as session:
            row = session.get(ContractModel, contract.id)
            row.status = ContractStatus.REMITTED.value
            session.commit()

    def test_sold_contract_delete(self, sql_services, sql_engine, provider_actor, dealer_actor):
        contract, _ = _sold_contract(sql_services, provider_actor, dealer_actor)
        with Session(sql_engine) as session:
            session.delete(session.get(ContractModel, contract.id))
            with pytest.raises(ContractLockedError):
                session.flush()

    def test_variant_update(self, sql_services, sql_engine, provider_actor, dealer_actor):
        _, variant = _sold_contract(sql_services, provider_actor, dealer_actor)
        with Session(sql_engine) as session:
            session.get(PricingVariantModel, variant.id).base_price_cents = 1
            with pytest.raises(PricingVariantImmutableError):
                session.flush()

    def test_submitted_batch_amounts(self, sql_services, sql_engine, provider_actor, dealer_actor):
        contract, _ = _sold_contract(sql_services, provider_actor, dealer_actor)
        batch = sql_services.remittances.create_batch([contract.id], dealer_actor)
        sql_services.remittances.submit(batch.id, dealer_actor)
        with Session(sql_engine) as session:
            session.get(RemittanceBatchModel, batch.id).total_cents = 0
            with pytest.raises(RemittanceLockedError):
                session.flush()

    @pytest.mark.parametrize("operation", ["update", "delete"])
    def test_audit_events(self, sql_services, sql_engine, dealer_actor, operation):
        contract = sql_services.contracts.create_draft(CONTRACT_FIELDS, dealer_actor)
        event = sql_services.storage.list_audit(entity_id=str(contract.id))[0]
        with Session(sql_engine) as session:
            row = session.get(AuditEventModel, event.id)
            if operation == "update":
                row.message = "rewritten"
            else:
                session.delete(row)
            with pytest.raises(AuditEventImmutableError):
                session.flush()

    def test_unregistered_listeners_allow_writes(self, sql_services, sql_engine, provider_actor, dealer_actor):
        contract, _ = _sold_contract(sql_services, provider_actor, dealer_actor)
        unregister_immutability_listeners()
        try:
            with Session(sql_engine) as session:
                session.get(ContractModel, contract.id).customer_name = "Fixture Override"
                session.commit()
        finally:
            register_immutability_listeners()
        assert sql_services.storage.get_contract(contract.id).customer_name == "Fixture Override"

    def test_blocked_write_is_logged(self, sql_services, sql_engine, dealer_actor, captured_logs):
        contract = sql_services.contracts.create_draft(CONTRACT_FIELDS, dealer_actor)
        event = sql_services.storage.list_audit(entity_id=str(contract.id))[0]
        with Session(sql_engine) as session:
            session.delete(session.get(AuditEventModel, event.id))
            with pytest.raises(AuditEventImmutableError):
                session.flush()
        record = next(r for r in captured_logs() if r["message"] == "lock_violation_blocked")
        assert record["entity_type"] == "AuditEvent"
        assert record["operation"] == "DELETE"
