"""
Pytest fixtures for the warranty kernel test suite.

Provides:
- Structured logging capture
- Deterministic clock and test actors
- In-memory storage for service tests
- SQLite in-memory engine and SqlAlchemyStorage for persistence tests
- Catalog / contract factories built through the services
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from warranty_kernel.db.engine import build_engine, create_tables, drop_tables
from warranty_kernel.db.immutability import unregister_immutability_listeners
from warranty_kernel.domain.clock import DeterministicClock
from warranty_kernel.domain.contract import ContractStatus
from warranty_kernel.domain.identity import Actor, ActorRole
from warranty_kernel.domain.vehicle import VehicleAttributes
from warranty_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from warranty_kernel.services.catalog_service import CatalogService
from warranty_kernel.services.contract_service import ContractService
from warranty_kernel.services.markup_service import MarkupService
from warranty_kernel.services.offer_service import OfferService
from warranty_kernel.services.remittance_service import RemittanceService
from warranty_kernel.storage.memory import InMemoryStorage
from warranty_kernel.storage.sql import SqlAlchemyStorage

DEALER_ID = "dealer-1"
OTHER_DEALER_ID = "dealer-2"
PROVIDER_ID = "provider-1"
OTHER_PROVIDER_ID = "provider-2"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture warranty_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, contract_service):
            contract_service.create_draft(...)
            logs = captured_logs()
            assert any(r["message"] == "contract_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("warranty_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and actors
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock(datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(user_id="admin-1", email="admin@example.com", role=ActorRole.ADMIN)


@pytest.fixture
def dealer_actor() -> Actor:
    return Actor(
        user_id="dealer-user-1",
        email="owner@dealer-one.example",
        role=ActorRole.DEALER_ADMIN,
        dealer_id=DEALER_ID,
    )


@pytest.fixture
def dealer_employee() -> Actor:
    return Actor(
        user_id="dealer-user-2",
        email="sales@dealer-one.example",
        role=ActorRole.DEALER_EMPLOYEE,
        dealer_id=DEALER_ID,
    )


@pytest.fixture
def other_dealer_actor() -> Actor:
    return Actor(
        user_id="dealer-user-9",
        email="owner@dealer-two.example",
        role=ActorRole.DEALER_ADMIN,
        dealer_id=OTHER_DEALER_ID,
    )


@pytest.fixture
def provider_actor() -> Actor:
    return Actor(
        user_id="provider-user-1",
        email="ops@provider-one.example",
        role=ActorRole.PROVIDER,
        provider_id=PROVIDER_ID,
    )


@pytest.fixture
def other_provider_actor() -> Actor:
    return Actor(
        user_id="provider-user-2",
        email="ops@provider-two.example",
        role=ActorRole.PROVIDER,
        provider_id=OTHER_PROVIDER_ID,
    )


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def sql_engine():
    """SQLite in-memory engine with the schema and lock listeners installed."""
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    unregister_immutability_listeners()
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def sql_storage(sql_engine) -> SqlAlchemyStorage:
    return SqlAlchemyStorage(sessionmaker(bind=sql_engine, expire_on_commit=False))


@pytest.fixture(params=["memory", "sql"])
def storage(request):
    """Both storage backends; services must behave the same on either."""
    if request.param == "memory":
        return request.getfixturevalue("memory_storage")
    return request.getfixturevalue("sql_storage")


# =============================================================================
# Services
# =============================================================================


class StaticDecoder:
    """VIN decoder returning canned vehicles by VIN."""

    def __init__(self, vehicles: dict[str, VehicleAttributes] | None = None):
        self.vehicles = dict(vehicles or {})
        self.calls: list[str] = []

    def decode(self, vin: str) -> VehicleAttributes:
        self.calls.append(vin)
        if vin not in self.vehicles:
            raise LookupError(f"unknown VIN {vin}")
        return self.vehicles[vin]


@pytest.fixture
def decoder() -> StaticDecoder:
    return StaticDecoder({
        "1HGCM82633A004352": VehicleAttributes(
            vin="1HGCM82633A004352",
            model_year=2021,
            make="Honda",
            model="Accord",
            trim="EX-L",
        ),
    })


@pytest.fixture
def catalog_service(memory_storage, deterministic_clock) -> CatalogService:
    return CatalogService(memory_storage, deterministic_clock)


@pytest.fixture
def offer_service(memory_storage, deterministic_clock, decoder) -> OfferService:
    return OfferService(memory_storage, deterministic_clock, decoder=decoder)


@pytest.fixture
def contract_service(memory_storage, deterministic_clock) -> ContractService:
    return ContractService(memory_storage, deterministic_clock)


@pytest.fixture
def remittance_service(memory_storage, deterministic_clock) -> RemittanceService:
    return RemittanceService(memory_storage, deterministic_clock)


@pytest.fixture
def markup_service(memory_storage, deterministic_clock) -> MarkupService:
    return MarkupService(memory_storage, deterministic_clock)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_product(catalog_service, provider_actor):
    """Create (and by default publish) a product owned by ``provider_actor``."""

    def _make(publish: bool = True, actor=None, **fields):
        data = {"name": "Powertrain Plus", "max_mileage_km": 120_000}
        data.update(fields)
        owner = actor or provider_actor
        product = catalog_service.create_product(data, owner)
        if publish:
            product = catalog_service.publish_product(product.id, owner)
        return product

    return _make


@pytest.fixture
def make_variant(catalog_service, provider_actor):
    def _make(product, actor=None, **fields):
        data = {"base_price_cents": 20_000, "min_km": 0, "max_km": 100_000, "deductible_cents": 500}
        data.update(fields)
        return catalog_service.create_pricing_variant(product.id, data, actor or provider_actor)

    return _make


@pytest.fixture
def make_addon(catalog_service, provider_actor):
    def _make(product, actor=None, **fields):
        data = {"name": "Roadside Assistance", "base_price_cents": 4_000}
        data.update(fields)
        return catalog_service.create_addon(product.id, data, actor or provider_actor)

    return _make


@pytest.fixture
def priced_product(make_product, make_variant):
    """Published product (max 120 000 km) with one 0..100 000 km pricing row."""
    product = make_product()
    variant = make_variant(product)
    return product, variant


@pytest.fixture
def make_contract(contract_service, dealer_actor):
    counter = {"n": 0}

    def _make(actor=None, **fields):
        counter["n"] += 1
        data = {
            "contract_number": f"C-{counter['n']:04d}",
            "customer_name": "Jordan Lee",
            "vin": "1HGCM82633A004352",
            "vehicle_year": 2021,
            "vehicle_make": "Honda",
            "vehicle_model": "Accord",
            "vehicle_mileage_km": 90_000,
        }
        data.update(fields)
        return contract_service.create_draft(data, actor or dealer_actor)

    return _make


@pytest.fixture
def make_sold_contract(make_contract, contract_service, dealer_actor, priced_product):
    """DRAFT -> priced -> SOLD contract of ``dealer_actor``."""
    product, variant = priced_product

    def _make(actor=None, **fields):
        seller = actor or dealer_actor
        contract = make_contract(actor=seller, **fields)
        contract_service.select_offer(contract.id, product.id, seller, variant_id=variant.id)
        sold = contract_service.mark_sold(contract.id, seller)
        assert sold.status is ContractStatus.SOLD
        return sold

    return _make
