"""Pure domain value objects for the warranty kernel. ZERO I/O."""

from warranty_kernel.domain.audit import AuditEvent, AuditKind
from warranty_kernel.domain.catalog import (
    AddonPricingType,
    PricingVariant,
    Product,
    ProductAddon,
    ProductType,
)
from warranty_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from warranty_kernel.domain.contract import (
    AddonSnapshot,
    Contract,
    ContractStatus,
    PricingSnapshot,
    warranty_id_from_contract_id,
)
from warranty_kernel.domain.identity import Actor, ActorRole
from warranty_kernel.domain.markup import DealerMarkup
from warranty_kernel.domain.remittance import (
    BatchStatus,
    PaymentMethod,
    PaymentStatus,
    RemittanceBatch,
    RemittanceStatus,
)
from warranty_kernel.domain.values import MileageBand, TermKind, TermLimit
from warranty_kernel.domain.vehicle import VehicleAttributes

__all__ = [
    "Actor",
    "ActorRole",
    "AddonPricingType",
    "AddonSnapshot",
    "AuditEvent",
    "AuditKind",
    "BatchStatus",
    "Clock",
    "Contract",
    "ContractStatus",
    "DealerMarkup",
    "DeterministicClock",
    "MileageBand",
    "PaymentMethod",
    "PaymentStatus",
    "PricingSnapshot",
    "PricingVariant",
    "Product",
    "ProductAddon",
    "ProductType",
    "RemittanceBatch",
    "RemittanceStatus",
    "SystemClock",
    "TermKind",
    "TermLimit",
    "VehicleAttributes",
    "warranty_id_from_contract_id",
]
