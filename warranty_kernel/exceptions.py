"""
Typed Exception Hierarchy for the Warranty Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the kernel can report is a typed, recoverable exception with
a machine-readable ``code`` class attribute and structured attributes.
Callers catch by type and render by code; they never parse messages.

    try:
        contracts.update(contract_id, {"customer_name": "X"}, actor)
    except ContractLockedError as e:
        api_response(code=e.code, contract=e.contract_id, status=e.status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WarrantyError (base)
    |
    +-- ValidationError
    +-- ConfigurationError
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- PricingVariantNotFoundError
    |   +-- ProductAddonNotFoundError
    |   +-- ContractNotFoundError
    |   +-- RemittanceBatchNotFoundError
    +-- NotAuthorizedError
    +-- InvalidTransitionError
    +-- LockedError
    |   +-- ContractLockedError
    |   +-- RemittanceLockedError
    |   +-- PricingVariantImmutableError
    |   +-- AuditEventImmutableError
    +-- NoEligibleVariantError
    +-- PricingUnavailableError
    +-- ConcurrencyConflictError
    +-- VehicleDecodeError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|-----------------------------------------------
VALIDATION_ERROR            | Malformed or out-of-range input
CONFIGURATION_ERROR         | Invalid configuration file or environment
PRODUCT_NOT_FOUND           | Product id does not exist
PRICING_VARIANT_NOT_FOUND   | Variant id does not exist (or not in product)
CONTRACT_NOT_FOUND          | Contract id does not exist
REMITTANCE_BATCH_NOT_FOUND  | Batch id does not exist
NOT_AUTHORIZED              | Actor does not own the resource being mutated
INVALID_TRANSITION          | Status jump that is not the single next state
CONTRACT_LOCKED             | Business field edit on a non-DRAFT contract
REMITTANCE_LOCKED           | Frozen batch field edit after submission/payment
PRICING_VARIANT_IMMUTABLE   | Update attempted on a pricing variant
AUDIT_EVENT_IMMUTABLE       | Update or delete attempted on an audit event
NO_ELIGIBLE_VARIANT         | Resolver found no matching pricing row
PRICING_UNAVAILABLE         | Cost basis undefined; no price may be shown
CONCURRENCY_CONFLICT        | Entity changed under a concurrent writer
VEHICLE_DECODE_FAILED       | External VIN decoder failed

None of these are fatal. ``NoEligibleVariantError`` is a defined empty
result surfaced as an exception only by the ``require_*`` helpers; the
plain resolver returns ``None``.
"""


class WarrantyError(Exception):
    """Base exception for all warranty kernel errors."""

    code: str = "WARRANTY_ERROR"


class ValidationError(WarrantyError):
    """Input is malformed, missing, or out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class ConfigurationError(WarrantyError):
    """Configuration could not be loaded or is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")


# Lookup failures


class NotFoundError(WarrantyError):
    """Base exception for missing referenced entities."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type = "Product"


class PricingVariantNotFoundError(NotFoundError):
    code: str = "PRICING_VARIANT_NOT_FOUND"
    entity_type = "PricingVariant"


class ProductAddonNotFoundError(NotFoundError):
    code: str = "PRODUCT_ADDON_NOT_FOUND"
    entity_type = "ProductAddon"


class ContractNotFoundError(NotFoundError):
    code: str = "CONTRACT_NOT_FOUND"
    entity_type = "Contract"


class RemittanceBatchNotFoundError(NotFoundError):
    code: str = "REMITTANCE_BATCH_NOT_FOUND"
    entity_type = "RemittanceBatch"


# Authorization


class NotAuthorizedError(WarrantyError):
    """The acting user does not own, or may not act on, the resource."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor_id: str, action: str, entity_id: str | None = None):
        self.actor_id = actor_id
        self.action = action
        self.entity_id = entity_id
        target = f" on {entity_id}" if entity_id else ""
        super().__init__(f"Actor {actor_id} is not authorized to {action}{target}")


# Lifecycle


class InvalidTransitionError(WarrantyError):
    """Requested status is not the single next state of the lifecycle."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid {entity_type} status transition for {entity_id}: "
            f"{from_status} -> {to_status}"
        )


class LockedError(WarrantyError):
    """Base exception for edits of fields frozen by lifecycle state."""

    code: str = "LOCKED"


class ContractLockedError(LockedError):
    """Business field edit attempted on a contract that left DRAFT."""

    code: str = "CONTRACT_LOCKED"

    def __init__(self, contract_id: str, status: str, fields: tuple[str, ...] = ()):
        self.contract_id = contract_id
        self.status = status
        self.fields = fields
        detail = f" (fields: {', '.join(fields)})" if fields else ""
        super().__init__(
            f"Contract {contract_id} is locked in status {status}; "
            f"only DRAFT contracts are editable{detail}"
        )


class RemittanceLockedError(LockedError):
    """Frozen remittance batch field edit attempted."""

    code: str = "REMITTANCE_LOCKED"

    def __init__(self, batch_id: str, remittance_status: str, fields: tuple[str, ...] = ()):
        self.batch_id = batch_id
        self.remittance_status = remittance_status
        self.fields = fields
        super().__init__(
            f"Remittance batch {batch_id} is locked in status {remittance_status} "
            f"(fields: {', '.join(fields)})"
        )


class PricingVariantImmutableError(LockedError):
    """Pricing variants may be created or deleted, never updated."""

    code: str = "PRICING_VARIANT_IMMUTABLE"

    def __init__(self, variant_id: str, field: str):
        self.variant_id = variant_id
        self.field = field
        super().__init__(
            f"Pricing variant {variant_id} is immutable; cannot modify '{field}'"
        )


class AuditEventImmutableError(LockedError):
    """Audit events are append-only."""

    code: str = "AUDIT_EVENT_IMMUTABLE"

    def __init__(self, event_id: str, operation: str):
        self.event_id = event_id
        self.operation = operation
        super().__init__(f"Audit event {event_id} is append-only; {operation} refused")


# Pricing


class NoEligibleVariantError(WarrantyError):
    """No pricing variant of the product matches the vehicle and constraints."""

    code: str = "NO_ELIGIBLE_VARIANT"

    def __init__(self, product_id: str, reason: str = "no pricing row matches vehicle"):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"No eligible pricing variant for product {product_id}: {reason}")


class PricingUnavailableError(WarrantyError):
    """Neither dealer cost nor base price is a finite number."""

    code: str = "PRICING_UNAVAILABLE"

    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"No price available for {source_id}: cost basis is undefined")


# Concurrency


class ConcurrencyConflictError(WarrantyError):
    """The entity was modified by another writer since it was read."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int, actual_version: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )


# External collaborators


class VehicleDecodeError(WarrantyError):
    """The external VIN decoder failed; distinct from an eligibility result."""

    code: str = "VEHICLE_DECODE_FAILED"

    def __init__(self, vin: str, reason: str):
        self.vin = vin
        self.reason = reason
        super().__init__(f"VIN decode failed for {vin}: {reason}")
