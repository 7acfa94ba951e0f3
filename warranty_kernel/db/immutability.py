"""
ORM-Level Lock Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The lifecycle engine rejects illegal edits before anything is written.
This module re-checks the same rules at flush time so that code writing
ORM models directly (scripts, migrations, a buggy storage method) cannot
bypass them:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> LockedError subclass
         |
         v
    [before_delete] --> _check_*_delete() --> LockedError subclass
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity           | When locked                        | What stays writable
-----------------|------------------------------------|------------------------------
Contract         | status was not DRAFT before flush  | status, stamps, updated_at, version
Contract delete  | status is not DRAFT                | (nothing)
RemittanceBatch  | SUBMITTED / APPROVED / PAID        | everything but amount columns
RemittanceBatch  | PAID                               | everything but amount and payment columns
PricingVariant   | ALWAYS                             | (nothing; insert and delete only)
AuditEvent       | ALWAYS                             | (nothing; insert only)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. "WAS LOCKED" NOT "IS LOCKED".
   The lifecycle itself moves a contract out of DRAFT. The old status is
   read from attribute history so the DRAFT -> SOLD flush passes while
   every later business-field edit is blocked.

2. INLINE IMPORTS.
   Models import from db; db must not import models at module load.

===============================================================================
USAGE
===============================================================================

    from warranty_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; create_tables() calls it

Tests that must write forbidden rows directly:

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from warranty_kernel.exceptions import (
    AuditEventImmutableError,
    ContractLockedError,
    PricingVariantImmutableError,
    RemittanceLockedError,
)
from warranty_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AMOUNT_COLUMNS = frozenset({"contract_ids", "subtotal_cents", "tax_rate", "tax_cents", "total_cents"})
_PAYMENT_COLUMNS = frozenset({"payment_method", "payment_reference", "payment_date", "paid_at"})
_AMOUNTS_LOCKED_STATES = frozenset({"SUBMITTED", "APPROVED", "PAID"})


def _previous_value(target, key):
    """Value of ``key`` as loaded from the database, before pending changes."""
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, key)


def _changed_columns(target) -> list[str]:
    return [attr.key for attr in inspect(target).attrs if attr.history.has_changes()]


def _block(entity_type: str, entity_id, operation: str, fields) -> None:
    logger.error(
        "lock_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "fields": sorted(fields),
        },
    )


def _check_contract_update(mapper, connection, target):
    from warranty_kernel.models.contract import LIFECYCLE_COLUMNS

    old_status = _previous_value(target, "status")
    if old_status == "DRAFT":
        return

    frozen = [key for key in _changed_columns(target) if key not in LIFECYCLE_COLUMNS]
    if frozen:
        _block("Contract", target.id, "UPDATE", frozen)
        raise ContractLockedError(str(target.id), str(old_status), tuple(sorted(frozen)))


def _check_contract_delete(mapper, connection, target):
    old_status = _previous_value(target, "status")
    if old_status != "DRAFT":
        _block("Contract", target.id, "DELETE", ())
        raise ContractLockedError(str(target.id), str(old_status))


def _check_batch_update(mapper, connection, target):
    old_status = _previous_value(target, "remittance_status")
    locked: frozenset[str] = frozenset()
    if old_status in _AMOUNTS_LOCKED_STATES:
        locked |= _AMOUNT_COLUMNS
    if old_status == "PAID":
        locked |= _PAYMENT_COLUMNS
    if not locked:
        return

    frozen = [key for key in _changed_columns(target) if key in locked]
    if frozen:
        _block("RemittanceBatch", target.id, "UPDATE", frozen)
        raise RemittanceLockedError(str(target.id), str(old_status), tuple(sorted(frozen)))


def _check_variant_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block("PricingVariant", target.id, "UPDATE", changed)
        raise PricingVariantImmutableError(str(target.id), sorted(changed)[0])


def _check_audit_event_update(mapper, connection, target):
    _block("AuditEvent", target.id, "UPDATE", _changed_columns(target))
    raise AuditEventImmutableError(str(target.id), "UPDATE")


def _check_audit_event_delete(mapper, connection, target):
    _block("AuditEvent", target.id, "DELETE", ())
    raise AuditEventImmutableError(str(target.id), "DELETE")


def _listeners():
    from warranty_kernel.models.audit_event import AuditEventModel
    from warranty_kernel.models.catalog import PricingVariantModel
    from warranty_kernel.models.contract import ContractModel
    from warranty_kernel.models.remittance import RemittanceBatchModel

    return (
        (ContractModel, "before_update", _check_contract_update),
        (ContractModel, "before_delete", _check_contract_delete),
        (RemittanceBatchModel, "before_update", _check_batch_update),
        (PricingVariantModel, "before_update", _check_variant_update),
        (AuditEventModel, "before_update", _check_audit_event_update),
        (AuditEventModel, "before_delete", _check_audit_event_delete),
    )


def register_immutability_listeners():
    """Register every lock listener. Safe to call more than once."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the lock listeners.

    WARNING: Only use this in tests that must write forbidden rows.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
