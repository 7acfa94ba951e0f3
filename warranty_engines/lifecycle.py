"""
warranty_engines.lifecycle -- Contract and remittance state machine rules.

Responsibility:
    Validate status transitions and field patches against the contract
    and remittance workflows, and derive the next immutable snapshot
    (with attribution stamps) when a transition or patch is legal.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The current time and the acting user are explicit arguments.

Invariants enforced:
    - Contract status is strictly linear: DRAFT -> SOLD -> REMITTED -> PAID.
      Requesting the current status is an idempotent no-op; any other
      jump raises InvalidTransitionError.
    - Entering a stage stamps ``<stage>_by_user_id``, ``<stage>_by_email``
      and ``<stage>_at`` for that stage only.
    - A non-DRAFT contract accepts only ``status`` in a patch. The whole
      patch is rejected if any other key is present.
    - Stamp fields are never accepted from a patch.
    - Batch amounts freeze on submission; payment metadata freezes on
      payment. Review notes stay editable.

Failure modes:
    - ValidationError: unknown keys, stamp keys, malformed values.
    - ContractLockedError / RemittanceLockedError: frozen fields.
    - InvalidTransitionError: illegal status jump.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

from warranty_kernel.domain.contract import (
    EDITABLE_FIELDS,
    SELECTION_FIELDS,
    STAMP_FIELDS,
    Contract,
    ContractStatus,
)
from warranty_kernel.domain.identity import Actor
from warranty_kernel.domain.remittance import (
    AMOUNT_FIELDS,
    BATCH_EDITABLE_FIELDS,
    PAYMENT_FIELDS,
    BatchStatus,
    PaymentMethod,
    PaymentStatus,
    RemittanceBatch,
    RemittanceStatus,
)
from warranty_kernel.domain.values import integral_or_none, parse_decimal, require_cents
from warranty_kernel.domain.vehicle import clean_vin, parse_model_year
from warranty_kernel.domain.workflow import CONTRACT_WORKFLOW, REMITTANCE_WORKFLOW
from warranty_kernel.exceptions import (
    ContractLockedError,
    InvalidTransitionError,
    RemittanceLockedError,
    ValidationError,
)

_CONTRACT_ORDER: tuple[ContractStatus, ...] = (
    ContractStatus.DRAFT,
    ContractStatus.SOLD,
    ContractStatus.REMITTED,
    ContractStatus.PAID,
)

# Batch states in which amounts are frozen.
_AMOUNTS_LOCKED = frozenset({
    RemittanceStatus.SUBMITTED,
    RemittanceStatus.APPROVED,
    RemittanceStatus.PAID,
})


# =============================================================================
# Contracts
# =============================================================================


def coerce_contract_status(value: Any) -> ContractStatus:
    if isinstance(value, ContractStatus):
        return value
    try:
        return ContractStatus(str(value).strip().upper())
    except ValueError:
        raise ValidationError("status", f"unknown contract status {value!r}") from None


def next_contract_status(status: ContractStatus) -> ContractStatus | None:
    """The single legal successor of ``status``; None for PAID."""
    index = _CONTRACT_ORDER.index(status)
    if index + 1 >= len(_CONTRACT_ORDER):
        return None
    return _CONTRACT_ORDER[index + 1]


def check_contract_transition(
    contract_id: Any,
    current: ContractStatus,
    desired: ContractStatus,
) -> bool:
    """Validate a status change.

    Returns:
        True when the contract advances, False for the same-status no-op.

    Raises:
        InvalidTransitionError: ``desired`` is neither current nor next.
    """
    if desired is current:
        return False
    if desired is not next_contract_status(current):
        raise InvalidTransitionError("Contract", str(contract_id), current.value, desired.value)
    return True


def _stamp(prefix: str, actor: Actor, now: datetime) -> dict[str, Any]:
    return {
        f"{prefix}_by_user_id": actor.user_id,
        f"{prefix}_by_email": actor.email,
        f"{prefix}_at": now,
    }


def transition(contract: Contract, desired: ContractStatus, actor: Actor, now: datetime) -> Contract:
    """Move a contract to ``desired`` and stamp the entered stage."""
    desired = coerce_contract_status(desired)
    if not check_contract_transition(contract.id, contract.status, desired):
        return contract
    step = CONTRACT_WORKFLOW.find(contract.status.value, desired.value)
    return replace(
        contract,
        status=desired,
        updated_at=now,
        **_stamp(step.stamp_prefix, actor, now),
    )


def check_contract_patch(
    contract: Contract,
    patch: Mapping[str, Any],
    *,
    allow_selection: bool = False,
) -> None:
    """Reject a patch the contract's current status does not allow.

    ``allow_selection`` admits product/variant/pricing keys; only offer
    selection sets them.
    """
    keys = set(patch)
    stamps = sorted(keys & STAMP_FIELDS)
    if stamps:
        raise ValidationError(stamps[0], "attribution stamps are set by status transitions only")
    unknown = sorted(keys - EDITABLE_FIELDS - {"status"})
    if unknown:
        raise ValidationError(unknown[0], "not an editable contract field")

    business = sorted(keys - {"status"})
    if business and contract.is_locked:
        raise ContractLockedError(str(contract.id), contract.status.value, tuple(business))

    selection = sorted(keys & set(SELECTION_FIELDS))
    if selection and not allow_selection:
        raise ValidationError(selection[0], "set by selecting an offer")

    if "status" in patch:
        check_contract_transition(contract.id, contract.status, coerce_contract_status(patch["status"]))


def _required_text(field: str, value: Any) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValidationError(field, "is required")
    return text


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_contract_field(field: str, value: Any) -> Any:
    if field in ("contract_number", "customer_name"):
        return _required_text(field, value)
    if field == "vin":
        return clean_vin(value) if value else None
    if field == "vehicle_year":
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        year = parse_model_year(value)
        if year is None:
            raise ValidationError(field, f"must be a whole year, got {value!r}")
        return year
    if field == "vehicle_mileage_km":
        if value is None:
            return None
        km = integral_or_none(value)
        if km is None or km < 0:
            raise ValidationError(field, f"must be a non-negative number, got {value!r}")
        return km
    if field in SELECTION_FIELDS:
        return value
    return _optional_text(value)


def apply_contract_patch(
    contract: Contract,
    patch: Mapping[str, Any],
    actor: Actor,
    now: datetime,
    *,
    allow_selection: bool = False,
) -> Contract:
    """Validate and apply a patch; a ``status`` key transitions last."""
    check_contract_patch(contract, patch, allow_selection=allow_selection)

    changes = {k: _coerce_contract_field(k, v) for k, v in patch.items() if k != "status"}
    updated = replace(contract, updated_at=now, **changes) if changes else contract

    if "status" in patch:
        updated = transition(updated, coerce_contract_status(patch["status"]), actor, now)
    return updated


def check_contract_deletable(contract: Contract) -> None:
    if contract.is_locked:
        raise ContractLockedError(str(contract.id), contract.status.value)


# =============================================================================
# Remittance batches
# =============================================================================


def check_remittance_transition(
    batch_id: Any,
    current: RemittanceStatus,
    desired: RemittanceStatus,
) -> bool:
    """True when the batch advances, False for the same-status no-op."""
    if desired is current:
        return False
    if REMITTANCE_WORKFLOW.find(current.value, desired.value) is None:
        raise InvalidTransitionError("RemittanceBatch", str(batch_id), current.value, desired.value)
    return True


def transition_batch(
    batch: RemittanceBatch,
    desired: RemittanceStatus,
    actor: Actor,
    now: datetime,
    **fields: Any,
) -> RemittanceBatch:
    """Advance the review workflow and keep the coarse statuses in step.

    Extra ``fields`` (rejection reason, payment metadata) are written in
    the same snapshot.
    """
    if not check_remittance_transition(batch.id, batch.remittance_status, desired):
        return batch
    step = REMITTANCE_WORKFLOW.find(batch.remittance_status.value, desired.value)
    changes: dict[str, Any] = {
        "remittance_status": desired,
        "updated_at": now,
        **_stamp(step.stamp_prefix, actor, now),
        **fields,
    }
    if desired is RemittanceStatus.SUBMITTED:
        changes["status"] = BatchStatus.CLOSED
    elif desired is RemittanceStatus.PAID:
        changes["payment_status"] = PaymentStatus.PAID
    return replace(batch, **changes)


def locked_batch_fields(batch: RemittanceBatch) -> frozenset[str]:
    """Fields frozen in the batch's current review state."""
    locked: frozenset[str] = frozenset()
    if batch.remittance_status in _AMOUNTS_LOCKED:
        locked |= AMOUNT_FIELDS
    if batch.remittance_status is RemittanceStatus.PAID:
        locked |= PAYMENT_FIELDS
    return locked


def check_batch_patch(batch: RemittanceBatch, patch: Mapping[str, Any]) -> None:
    keys = set(patch)
    unknown = sorted(keys - BATCH_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(unknown[0], "not an editable remittance field")
    frozen = tuple(sorted(keys & locked_batch_fields(batch)))
    if frozen:
        raise RemittanceLockedError(str(batch.id), batch.remittance_status.value, frozen)


def coerce_payment_method(value: Any) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().upper())
    except ValueError:
        raise ValidationError("payment_method", f"unknown payment method {value!r}") from None


def _coerce_batch_field(field: str, value: Any) -> Any:
    if field == "batch_number":
        return _required_text(field, value)
    if field == "contract_ids":
        return tuple(value or ())
    if field == "tax_rate":
        rate = parse_decimal(field, value)
        if rate < 0:
            raise ValidationError(field, "must not be negative")
        return rate
    if field in ("subtotal_cents", "tax_cents", "total_cents"):
        return require_cents(field, value)
    if field == "payment_method":
        return None if value is None else coerce_payment_method(value)
    if field in ("payment_date", "paid_at"):
        return value
    return _optional_text(value)


def apply_batch_patch(batch: RemittanceBatch, patch: Mapping[str, Any], now: datetime) -> RemittanceBatch:
    check_batch_patch(batch, patch)
    if not patch:
        return batch
    changes = {k: _coerce_batch_field(k, v) for k, v in patch.items()}
    return replace(batch, updated_at=now, **changes)


def check_members_remittable(
    batch: RemittanceBatch,
    contracts: Iterable[Contract],
    *,
    resubmittable: frozenset = frozenset(),
) -> None:
    """Every member must belong to the batch's dealer and be SOLD.

    ``resubmittable`` holds ids of REMITTED contracts whose earlier batches
    were all rejected; those may be batched again.
    """
    for contract in contracts:
        if contract.dealer_id != batch.dealer_id:
            raise ValidationError(
                "contract_ids", f"contract {contract.id} belongs to another dealer"
            )
        if contract.status is ContractStatus.REMITTED and contract.id in resubmittable:
            continue
        if contract.status is not ContractStatus.SOLD:
            raise InvalidTransitionError(
                "Contract", str(contract.id), contract.status.value, ContractStatus.REMITTED.value
            )
