"""
RemittanceService -- dealer remittance batches and their review workflow.

Responsibility:
    Bundles a dealer's SOLD contracts into a batch, totals it from the
    contracts' pricing snapshots, and drives the review workflow
    (DRAFT -> SUBMITTED -> APPROVED | REJECTED, APPROVED -> PAID).

Architecture position:
    Kernel > Services -- imperative shell around
    ``warranty_engines.lifecycle`` and ``warranty_engines.cost_model``.

Invariants enforced:
    - Submission closes the batch and moves every member contract
      SOLD -> REMITTED in one transaction. If any member cannot move,
      nothing is written.
    - Payment (from APPROVED only, method and date required) moves every
      member REMITTED -> PAID in one transaction.
    - Amounts freeze on submission; payment metadata freezes on payment.
    - A contract belongs to at most one batch that is not REJECTED.
      Contracts of a rejected batch stay REMITTED and may be batched
      again.
    - Totals are the sum of member cost bases and add-on costs plus tax
      at the batch rate, rounded half-up to whole cents.

Failure modes:
    - RemittanceBatchNotFoundError, ContractNotFoundError.
    - NotAuthorizedError: wrong dealer, non-admin review, or a payer who
      is neither admin nor provider of every member.
    - ValidationError: duplicate or foreign members, missing reason,
      missing payment method or date.
    - InvalidTransitionError / RemittanceLockedError from the lifecycle
      engine.
    - PricingUnavailableError: a member has no pricing snapshot.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from warranty_engines.cost_model import batch_totals, require_cost_basis
from warranty_engines.lifecycle import (
    apply_batch_patch,
    check_batch_patch,
    check_members_remittable,
    coerce_payment_method,
    transition,
    transition_batch,
)
from warranty_kernel.domain.audit import AuditKind
from warranty_kernel.domain.clock import Clock
from warranty_kernel.domain.contract import Contract, ContractStatus
from warranty_kernel.domain.identity import Actor
from warranty_kernel.domain.remittance import (
    PAYMENT_FIELDS,
    RemittanceBatch,
    RemittanceStatus,
)
from warranty_kernel.domain.values import parse_decimal
from warranty_kernel.exceptions import (
    ContractNotFoundError,
    NotAuthorizedError,
    RemittanceBatchNotFoundError,
    ValidationError,
)
from warranty_kernel.logging_config import LogContext, get_logger
from warranty_kernel.services.base import BaseService
from warranty_kernel.storage.base import StorageBackend

logger = get_logger("services.remittance")

# Totals are derived from members and the tax rate, never patched directly.
_DERIVED_FIELDS = frozenset({"subtotal_cents", "tax_cents", "total_cents"})


def _contract_ids(values: Iterable[Any]) -> tuple[UUID, ...]:
    ids: list[UUID] = []
    for value in values or ():
        try:
            contract_id = value if isinstance(value, UUID) else UUID(str(value))
        except ValueError:
            raise ValidationError("contract_ids", f"not a contract id: {value!r}") from None
        if contract_id in ids:
            raise ValidationError("contract_ids", f"contract {contract_id} listed twice")
        ids.append(contract_id)
    if not ids:
        raise ValidationError("contract_ids", "a batch needs at least one contract")
    return tuple(ids)


def _tax_rate(value: Any) -> Decimal:
    rate = parse_decimal("tax_rate", value)
    if rate < 0:
        raise ValidationError("tax_rate", "must not be negative")
    return rate


def _payment_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError("payment_date", f"not an ISO date: {value!r}") from None
    raise ValidationError("payment_date", "payment date is required")


def member_costs(contracts: Sequence[Contract]) -> list[int]:
    """Cost of every member: its pricing snapshot plus its sold add-ons."""
    return [require_cost_basis(c.pricing, str(c.id)) + c.addon_total_cost_cents for c in contracts]


class RemittanceService(BaseService):
    """Remittance batch creation, review and payment."""

    def __init__(
        self,
        storage: StorageBackend,
        clock: Clock | None = None,
        default_tax_rate: Decimal = Decimal("0"),
    ):
        super().__init__(storage, clock)
        self._default_tax_rate = _tax_rate(default_tax_rate)

    # -- helpers -------------------------------------------------------------

    def _load(self, batch_id: UUID, *, for_update: bool = False) -> RemittanceBatch:
        batch = self.storage.get_batch(batch_id, for_update=for_update)
        if batch is None:
            raise RemittanceBatchNotFoundError(str(batch_id))
        return batch

    def _members(self, contract_ids: Iterable[UUID]) -> list[Contract]:
        contracts: list[Contract] = []
        for contract_id, contract in zip(contract_ids, self.storage.iter_contracts(contract_ids)):
            if contract is None:
                raise ContractNotFoundError(str(contract_id))
            contracts.append(contract)
        return contracts

    def _membership(
        self,
        dealer_id: str,
        contract_ids: Sequence[UUID],
        exclude_batch: UUID | None = None,
    ) -> frozenset[UUID]:
        """
        Check that no contract sits in another live batch.

        Returns the ids that only ever appeared in REJECTED batches; those
        may be batched again while REMITTED.
        """
        wanted = set(contract_ids)
        rejected: set[UUID] = set()
        for other in self.storage.list_batches(dealer_id=dealer_id):
            if other.id == exclude_batch:
                continue
            overlap = wanted.intersection(other.contract_ids)
            if not overlap:
                continue
            if other.remittance_status is RemittanceStatus.REJECTED:
                rejected |= overlap
                continue
            taken = sorted(str(c) for c in overlap)[0]
            raise ValidationError(
                "contract_ids", f"contract {taken} is already in batch {other.batch_number}"
            )
        return frozenset(rejected)

    def _checked_members(self, batch: RemittanceBatch) -> list[Contract]:
        resubmittable = self._membership(batch.dealer_id, batch.contract_ids, exclude_batch=batch.id)
        contracts = self._members(batch.contract_ids)
        check_members_remittable(batch, contracts, resubmittable=resubmittable)
        return contracts

    def _can_view(self, batch: RemittanceBatch, actor: Actor) -> bool:
        if actor.is_admin or actor.acts_for_dealer(batch.dealer_id):
            return True
        if actor.is_provider:
            return any(
                c is not None and actor.acts_for_provider(c.provider_id)
                for c in (self.storage.get_contract(cid) for cid in batch.contract_ids)
            )
        return False

    # -- reads ---------------------------------------------------------------

    def get_batch(self, batch_id: UUID, actor: Actor) -> RemittanceBatch:
        batch = self._load(batch_id)
        self._authorize(self._can_view(batch, actor), actor, "view_remittance", batch_id)
        return batch

    def list_batches(
        self,
        actor: Actor,
        remittance_status: RemittanceStatus | None = None,
    ) -> list[RemittanceBatch]:
        if actor.is_admin:
            return self.storage.list_batches(remittance_status=remittance_status)
        if actor.is_dealer:
            return self.storage.list_batches(
                dealer_id=actor.dealer_id, remittance_status=remittance_status
            )
        if actor.is_provider:
            return [
                b for b in self.storage.list_batches(remittance_status=remittance_status)
                if self._can_view(b, actor)
            ]
        raise NotAuthorizedError(actor.user_id, "list_remittances")

    # -- dealer operations ---------------------------------------------------

    def create_batch(
        self,
        contract_ids: Iterable[Any],
        actor: Actor,
        *,
        batch_number: str | None = None,
        tax_rate: Any = None,
    ) -> RemittanceBatch:
        """
        Create a DRAFT batch of the dealer's SOLD contracts.

        Args:
            contract_ids: Member contract ids; no duplicates.
            actor: Dealer user; the batch belongs to the actor's dealer.
            batch_number: Dealer-facing number; generated when omitted.
            tax_rate: Fractional rate (0.13 for 13%); defaults to config.
        """
        self._authorize(actor.is_dealer, actor, "create_remittance")
        ids = _contract_ids(contract_ids)
        rate = self._default_tax_rate if tax_rate is None else _tax_rate(tax_rate)
        now = self.clock.now()
        batch_id = uuid4()
        number = (batch_number or "").strip() or f"RB-{now:%Y%m%d}-{batch_id.hex[:6].upper()}"

        with LogContext.bind(actor_id=actor.user_id, dealer_id=actor.dealer_id, entity_id=str(batch_id)):
            with self.storage.transaction():
                batch = RemittanceBatch(
                    id=batch_id,
                    batch_number=number,
                    dealer_id=actor.dealer_id,
                    contract_ids=ids,
                    tax_rate=rate,
                    created_by_user_id=actor.user_id,
                    created_by_email=actor.email,
                    created_at=now,
                    updated_at=now,
                )
                contracts = self._checked_members(batch)
                subtotal, tax, total = batch_totals(member_costs(contracts), rate)
                batch = self.storage.add_batch(
                    apply_batch_patch(
                        batch,
                        {"subtotal_cents": subtotal, "tax_cents": tax, "total_cents": total},
                        now,
                    )
                )
                self.audit.record(
                    AuditKind.REMITTANCE_CREATED, actor,
                    entity_type="RemittanceBatch", entity_id=batch.id,
                    dealer_id=batch.dealer_id,
                    meta={"contract_count": len(ids), "total_cents": total},
                )
            logger.info(
                "remittance_created",
                extra={
                    "batch_id": str(batch.id),
                    "batch_number": batch.batch_number,
                    "contract_count": len(ids),
                    "total_cents": total,
                },
            )
        return batch

    def update_batch(self, batch_id: UUID, patch: Mapping[str, Any], actor: Actor) -> RemittanceBatch:
        """
        Edit a batch. Changing members or tax rate recomputes the totals.

        The dealer edits batch number, members and tax rate; admins edit
        notes and payment metadata.
        """
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(batch_id)):
            with self.storage.transaction():
                batch = self._load(batch_id, for_update=True)
                admin_fields = set(patch) & (PAYMENT_FIELDS | {"admin_notes"})
                dealer_fields = set(patch) - admin_fields
                if admin_fields:
                    self._authorize(actor.is_admin, actor, "update_remittance_review", batch_id)
                if dealer_fields:
                    self._authorize(
                        actor.acts_for_dealer(batch.dealer_id), actor, "update_remittance", batch_id
                    )

                check_batch_patch(batch, patch)
                derived = sorted(set(patch) & _DERIVED_FIELDS)
                if derived:
                    raise ValidationError(derived[0], "derived from member contracts and tax rate")

                now = self.clock.now()
                changes = dict(patch)
                if "contract_ids" in changes:
                    changes["contract_ids"] = _contract_ids(changes["contract_ids"])
                if "tax_rate" in changes:
                    changes["tax_rate"] = _tax_rate(changes["tax_rate"])
                updated = apply_batch_patch(batch, changes, now)

                if "contract_ids" in patch or "tax_rate" in patch:
                    contracts = self._checked_members(updated)
                    subtotal, tax, total = batch_totals(member_costs(contracts), updated.tax_rate)
                    updated = apply_batch_patch(
                        updated,
                        {"subtotal_cents": subtotal, "tax_cents": tax, "total_cents": total},
                        now,
                    )

                updated = self.storage.save_batch(updated, expected_version=batch.version)
                self.audit.record(
                    AuditKind.REMITTANCE_UPDATED, actor,
                    entity_type="RemittanceBatch", entity_id=batch_id,
                    dealer_id=batch.dealer_id,
                    meta={"fields": sorted(patch)},
                )
            logger.info("remittance_updated", extra={"batch_id": str(batch_id), "fields": sorted(patch)})
        return updated

    def submit(self, batch_id: UUID, actor: Actor) -> RemittanceBatch:
        """
        Submit a DRAFT batch and remit every member contract.

        Atomic: if any member is not SOLD (or a resubmittable REMITTED
        contract), no contract and not the batch are changed.
        """
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(batch_id)):
            with self.storage.transaction():
                batch = self._load(batch_id, for_update=True)
                self._authorize(
                    actor.acts_for_dealer(batch.dealer_id), actor, "submit_remittance", batch_id
                )
                now = self.clock.now()
                submitted = transition_batch(batch, RemittanceStatus.SUBMITTED, actor, now)
                if submitted is batch:
                    return batch

                remitted = 0
                for contract in self._checked_members(batch):
                    moved = transition(contract, ContractStatus.REMITTED, actor, now)
                    if moved is contract:
                        continue
                    self.storage.save_contract(moved, expected_version=contract.version)
                    self.audit.record(
                        AuditKind.CONTRACT_REMITTED, actor,
                        entity_type="Contract", entity_id=contract.id,
                        dealer_id=contract.dealer_id,
                        provider_id=contract.provider_id,
                        meta={"batch_id": str(batch_id)},
                    )
                    remitted += 1

                submitted = self.storage.save_batch(submitted, expected_version=batch.version)
                self.audit.record(
                    AuditKind.REMITTANCE_SUBMITTED, actor,
                    entity_type="RemittanceBatch", entity_id=batch_id,
                    dealer_id=batch.dealer_id,
                    meta={"total_cents": batch.total_cents, "remitted_count": remitted},
                )
            logger.info(
                "remittance_submitted",
                extra={"batch_id": str(batch_id), "remitted_count": remitted},
            )
        return submitted

    # -- admin review --------------------------------------------------------

    def _review(
        self,
        batch_id: UUID,
        actor: Actor,
        desired: RemittanceStatus,
        kind: AuditKind,
        **fields: Any,
    ) -> RemittanceBatch:
        with LogContext.bind(actor_id=actor.user_id, entity_id=str(batch_id)):
            with self.storage.transaction():
                batch = self._load(batch_id, for_update=True)
                self._authorize(actor.is_admin, actor, f"{desired.value.lower()}_remittance", batch_id)
                reviewed = transition_batch(batch, desired, actor, self.clock.now(), **fields)
                if reviewed is batch:
                    return batch
                reviewed = self.storage.save_batch(reviewed, expected_version=batch.version)
                self.audit.record(
                    kind, actor,
                    entity_type="RemittanceBatch", entity_id=batch_id,
                    dealer_id=batch.dealer_id,
                    message=fields.get("rejection_reason"),
                )
            logger.info(
                "remittance_reviewed",
                extra={"batch_id": str(batch_id), "remittance_status": desired.value},
            )
        return reviewed

    def approve(self, batch_id: UUID, actor: Actor, notes: str | None = None) -> RemittanceBatch:
        fields = {"admin_notes": notes.strip()} if notes and notes.strip() else {}
        return self._review(
            batch_id, actor, RemittanceStatus.APPROVED, AuditKind.REMITTANCE_APPROVED, **fields
        )

    def reject(self, batch_id: UUID, actor: Actor, reason: str) -> RemittanceBatch:
        """Reject a submitted batch. A reason is required."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("rejection_reason", "a rejection needs a reason")
        return self._review(
            batch_id,
            actor,
            RemittanceStatus.REJECTED,
            AuditKind.REMITTANCE_REJECTED,
            rejection_reason=reason,
        )

    def mark_paid(
        self,
        batch_id: UUID,
        actor: Actor,
        *,
        payment_method: Any,
        payment_date: Any,
        payment_reference: str | None = None,
    ) -> RemittanceBatch:
        """
        Record payment of an APPROVED batch and mark every member PAID.

        Args:
            payment_method: A ``PaymentMethod`` or its name.
            payment_date: ``date`` or ISO date string.
            payment_reference: Optional cheque number or transfer id.

        Raises:
            NotAuthorizedError: Actor is neither admin nor the provider of
                every member contract.
            ValidationError: Missing method or date.
            InvalidTransitionError: Batch not APPROVED, or a member is not
                REMITTED. Nothing is written.
        """
        if payment_method is None or not str(payment_method).strip():
            raise ValidationError("payment_method", "payment method is required")
        method = coerce_payment_method(payment_method)
        paid_on = _payment_date(payment_date)
        reference = (payment_reference or "").strip() or None

        with LogContext.bind(actor_id=actor.user_id, entity_id=str(batch_id)):
            with self.storage.transaction():
                batch = self._load(batch_id, for_update=True)
                contracts = self._members(batch.contract_ids)
                self._authorize(
                    actor.is_admin
                    or (
                        actor.is_provider
                        and all(actor.acts_for_provider(c.provider_id) for c in contracts)
                    ),
                    actor,
                    "pay_remittance",
                    batch_id,
                )
                now = self.clock.now()
                paid = transition_batch(
                    batch,
                    RemittanceStatus.PAID,
                    actor,
                    now,
                    payment_method=method,
                    payment_date=paid_on,
                    payment_reference=reference,
                )
                if paid is batch:
                    return batch

                for contract in contracts:
                    moved = transition(contract, ContractStatus.PAID, actor, now)
                    if moved is contract:
                        continue
                    self.storage.save_contract(moved, expected_version=contract.version)
                    self.audit.record(
                        AuditKind.CONTRACT_PAID, actor,
                        entity_type="Contract", entity_id=contract.id,
                        dealer_id=contract.dealer_id,
                        provider_id=contract.provider_id,
                        meta={"batch_id": str(batch_id)},
                    )

                paid = self.storage.save_batch(paid, expected_version=batch.version)
                self.audit.record(
                    AuditKind.REMITTANCE_PAID, actor,
                    entity_type="RemittanceBatch", entity_id=batch_id,
                    dealer_id=batch.dealer_id,
                    meta={
                        "payment_method": method.value,
                        "payment_date": paid_on.isoformat(),
                        "total_cents": batch.total_cents,
                    },
                )
            logger.info(
                "remittance_paid",
                extra={
                    "batch_id": str(batch_id),
                    "payment_method": method.value,
                    "contract_count": len(contracts),
                },
            )
        return paid
