"""
Tests for RemittanceService.

Covers:
- Batch creation: membership rules and totals from pricing and add-on snapshots
- Editing with recomputed totals; amounts frozen after submission
- Atomic submission (SOLD -> REMITTED) and rollback on a bad member
- Admin review: approve, reject with reason, resubmission after reject
- Atomic payment (REMITTED -> PAID) with method/date and payer checks
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from warranty_kernel.domain.audit import AuditKind
from warranty_kernel.domain.contract import ContractStatus
from warranty_kernel.domain.remittance import (
    BatchStatus,
    PaymentMethod,
    PaymentStatus,
    RemittanceStatus,
)
from warranty_kernel.exceptions import (
    ContractNotFoundError,
    InvalidTransitionError,
    NotAuthorizedError,
    PricingUnavailableError,
    RemittanceLockedError,
    ValidationError,
)
from warranty_kernel.services.remittance_service import RemittanceService


@pytest.fixture
def approved_batch(make_sold_contract, remittance_service, dealer_actor, admin_actor):
    contracts = [make_sold_contract(), make_sold_contract()]
    batch = remittance_service.create_batch([c.id for c in contracts], dealer_actor)
    remittance_service.submit(batch.id, dealer_actor)
    return remittance_service.approve(batch.id, admin_actor), contracts


class TestCreateBatch:

    def test_totals_from_snapshots(self, make_sold_contract, remittance_service, dealer_actor):
        contracts = [make_sold_contract(), make_sold_contract()]
        batch = remittance_service.create_batch(
            [c.id for c in contracts], dealer_actor, batch_number="RB-100", tax_rate="0.13"
        )
        assert batch.batch_number == "RB-100"
        assert batch.contract_ids == tuple(c.id for c in contracts)
        assert (batch.subtotal_cents, batch.tax_cents, batch.total_cents) == (40_000, 5_200, 45_200)
        assert batch.tax_rate == Decimal("0.13")
        assert batch.status is BatchStatus.OPEN
        assert batch.remittance_status is RemittanceStatus.DRAFT
        assert batch.payment_status is PaymentStatus.UNPAID

    def test_totals_include_addon_cost(
        self, make_contract, make_sold_contract, contract_service, markup_service,
        remittance_service, dealer_actor, priced_product, make_addon,
    ):
        product, variant = priced_product
        addon = make_addon(product, dealer_cost_cents=3_000)
        markup_service.set_markup_pct(dealer_actor.dealer_id, "50", dealer_actor)
        contract = make_contract()
        contract_service.select_offer(
            contract.id, product.id, dealer_actor, variant_id=variant.id, addon_ids=[addon.id]
        )
        with_addon = contract_service.mark_sold(contract.id, dealer_actor)
        plain = make_sold_contract()

        batch = remittance_service.create_batch([with_addon.id, plain.id], dealer_actor, tax_rate="0.10")

        # Cost, not marked-up retail, is remitted.
        assert (batch.subtotal_cents, batch.tax_cents, batch.total_cents) == (43_000, 4_300, 47_300)

    def test_generated_batch_number(self, make_sold_contract, remittance_service, dealer_actor):
        batch = remittance_service.create_batch([str(make_sold_contract().id)], dealer_actor)
        assert batch.batch_number.startswith("RB-20240601-")

    def test_default_tax_rate(self, make_sold_contract, memory_storage, deterministic_clock, dealer_actor):
        service = RemittanceService(memory_storage, deterministic_clock, default_tax_rate=Decimal("0.05"))
        batch = service.create_batch([make_sold_contract().id], dealer_actor)
        assert (batch.subtotal_cents, batch.tax_cents, batch.total_cents) == (20_000, 1_000, 21_000)

    def test_empty_or_duplicate_members(self, make_sold_contract, remittance_service, dealer_actor):
        contract = make_sold_contract()
        with pytest.raises(ValidationError):
            remittance_service.create_batch([], dealer_actor)
        with pytest.raises(ValidationError):
            remittance_service.create_batch([contract.id, contract.id], dealer_actor)

    def test_draft_member_rejected(self, make_contract, remittance_service, dealer_actor):
        with pytest.raises(InvalidTransitionError):
            remittance_service.create_batch([make_contract().id], dealer_actor)

    def test_unknown_member(self, remittance_service, dealer_actor):
        with pytest.raises(ContractNotFoundError):
            remittance_service.create_batch([uuid4()], dealer_actor)

    def test_other_dealers_contract(self, make_sold_contract, remittance_service, other_dealer_actor):
        contract = make_sold_contract()
        with pytest.raises(ValidationError):
            remittance_service.create_batch([contract.id], other_dealer_actor)

    def test_contract_in_live_batch(self, make_sold_contract, remittance_service, dealer_actor):
        contract = make_sold_contract()
        remittance_service.create_batch([contract.id], dealer_actor)
        with pytest.raises(ValidationError, match="already in batch"):
            remittance_service.create_batch([contract.id], dealer_actor)

    def test_unpriced_member_fails_closed(self, make_contract, contract_service, remittance_service, dealer_actor):
        contract = make_contract()
        contract_service.mark_sold(contract.id, dealer_actor)
        with pytest.raises(PricingUnavailableError):
            remittance_service.create_batch([contract.id], dealer_actor)

    def test_provider_cannot_create(self, make_sold_contract, remittance_service, provider_actor):
        with pytest.raises(NotAuthorizedError):
            remittance_service.create_batch([make_sold_contract().id], provider_actor)


class TestUpdateBatch:

    def test_members_change_recomputes_totals(self, make_sold_contract, remittance_service, dealer_actor):
        first, second = make_sold_contract(), make_sold_contract()
        batch = remittance_service.create_batch([first.id], dealer_actor)

        updated = remittance_service.update_batch(
            batch.id, {"contract_ids": [first.id, second.id], "tax_rate": "0.10"}, dealer_actor
        )

        assert updated.contract_ids == (first.id, second.id)
        assert (updated.subtotal_cents, updated.tax_cents, updated.total_cents) == (40_000, 4_000, 44_000)

    def test_totals_not_patchable(self, make_sold_contract, remittance_service, dealer_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        with pytest.raises(ValidationError):
            remittance_service.update_batch(batch.id, {"total_cents": 1}, dealer_actor)

    def test_amounts_frozen_after_submission(self, make_sold_contract, remittance_service, dealer_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        remittance_service.submit(batch.id, dealer_actor)
        with pytest.raises(RemittanceLockedError):
            remittance_service.update_batch(batch.id, {"tax_rate": "0.2"}, dealer_actor)

    def test_admin_notes_after_payment(self, approved_batch, remittance_service, admin_actor):
        batch, _ = approved_batch
        remittance_service.mark_paid(
            batch.id, admin_actor, payment_method="EFT", payment_date=date(2024, 6, 15)
        )
        noted = remittance_service.update_batch(batch.id, {"admin_notes": "reconciled"}, admin_actor)
        assert noted.admin_notes == "reconciled"
        with pytest.raises(RemittanceLockedError):
            remittance_service.update_batch(batch.id, {"payment_reference": "X"}, admin_actor)

    def test_dealer_cannot_write_review_fields(self, make_sold_contract, remittance_service, dealer_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        with pytest.raises(NotAuthorizedError):
            remittance_service.update_batch(batch.id, {"admin_notes": "self-approved"}, dealer_actor)


class TestSubmit:

    def test_submission_remits_members(
        self, make_sold_contract, remittance_service, contract_service, dealer_actor, deterministic_clock
    ):
        contracts = [make_sold_contract(), make_sold_contract()]
        batch = remittance_service.create_batch([c.id for c in contracts], dealer_actor)

        submitted = remittance_service.submit(batch.id, dealer_actor)

        assert submitted.remittance_status is RemittanceStatus.SUBMITTED
        assert submitted.status is BatchStatus.CLOSED
        assert submitted.submitted_by_user_id == dealer_actor.user_id
        for contract in contracts:
            stored = contract_service.get(contract.id, dealer_actor)
            assert stored.status is ContractStatus.REMITTED
            assert stored.remitted_by_user_id == dealer_actor.user_id
            assert stored.remitted_at == deterministic_clock.now()

    def test_submission_is_atomic(
        self, make_sold_contract, remittance_service, contract_service, dealer_actor, memory_storage
    ):
        good, bad = make_sold_contract(), make_sold_contract()
        batch = remittance_service.create_batch([good.id, bad.id], dealer_actor)
        # ``bad`` leaves SOLD behind the batch's back.
        contract_service.transition(bad.id, ContractStatus.REMITTED, dealer_actor)
        audit_before = len(memory_storage.list_audit())

        with pytest.raises(InvalidTransitionError):
            remittance_service.submit(batch.id, dealer_actor)

        assert contract_service.get(good.id, dealer_actor).status is ContractStatus.SOLD
        assert remittance_service.get_batch(batch.id, dealer_actor).remittance_status is RemittanceStatus.DRAFT
        assert len(memory_storage.list_audit()) == audit_before

    def test_resubmit_is_noop(self, make_sold_contract, remittance_service, dealer_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        submitted = remittance_service.submit(batch.id, dealer_actor)
        assert remittance_service.submit(batch.id, dealer_actor) == submitted

    def test_only_owning_dealer_submits(self, make_sold_contract, remittance_service, dealer_actor, other_dealer_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        with pytest.raises(NotAuthorizedError):
            remittance_service.submit(batch.id, other_dealer_actor)


class TestReview:

    def test_approve(self, approved_batch, admin_actor):
        batch, _ = approved_batch
        assert batch.remittance_status is RemittanceStatus.APPROVED
        assert batch.reviewed_by_user_id == admin_actor.user_id

    def test_dealer_cannot_approve(self, make_sold_contract, remittance_service, dealer_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        remittance_service.submit(batch.id, dealer_actor)
        with pytest.raises(NotAuthorizedError):
            remittance_service.approve(batch.id, dealer_actor)

    def test_cannot_approve_draft(self, make_sold_contract, remittance_service, dealer_actor, admin_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        with pytest.raises(InvalidTransitionError):
            remittance_service.approve(batch.id, admin_actor)

    def test_reject_requires_reason(self, make_sold_contract, remittance_service, dealer_actor, admin_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        remittance_service.submit(batch.id, dealer_actor)
        with pytest.raises(ValidationError):
            remittance_service.reject(batch.id, admin_actor, "  ")

        rejected = remittance_service.reject(batch.id, admin_actor, "wrong tax rate")
        assert rejected.remittance_status is RemittanceStatus.REJECTED
        assert rejected.rejection_reason == "wrong tax rate"
        events = remittance_service.audit.events_for(batch.id)
        assert events[-1].kind is AuditKind.REMITTANCE_REJECTED
        assert events[-1].message == "wrong tax rate"

    def test_rejected_contracts_can_be_batched_again(
        self, make_sold_contract, remittance_service, contract_service, dealer_actor, admin_actor
    ):
        contract = make_sold_contract()
        first = remittance_service.create_batch([contract.id], dealer_actor)
        remittance_service.submit(first.id, dealer_actor)
        remittance_service.reject(first.id, admin_actor, "resend with receipt")

        second = remittance_service.create_batch([contract.id], dealer_actor)
        resubmitted = remittance_service.submit(second.id, dealer_actor)

        assert resubmitted.remittance_status is RemittanceStatus.SUBMITTED
        assert contract_service.get(contract.id, dealer_actor).status is ContractStatus.REMITTED

    def test_rejected_is_terminal(self, make_sold_contract, remittance_service, dealer_actor, admin_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        remittance_service.submit(batch.id, dealer_actor)
        remittance_service.reject(batch.id, admin_actor, "duplicate")
        with pytest.raises(InvalidTransitionError):
            remittance_service.approve(batch.id, admin_actor)


class TestMarkPaid:

    def test_payment_pays_members(self, approved_batch, remittance_service, contract_service, provider_actor):
        batch, contracts = approved_batch

        paid = remittance_service.mark_paid(
            batch.id,
            provider_actor,
            payment_method="cheque",
            payment_date="2024-06-15",
            payment_reference=" CHQ-881 ",
        )

        assert paid.remittance_status is RemittanceStatus.PAID
        assert paid.payment_status is PaymentStatus.PAID
        assert paid.payment_method is PaymentMethod.CHEQUE
        assert paid.payment_date == date(2024, 6, 15)
        assert paid.payment_reference == "CHQ-881"
        assert paid.paid_by_user_id == provider_actor.user_id
        for contract in contracts:
            stored = contract_service.get(contract.id, provider_actor)
            assert stored.status is ContractStatus.PAID
            assert stored.paid_by_user_id == provider_actor.user_id

    @pytest.mark.parametrize(
        "method, paid_on",
        [(None, date(2024, 6, 15)), ("EFT", None), ("BARTER", date(2024, 6, 15)), ("EFT", "15/06/2024")],
    )
    def test_method_and_date_required(self, approved_batch, remittance_service, admin_actor, method, paid_on):
        batch, _ = approved_batch
        with pytest.raises(ValidationError):
            remittance_service.mark_paid(batch.id, admin_actor, payment_method=method, payment_date=paid_on)

    def test_only_from_approved(self, make_sold_contract, remittance_service, dealer_actor, admin_actor):
        batch = remittance_service.create_batch([make_sold_contract().id], dealer_actor)
        remittance_service.submit(batch.id, dealer_actor)
        with pytest.raises(InvalidTransitionError):
            remittance_service.mark_paid(
                batch.id, admin_actor, payment_method="EFT", payment_date=date(2024, 6, 15)
            )

    def test_payer_must_cover_every_member(
        self, approved_batch, remittance_service, dealer_actor, other_provider_actor
    ):
        batch, _ = approved_batch
        for actor in (dealer_actor, other_provider_actor):
            with pytest.raises(NotAuthorizedError):
                remittance_service.mark_paid(
                    batch.id, actor, payment_method="EFT", payment_date=date(2024, 6, 15)
                )

    def test_member_already_paid_is_skipped(
        self, approved_batch, remittance_service, contract_service, admin_actor, provider_actor
    ):
        batch, contracts = approved_batch
        contract_service.transition(contracts[1].id, ContractStatus.PAID, provider_actor)

        paid = remittance_service.mark_paid(
            batch.id, admin_actor, payment_method="WIRE", payment_date=date(2024, 6, 15)
        )

        assert paid.remittance_status is RemittanceStatus.PAID
        assert contract_service.get(contracts[0].id, admin_actor).paid_by_user_id == admin_actor.user_id
        assert contract_service.get(contracts[1].id, admin_actor).paid_by_user_id == provider_actor.user_id

    def test_payment_audited(self, approved_batch, remittance_service, admin_actor):
        batch, contracts = approved_batch
        remittance_service.mark_paid(
            batch.id, admin_actor, payment_method=PaymentMethod.EFT, payment_date=date(2024, 6, 15)
        )
        kinds = [e.kind for e in remittance_service.audit.events_for(batch.id)]
        assert kinds == [
            AuditKind.REMITTANCE_CREATED,
            AuditKind.REMITTANCE_SUBMITTED,
            AuditKind.REMITTANCE_APPROVED,
            AuditKind.REMITTANCE_PAID,
        ]
        paid_contracts = remittance_service.audit.events_of_kind(AuditKind.CONTRACT_PAID)
        assert {e.entity_id for e in paid_contracts} == {str(c.id) for c in contracts}


class TestVisibility:

    def test_list_by_role(
        self, approved_batch, remittance_service,
        dealer_actor, other_dealer_actor, provider_actor, other_provider_actor, admin_actor,
    ):
        batch, _ = approved_batch
        assert [b.id for b in remittance_service.list_batches(dealer_actor)] == [batch.id]
        assert remittance_service.list_batches(other_dealer_actor) == []
        assert [b.id for b in remittance_service.list_batches(provider_actor)] == [batch.id]
        assert remittance_service.list_batches(other_provider_actor) == []
        assert len(remittance_service.list_batches(admin_actor, RemittanceStatus.APPROVED)) == 1

    def test_other_dealer_cannot_view(self, approved_batch, remittance_service, other_dealer_actor):
        batch, _ = approved_batch
        with pytest.raises(NotAuthorizedError):
            remittance_service.get_batch(batch.id, other_dealer_actor)
