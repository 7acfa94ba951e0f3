"""
Tests for MarkupService.

Covers:
- Dealer admin sets markup for its own dealer only
- Clamping to [0, 200] with a warning log
- Non-numeric input rejected
- Audit of markup changes
"""

from decimal import Decimal

import pytest

from warranty_kernel.domain.audit import AuditKind
from warranty_kernel.exceptions import NotAuthorizedError, ValidationError


class TestSetMarkup:

    def test_set_and_read(self, markup_service, dealer_actor, deterministic_clock):
        markup = markup_service.set_markup_pct(dealer_actor.dealer_id, "12.5", dealer_actor)
        assert markup.markup_pct == Decimal("12.5")
        assert markup.updated_by_user_id == dealer_actor.user_id
        assert markup.updated_at == deterministic_clock.now()
        assert markup_service.get_markup_pct(dealer_actor.dealer_id) == Decimal("12.5")

    def test_unset_dealer(self, markup_service):
        assert markup_service.get_markup("nobody") is None
        assert markup_service.get_markup_pct("nobody") is None
        assert markup_service.get_markup_pct(None) is None

    @pytest.mark.parametrize("requested, stored", [(-5, Decimal("0")), (350, Decimal("200"))])
    def test_out_of_range_is_clamped(self, markup_service, dealer_actor, captured_logs, requested, stored):
        markup = markup_service.set_markup_pct(dealer_actor.dealer_id, requested, dealer_actor)
        assert markup.markup_pct == stored
        record = next(r for r in captured_logs() if r["message"] == "markup_clamped")
        assert record["level"] == "WARNING"
        assert record["markup_pct"] == str(stored)

    @pytest.mark.parametrize("value", ["lots", "NaN", True, None])
    def test_non_numeric_rejected(self, markup_service, dealer_actor, value):
        with pytest.raises(ValidationError):
            markup_service.set_markup_pct(dealer_actor.dealer_id, value, dealer_actor)
        assert markup_service.get_markup(dealer_actor.dealer_id) is None

    def test_employee_cannot_set(self, markup_service, dealer_employee):
        with pytest.raises(NotAuthorizedError):
            markup_service.set_markup_pct(dealer_employee.dealer_id, 10, dealer_employee)

    def test_other_dealer_cannot_set(self, markup_service, dealer_actor, other_dealer_actor):
        with pytest.raises(NotAuthorizedError):
            markup_service.set_markup_pct(dealer_actor.dealer_id, 10, other_dealer_actor)

    def test_change_is_audited(self, markup_service, dealer_actor):
        markup_service.set_markup_pct(dealer_actor.dealer_id, 10, dealer_actor)
        markup_service.set_markup_pct(dealer_actor.dealer_id, 15, dealer_actor)

        events = markup_service.audit.events_for(dealer_actor.dealer_id)
        assert [e.kind for e in events] == [AuditKind.DEALER_MARKUP_UPDATED] * 2
        assert events[-1].meta == {"previous_pct": "10", "markup_pct": "15"}
