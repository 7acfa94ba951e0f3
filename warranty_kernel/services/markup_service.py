"""
MarkupService -- per-dealer retail markup over cost.

The stored percentage is clamped to [0, 200] on write and clamped again
by the cost model on use. A dealer without a stored markup sees its true
cost as the retail price.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from warranty_engines.cost_model import clamp_markup_pct
from warranty_kernel.domain.audit import AuditKind
from warranty_kernel.domain.identity import Actor
from warranty_kernel.domain.markup import DealerMarkup
from warranty_kernel.domain.values import parse_decimal
from warranty_kernel.logging_config import LogContext, get_logger
from warranty_kernel.services.base import BaseService

logger = get_logger("services.markup")


class MarkupService(BaseService):
    """Reads and writes dealer markup percentages."""

    def get_markup(self, dealer_id: str) -> DealerMarkup | None:
        return self.storage.get_markup(dealer_id)

    def get_markup_pct(self, dealer_id: str | None) -> Decimal | None:
        if not dealer_id:
            return None
        markup = self.storage.get_markup(dealer_id)
        return None if markup is None else markup.markup_pct

    def set_markup_pct(self, dealer_id: str, markup_pct: Any, actor: Actor) -> DealerMarkup:
        """
        Store a dealer's markup percentage.

        Args:
            dealer_id: Dealer whose markup changes.
            markup_pct: Percentage over cost; clamped to [0, 200].
            actor: Dealer admin of ``dealer_id``.

        Raises:
            NotAuthorizedError: Actor is not a dealer admin of that dealer.
            ValidationError: ``markup_pct`` is not a finite number.
        """
        self._authorize(
            actor.is_dealer_admin and actor.acts_for_dealer(dealer_id),
            actor,
            "set_markup",
            dealer_id,
        )
        requested = parse_decimal("markup_pct", markup_pct)
        pct = clamp_markup_pct(requested)

        with LogContext.bind(actor_id=actor.user_id, dealer_id=dealer_id):
            with self.storage.transaction():
                previous = self.storage.get_markup(dealer_id)
                markup = self.storage.put_markup(
                    DealerMarkup(
                        dealer_id=dealer_id,
                        markup_pct=pct,
                        updated_at=self.clock.now(),
                        updated_by_user_id=actor.user_id,
                    )
                )
                self.audit.record(
                    AuditKind.DEALER_MARKUP_UPDATED, actor,
                    entity_type="DealerMarkup", entity_id=dealer_id,
                    dealer_id=dealer_id,
                    meta={
                        "previous_pct": None if previous is None else str(previous.markup_pct),
                        "markup_pct": str(pct),
                    },
                )
            if pct != requested:
                logger.warning(
                    "markup_clamped",
                    extra={"requested_pct": str(requested), "markup_pct": str(pct)},
                )
            logger.info("dealer_markup_updated", extra={"markup_pct": str(pct)})
        return markup
