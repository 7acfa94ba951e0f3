"""Dealer markup -- a per-dealer retail percentage over cost."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from warranty_kernel.exceptions import ValidationError

MARKUP_PCT_MIN = Decimal("0")
MARKUP_PCT_MAX = Decimal("200")


@dataclass(frozen=True)
class DealerMarkup:
    """Stored markup for one dealer. Always within [0, 200] percent."""

    dealer_id: str
    markup_pct: Decimal
    updated_at: datetime | None = None
    updated_by_user_id: str | None = None

    def __post_init__(self) -> None:
        if not self.dealer_id:
            raise ValidationError("dealer_id", "markup must belong to a dealer")
        if not MARKUP_PCT_MIN <= self.markup_pct <= MARKUP_PCT_MAX:
            raise ValidationError("markup_pct", f"must be within [0, 200], got {self.markup_pct}")
