"""ORM persistence for per-dealer markup percentages."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from warranty_kernel.db.base import Base, UTCDateTime
from warranty_kernel.domain.markup import DealerMarkup


class DealerMarkupModel(Base):
    __tablename__ = "dealer_markups"

    dealer_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    markup_pct: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    updated_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_dto(self) -> DealerMarkup:
        return DealerMarkup(
            dealer_id=self.dealer_id,
            markup_pct=Decimal(self.markup_pct),
            updated_at=self.updated_at,
            updated_by_user_id=self.updated_by_user_id,
        )
