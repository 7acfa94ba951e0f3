"""
Module: warranty_kernel.models.remittance
Responsibility: ORM persistence for dealer remittance batches.
Architecture position: Kernel > Models.

Invariants enforced:
    - Amount columns are frozen from SUBMITTED onward and payment columns
      once PAID (db/immutability.py).
    - Member contract ids are stored as a JSON array of strings in
      submission order.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Date, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from warranty_kernel.db.base import TrackedBase, UTCDateTime
from warranty_kernel.domain.remittance import (
    BatchStatus,
    PaymentMethod,
    PaymentStatus,
    RemittanceBatch,
    RemittanceStatus,
)


class RemittanceBatchModel(TrackedBase):
    """Persistent remittance batch."""

    __tablename__ = "remittance_batches"

    __table_args__ = (
        Index("idx_batch_dealer_status", "dealer_id", "remittance_status"),
    )

    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    dealer_id: Mapped[str] = mapped_column(String(100), nullable=False)
    contract_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    subtotal_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False, default=Decimal("0"))
    tax_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BatchStatus.OPEN.value)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)
    remittance_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RemittanceStatus.DRAFT.value,
    )

    created_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    submitted_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    submitted_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    reviewed_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reviewed_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_by_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    paid_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<RemittanceBatch {self.id} {self.batch_number} {self.remittance_status}>"

    def to_dto(self) -> RemittanceBatch:
        return RemittanceBatch(
            id=self.id,
            batch_number=self.batch_number,
            dealer_id=self.dealer_id,
            contract_ids=tuple(UUID(c) for c in (self.contract_ids or ())),
            subtotal_cents=self.subtotal_cents,
            tax_rate=Decimal(self.tax_rate),
            tax_cents=self.tax_cents,
            total_cents=self.total_cents,
            status=BatchStatus(self.status),
            payment_status=PaymentStatus(self.payment_status),
            remittance_status=RemittanceStatus(self.remittance_status),
            created_by_user_id=self.created_by_user_id,
            created_by_email=self.created_by_email,
            submitted_by_user_id=self.submitted_by_user_id,
            submitted_by_email=self.submitted_by_email,
            submitted_at=self.submitted_at,
            reviewed_by_user_id=self.reviewed_by_user_id,
            reviewed_by_email=self.reviewed_by_email,
            reviewed_at=self.reviewed_at,
            rejection_reason=self.rejection_reason,
            admin_notes=self.admin_notes,
            payment_method=PaymentMethod(self.payment_method) if self.payment_method else None,
            payment_reference=self.payment_reference,
            payment_date=self.payment_date,
            paid_by_user_id=self.paid_by_user_id,
            paid_by_email=self.paid_by_email,
            paid_at=self.paid_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )

    @staticmethod
    def column_values(dto: RemittanceBatch) -> dict:
        return {
            "batch_number": dto.batch_number,
            "dealer_id": dto.dealer_id,
            "contract_ids": [str(c) for c in dto.contract_ids],
            "subtotal_cents": dto.subtotal_cents,
            "tax_rate": dto.tax_rate,
            "tax_cents": dto.tax_cents,
            "total_cents": dto.total_cents,
            "status": dto.status.value,
            "payment_status": dto.payment_status.value,
            "remittance_status": dto.remittance_status.value,
            "created_by_user_id": dto.created_by_user_id,
            "created_by_email": dto.created_by_email,
            "submitted_by_user_id": dto.submitted_by_user_id,
            "submitted_by_email": dto.submitted_by_email,
            "submitted_at": dto.submitted_at,
            "reviewed_by_user_id": dto.reviewed_by_user_id,
            "reviewed_by_email": dto.reviewed_by_email,
            "reviewed_at": dto.reviewed_at,
            "rejection_reason": dto.rejection_reason,
            "admin_notes": dto.admin_notes,
            "payment_method": dto.payment_method.value if dto.payment_method else None,
            "payment_reference": dto.payment_reference,
            "payment_date": dto.payment_date,
            "paid_by_user_id": dto.paid_by_user_id,
            "paid_by_email": dto.paid_by_email,
            "paid_at": dto.paid_at,
            "created_at": dto.created_at,
            "updated_at": dto.updated_at,
            "version": dto.version,
        }

    @classmethod
    def from_dto(cls, dto: RemittanceBatch) -> RemittanceBatchModel:
        return cls(id=dto.id, **cls.column_values(dto))
