"""
Remittance batch types -- a dealer's bundled submission of SOLD contracts.

The coarse ``status`` (OPEN/CLOSED) and ``payment_status`` (UNPAID/PAID)
are kept alongside the finer ``remittance_status`` review workflow.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class BatchStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"


class RemittanceStatus(str, Enum):
    """Review workflow of a batch."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class PaymentMethod(str, Enum):
    EFT = "EFT"
    CHEQUE = "CHEQUE"
    WIRE = "WIRE"
    CREDIT_CARD = "CREDIT_CARD"
    OTHER = "OTHER"


# Frozen once the batch is SUBMITTED, APPROVED or PAID.
AMOUNT_FIELDS: frozenset[str] = frozenset({
    "contract_ids", "subtotal_cents", "tax_rate", "tax_cents", "total_cents",
})

# Additionally frozen once the batch is PAID.
PAYMENT_FIELDS: frozenset[str] = frozenset({
    "payment_method", "payment_reference", "payment_date", "paid_at",
})

# Free-form review notes stay editable in every state.
NOTE_FIELDS: frozenset[str] = frozenset({"admin_notes"})

BATCH_EDITABLE_FIELDS: frozenset[str] = AMOUNT_FIELDS | PAYMENT_FIELDS | NOTE_FIELDS | {"batch_number"}


@dataclass(frozen=True)
class RemittanceBatch:
    """Immutable snapshot of a remittance batch record."""

    id: UUID
    batch_number: str
    dealer_id: str
    contract_ids: tuple[UUID, ...] = ()
    subtotal_cents: int = 0
    tax_rate: Decimal = Decimal("0")
    tax_cents: int = 0
    total_cents: int = 0
    status: BatchStatus = BatchStatus.OPEN
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    remittance_status: RemittanceStatus = RemittanceStatus.DRAFT

    created_by_user_id: str | None = None
    created_by_email: str | None = None
    submitted_by_user_id: str | None = None
    submitted_by_email: str | None = None
    submitted_at: datetime | None = None
    reviewed_by_user_id: str | None = None
    reviewed_by_email: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    admin_notes: str | None = None

    payment_method: PaymentMethod | None = None
    payment_reference: str | None = None
    payment_date: date | None = None
    paid_by_user_id: str | None = None
    paid_by_email: str | None = None
    paid_at: datetime | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1

    @property
    def is_submitted(self) -> bool:
        return self.remittance_status is not RemittanceStatus.DRAFT
