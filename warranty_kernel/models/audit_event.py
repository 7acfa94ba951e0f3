"""
Module: warranty_kernel.models.audit_event
Responsibility: ORM persistence for append-only audit events.
Architecture position: Kernel > Models.

Invariants enforced:
    - Audit events are never updated or deleted (db/immutability.py).
    - ``seq`` is a monotonic insertion counter used for ordering.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from warranty_kernel.db.base import Base, UTCDateTime
from warranty_kernel.domain.audit import AuditEvent, AuditKind


class AuditEventModel(Base):
    """Persistent audit event."""

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_kind", "kind"),
        Index("idx_audit_dealer", "dealer_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    actor_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    actor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(30), nullable=True)
    dealer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    provider_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.kind} on {self.entity_type}:{self.entity_id}>"

    def to_dto(self) -> AuditEvent:
        return AuditEvent(
            id=self.id,
            kind=AuditKind(self.kind),
            created_at=self.created_at,
            actor_user_id=self.actor_user_id,
            actor_email=self.actor_email,
            actor_role=self.actor_role,
            dealer_id=self.dealer_id,
            provider_id=self.provider_id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            message=self.message,
            meta=dict(self.meta or {}),
        )

    @classmethod
    def from_dto(cls, dto: AuditEvent, seq: int) -> AuditEventModel:
        return cls(
            id=dto.id,
            seq=seq,
            kind=dto.kind.value,
            created_at=dto.created_at,
            actor_user_id=dto.actor_user_id,
            actor_email=dto.actor_email,
            actor_role=dto.actor_role,
            dealer_id=dto.dealer_id,
            provider_id=dto.provider_id,
            entity_type=dto.entity_type,
            entity_id=dto.entity_id,
            message=dto.message,
            meta=dict(dto.meta),
        )
