"""Append-only audit events recorded alongside lifecycle mutations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from warranty_kernel.domain.identity import Actor


class AuditKind(str, Enum):
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"
    PRODUCT_PUBLISHED = "PRODUCT_PUBLISHED"
    PRODUCT_UNPUBLISHED = "PRODUCT_UNPUBLISHED"
    PRICING_VARIANT_CREATED = "PRICING_VARIANT_CREATED"
    PRICING_VARIANT_DELETED = "PRICING_VARIANT_DELETED"
    PRODUCT_ADDON_CREATED = "PRODUCT_ADDON_CREATED"
    PRODUCT_ADDON_DELETED = "PRODUCT_ADDON_DELETED"
    CONTRACT_CREATED = "CONTRACT_CREATED"
    CONTRACT_UPDATED = "CONTRACT_UPDATED"
    CONTRACT_PRICED = "CONTRACT_PRICED"
    CONTRACT_SOLD = "CONTRACT_SOLD"
    CONTRACT_REMITTED = "CONTRACT_REMITTED"
    CONTRACT_PAID = "CONTRACT_PAID"
    CONTRACT_DELETED = "CONTRACT_DELETED"
    REMITTANCE_CREATED = "REMITTANCE_CREATED"
    REMITTANCE_UPDATED = "REMITTANCE_UPDATED"
    REMITTANCE_SUBMITTED = "REMITTANCE_SUBMITTED"
    REMITTANCE_APPROVED = "REMITTANCE_APPROVED"
    REMITTANCE_REJECTED = "REMITTANCE_REJECTED"
    REMITTANCE_PAID = "REMITTANCE_PAID"
    DEALER_MARKUP_UPDATED = "DEALER_MARKUP_UPDATED"


@dataclass(frozen=True)
class AuditEvent:
    kind: AuditKind
    created_at: datetime
    actor_user_id: str | None = None
    actor_email: str | None = None
    actor_role: str | None = None
    dealer_id: str | None = None
    provider_id: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    message: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)

    @classmethod
    def for_actor(
        cls,
        kind: AuditKind,
        actor: Actor,
        at: datetime,
        *,
        entity_type: str,
        entity_id: Any,
        dealer_id: str | None = None,
        provider_id: str | None = None,
        message: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> AuditEvent:
        return cls(
            kind=kind,
            created_at=at,
            actor_user_id=actor.user_id,
            actor_email=actor.email,
            actor_role=actor.role.value,
            dealer_id=dealer_id if dealer_id is not None else actor.dealer_id,
            provider_id=provider_id if provider_id is not None else actor.provider_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            message=message,
            meta=meta or {},
        )
