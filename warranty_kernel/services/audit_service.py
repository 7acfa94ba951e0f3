"""
AuditService -- append-only record of who did what.

Every lifecycle mutation (product publish, variant create/delete,
contract status change, remittance review, markup change) appends one
``AuditEvent`` carrying actor id, email and role, the dealer and
provider involved, the entity and a small JSON-safe metadata dict.

Events are never updated or deleted; the SQL backend enforces that with
ORM listeners as well.
"""

from __future__ import annotations

from typing import Any

from warranty_kernel.domain.audit import AuditEvent, AuditKind
from warranty_kernel.domain.clock import Clock
from warranty_kernel.domain.identity import Actor
from warranty_kernel.logging_config import get_logger
from warranty_kernel.storage.base import StorageBackend

logger = get_logger("services.audit")


class AuditService:
    """Records and reads audit events."""

    def __init__(self, storage: StorageBackend, clock: Clock):
        self._storage = storage
        self._clock = clock

    def record(
        self,
        kind: AuditKind,
        actor: Actor,
        *,
        entity_type: str,
        entity_id: Any,
        dealer_id: str | None = None,
        provider_id: str | None = None,
        message: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> AuditEvent:
        event = AuditEvent.for_actor(
            kind,
            actor,
            self._clock.now(),
            entity_type=entity_type,
            entity_id=entity_id,
            dealer_id=dealer_id,
            provider_id=provider_id,
            message=message,
            meta=meta,
        )
        self._storage.append_audit(event)
        logger.info(
            "audit_event_recorded",
            extra={
                "kind": kind.value,
                "entity_type": entity_type,
                "entity_id": event.entity_id,
                "actor_id": actor.user_id,
            },
        )
        return event

    def events_for(self, entity_id: Any) -> list[AuditEvent]:
        return self._storage.list_audit(entity_id=str(entity_id))

    def events_of_kind(self, kind: AuditKind) -> list[AuditEvent]:
        return self._storage.list_audit(kind=kind)

    def events_for_dealer(self, dealer_id: str) -> list[AuditEvent]:
        return self._storage.list_audit(dealer_id=dealer_id)
