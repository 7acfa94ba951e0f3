"""
BaseService -- common constructor and helpers for kernel services.

Responsibility:
    Holds the storage backend, the injected clock and the audit recorder
    every concrete service uses, plus the authorization guard.

Architecture position:
    Kernel > Services -- imperative shell around the pure engines.

Invariants enforced:
    - Time comes from the injected ``Clock``; services never call
      ``datetime.now()``.
    - Mutations run inside ``storage.transaction()`` and record their
      audit event in the same transaction, so an aborted mutation leaves
      no audit trace.
"""

from __future__ import annotations

from abc import ABC

from warranty_kernel.domain.clock import Clock, SystemClock
from warranty_kernel.domain.identity import Actor
from warranty_kernel.exceptions import NotAuthorizedError
from warranty_kernel.logging_config import get_logger
from warranty_kernel.services.audit_service import AuditService
from warranty_kernel.storage.base import StorageBackend

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for warranty services.

    Contract:
        Accepts a ``StorageBackend`` and an optional ``Clock``. Public
        methods return frozen domain objects, never ORM entities.
    """

    def __init__(self, storage: StorageBackend, clock: Clock | None = None):
        self.storage = storage
        self.clock = clock or SystemClock()
        self.audit = AuditService(storage, self.clock)

    @staticmethod
    def _authorize(allowed: bool, actor: Actor, action: str, entity_id=None) -> None:
        if allowed:
            return
        logger.warning(
            "authorization_denied",
            extra={
                "actor_id": actor.user_id,
                "actor_role": actor.role.value,
                "action": action,
                "entity_id": str(entity_id) if entity_id is not None else None,
            },
        )
        raise NotAuthorizedError(actor.user_id, action, str(entity_id) if entity_id is not None else None)
