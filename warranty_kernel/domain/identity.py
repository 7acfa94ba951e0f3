"""
Actor identity -- who performs a mutating operation.

The kernel performs no authentication. Callers pass an ``Actor`` into
every mutating call; it is used for attribution stamps, audit events and
ownership checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    """Platform roles."""

    UNASSIGNED = "UNASSIGNED"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"
    DEALER = "DEALER"
    DEALER_ADMIN = "DEALER_ADMIN"
    DEALER_EMPLOYEE = "DEALER_EMPLOYEE"
    PROVIDER = "PROVIDER"


ADMIN_ROLES = frozenset({ActorRole.ADMIN, ActorRole.SUPER_ADMIN})
DEALER_ROLES = frozenset({ActorRole.DEALER, ActorRole.DEALER_ADMIN, ActorRole.DEALER_EMPLOYEE})
DEALER_ADMIN_ROLES = frozenset({ActorRole.DEALER, ActorRole.DEALER_ADMIN})


@dataclass(frozen=True)
class Actor:
    """The acting user, supplied explicitly by the caller."""

    user_id: str
    email: str | None
    role: ActorRole
    dealer_id: str | None = None
    provider_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_dealer(self) -> bool:
        return self.role in DEALER_ROLES and bool(self.dealer_id)

    @property
    def is_dealer_admin(self) -> bool:
        return self.role in DEALER_ADMIN_ROLES and bool(self.dealer_id)

    @property
    def is_provider(self) -> bool:
        return self.role is ActorRole.PROVIDER and bool(self.provider_id)

    def acts_for_dealer(self, dealer_id: str | None) -> bool:
        return self.is_dealer and dealer_id is not None and self.dealer_id == dealer_id

    def acts_for_provider(self, provider_id: str | None) -> bool:
        return self.is_provider and provider_id is not None and self.provider_id == provider_id
