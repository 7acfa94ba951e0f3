"""
Canonical workflow types (``warranty_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the contract and remittance state machines, and
the two workflow definitions the lifecycle engine enforces.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from warranty_kernel.domain.contract import ContractStatus
from warranty_kernel.domain.remittance import RemittanceStatus


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``stamp_prefix`` names the attribution fields written when the
    transition fires (``<prefix>_by_user_id``, ``<prefix>_by_email``,
    ``<prefix>_at``).
    """
    from_state: str
    to_state: str
    action: str
    stamp_prefix: str | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t.action} references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state} has outgoing transition")

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def targets(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)


CONTRACT_WORKFLOW = Workflow(
    name="contract",
    description="Customer sale: drafted, sold, remitted to the provider, paid.",
    initial_state=ContractStatus.DRAFT.value,
    states=tuple(s.value for s in ContractStatus),
    transitions=(
        Transition("DRAFT", "SOLD", "sell", stamp_prefix="sold"),
        Transition("SOLD", "REMITTED", "remit", stamp_prefix="remitted"),
        Transition("REMITTED", "PAID", "pay", stamp_prefix="paid"),
    ),
    terminal_states=("PAID",),
)

REMITTANCE_WORKFLOW = Workflow(
    name="remittance",
    description="Dealer remittance review: submitted, reviewed, paid.",
    initial_state=RemittanceStatus.DRAFT.value,
    states=tuple(s.value for s in RemittanceStatus),
    transitions=(
        Transition("DRAFT", "SUBMITTED", "submit", stamp_prefix="submitted"),
        Transition("SUBMITTED", "APPROVED", "approve", stamp_prefix="reviewed"),
        Transition("SUBMITTED", "REJECTED", "reject", stamp_prefix="reviewed"),
        Transition("APPROVED", "PAID", "pay", stamp_prefix="paid"),
    ),
    terminal_states=("REJECTED", "PAID"),
)
