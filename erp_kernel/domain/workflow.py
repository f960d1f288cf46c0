"""
Canonical workflow types (``erp_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for status state machines.  The contribution lifecycle
and every progress-tracker publication type declare their graph as a
``Workflow`` so that allowed moves are data, not branches.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/`` or outer
layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires.

    Descriptive only; the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition.

    ``performed_by`` names the party allowed to trigger it ("applicant",
    "reviewer" or "owner").  ``permission_action`` is the suffix of the
    permission key the actor must hold (e.g. "review" -> ``research_review``);
    None means ownership alone authorizes the move.
    """
    from_state: str
    to_state: str
    action: str
    performed_by: str = "reviewer"
    permission_action: str | None = None
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} has outgoing transition"
                )

    def has_state(self, state: str) -> bool:
        return state in self.states

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)

    def targets_from(self, state: str) -> frozenset[str]:
        return frozenset(t.to_state for t in self.transitions_from(state))

    def find(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition from ``from_state`` to ``to_state``, if declared."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
