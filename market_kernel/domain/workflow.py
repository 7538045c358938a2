"""
Canonical workflow types (``market_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines.  Used by the order and
invoice lifecycles so that Guard, Transition, and Workflow are defined
once, along with the table lookups every caller needs.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the service's
    GuardExecutor does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``from_state`` may be ``"*"`` to mean any non-terminal state other
    than the destination (used by hold).
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    requires_confirmation: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state '{self.initial_state}' not in states"
            )
        for t in self.transitions:
            if t.from_state != "*" and t.from_state not in self.states:
                raise ValueError(f"{self.name}: unknown state '{t.from_state}'")
            if t.to_state not in self.states:
                raise ValueError(f"{self.name}: unknown state '{t.to_state}'")
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state '{t.from_state}' has a transition"
                )

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def find(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition from ``from_state`` to ``to_state``, if any."""
        for t in self.transitions:
            if t.to_state != to_state:
                continue
            if t.from_state == from_state:
                return t
            if (
                t.from_state == "*"
                and from_state != to_state
                and not self.is_terminal(from_state)
            ):
                return t
        return None

    def allowed_targets(self, from_state: str) -> tuple[str, ...]:
        """States reachable from ``from_state`` in one step."""
        return tuple(
            t.to_state
            for t in self.transitions
            if self.find(from_state, t.to_state) is t
        )
