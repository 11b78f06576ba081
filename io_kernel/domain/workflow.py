"""
Workflow types (``io_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machine tables.  The insertion order approval
workflow is declared with these types in ``io_engines.transition`` so the
edge table is data rather than branching code.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A named precondition attached to a transition.

    Descriptive only; the transition validator evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid edge in a workflow.

    ``allowed_roles`` lists the role values that may fire the edge.  An
    empty tuple means any role.
    """
    from_state: str
    to_state: str
    action: str
    allowed_roles: tuple[str, ...] = ()
    guards: tuple[Guard, ...] = ()


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
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                f"is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} references "
                    f"an undeclared state"
                )

    def find(self, from_state: str, to_state: str) -> Transition | None:
        """Return the edge from ``from_state`` to ``to_state``, if declared."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def outgoing(self, from_state: str) -> tuple[Transition, ...]:
        """Return all edges leaving ``from_state``."""
        return tuple(t for t in self.transitions if t.from_state == from_state)
