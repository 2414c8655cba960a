"""
Statement status state machines (``entry_fees.domain.status``).

Responsibility
--------------
Closed enums for the two independent status axes of a statement and the
explicit (from, to) transition tables that govern them.  Pure value
objects, ZERO I/O.

Axes
----
* payment_status: UNPAID <-> PAID, both directions, via the generic
  status-update path (manual correction is allowed).
* issue_status: ISSUED -> CANCELLED, terminal, reachable only through the
  dedicated cancel path.  The generic path can never cancel.

A requested transition to the current state is a no-op success.  Anything
not in the table raises StateTransitionError naming (from, to).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from entry_fees.exceptions import StateTransitionError, UnknownStatusError


class IssueStatus(str, Enum):
    ISSUED = "ISSUED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"


class StatusAxis(str, Enum):
    ISSUE = "issue_status"
    PAYMENT = "payment_status"


class TransitionPath(str, Enum):
    """Entry point through which a transition is requested."""

    STATUS_UPDATE = "status_update"
    CANCEL = "cancel"


class TransitionOutcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"


@dataclass(frozen=True)
class Transition:
    """One allowed (from, to) pair and the only path that may fire it."""

    from_state: Enum
    to_state: Enum
    path: TransitionPath


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one status axis.

    Guarantees: ``initial_state`` and every transition endpoint are members
    of ``states``; ``terminal_states`` have no outgoing transitions.
    """

    axis: StatusAxis
    initial_state: Enum
    states: tuple[Enum, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[Enum, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.axis.value}: initial state not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.axis.value}: transition references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.axis.value}: terminal state has outgoing transition")

    def is_allowed(self, from_state: Enum, to_state: Enum, path: TransitionPath) -> bool:
        return Transition(from_state, to_state, path) in self.transitions

    def evaluate(
        self,
        from_state: Enum,
        to_state: Enum,
        path: TransitionPath = TransitionPath.STATUS_UPDATE,
    ) -> TransitionOutcome:
        """
        Decide a requested transition.

        Raises:
            StateTransitionError: (from, to) is not allowed on ``path``.
        """
        if from_state == to_state:
            return TransitionOutcome.NOOP
        if self.is_allowed(from_state, to_state, path):
            return TransitionOutcome.APPLIED
        raise StateTransitionError(self.axis.value, from_state.value, to_state.value)


PAYMENT_WORKFLOW = Workflow(
    axis=StatusAxis.PAYMENT,
    initial_state=PaymentStatus.UNPAID,
    states=(PaymentStatus.UNPAID, PaymentStatus.PAID),
    transitions=(
        Transition(PaymentStatus.UNPAID, PaymentStatus.PAID, TransitionPath.STATUS_UPDATE),
        Transition(PaymentStatus.PAID, PaymentStatus.UNPAID, TransitionPath.STATUS_UPDATE),
    ),
)

ISSUE_WORKFLOW = Workflow(
    axis=StatusAxis.ISSUE,
    initial_state=IssueStatus.ISSUED,
    states=(IssueStatus.ISSUED, IssueStatus.CANCELLED),
    transitions=(
        Transition(IssueStatus.ISSUED, IssueStatus.CANCELLED, TransitionPath.CANCEL),
    ),
    terminal_states=(IssueStatus.CANCELLED,),
)


def parse_payment_status(value: Any) -> PaymentStatus:
    """Coerce user input into PaymentStatus or raise UnknownStatusError."""
    if isinstance(value, PaymentStatus):
        return value
    try:
        return PaymentStatus(str(value).strip().upper())
    except ValueError:
        raise UnknownStatusError(StatusAxis.PAYMENT.value, value) from None


def parse_issue_status(value: Any) -> IssueStatus:
    """Coerce user input into IssueStatus or raise UnknownStatusError."""
    if isinstance(value, IssueStatus):
        return value
    try:
        return IssueStatus(str(value).strip().upper())
    except ValueError:
        raise UnknownStatusError(StatusAxis.ISSUE.value, value) from None
