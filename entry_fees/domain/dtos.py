"""
Frozen DTOs returned by services and selectors.

Services and selectors never hand ORM instances to callers; every public
method returns one of these immutable snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

from entry_fees.domain.ledger import NetTotal
from entry_fees.domain.statement_stats import StatementStats
from entry_fees.domain.status import IssueStatus, PaymentStatus, TransitionOutcome

T = TypeVar("T")


# Reference data


@dataclass(frozen=True)
class GroupStructureInfo:
    id: UUID
    label: str | None
    created_at: datetime
    is_active: bool


@dataclass(frozen=True)
class GroupMapping:
    source_group_id: str
    billing_group_id: str


@dataclass(frozen=True)
class PeriodInfo:
    """Half-open date window [start_date, end_date)."""

    id: UUID
    start_date: date
    end_date: date

    def contains(self, day: date) -> bool:
        return self.start_date <= day < self.end_date


# Payment lists


@dataclass(frozen=True)
class PaymentListInfo:
    id: UUID
    created_at: datetime
    created_by: str
    group_structure_id: UUID
    period_label: str | None
    subscriptions_count: int
    statements_count: int = 0


@dataclass(frozen=True)
class PaymentListTotalInfo:
    payment_list_id: UUID
    currency: str
    total_announced: Decimal
    subscriptions_count: int
    statements_count: int


@dataclass(frozen=True)
class PaymentListEventInfo:
    id: UUID
    payment_list_id: UUID
    currency: str
    amount_delta: Decimal
    created_at: datetime
    reason: str | None
    statement_id: UUID | None


@dataclass(frozen=True)
class ConflictingAssignment:
    """A requested subscription already held by a live statement."""

    subscription_id: str
    payment_list_id: UUID
    statement_id: UUID


# Statements


@dataclass(frozen=True)
class StatementInfo:
    id: UUID
    payment_list_id: UUID
    group_key: str
    statement_number: str
    issue_status: IssueStatus
    payment_status: PaymentStatus
    currency: str
    total_amount: Decimal
    created_at: datetime
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None


@dataclass(frozen=True)
class StatementLineInfo:
    id: UUID
    statement_id: UUID
    subscription_id: str
    snapshot_source_group_id: str
    snapshot_total_amount: Decimal


@dataclass(frozen=True)
class StatementDescription:
    """A statement with human-readable names from the team directory."""

    statement: StatementInfo
    group_name: str | None
    lines: tuple[StatementLineInfo, ...]
    source_group_names: dict[str, str | None]


# Operation results


@dataclass(frozen=True)
class GenerationResult:
    """``created`` is zero when statements already existed for the list."""

    payment_list_id: UUID
    created: int
    statements: tuple[StatementInfo, ...]

    @property
    def already_generated(self) -> bool:
        return self.created == 0 and bool(self.statements)


@dataclass(frozen=True)
class PaymentListCreated:
    payment_list: PaymentListInfo
    totals: tuple[PaymentListTotalInfo, ...]
    statements: tuple[StatementInfo, ...] | None = None


class CancellationOutcome(str, Enum):
    CANCELLED = "CANCELLED"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"


@dataclass(frozen=True)
class CancellationResult:
    outcome: CancellationOutcome
    statement: StatementInfo
    event: PaymentListEventInfo | None = None


@dataclass(frozen=True)
class StatusChangeResult:
    outcome: TransitionOutcome
    statement: StatementInfo


@dataclass(frozen=True)
class StatusUpdateResult:
    """
    Outcome of a combined status update, one entry per requested axis.

    An axis that was not requested is None.  ``statement`` reflects both
    changes.
    """

    statement: StatementInfo
    issue_outcome: TransitionOutcome | None = None
    payment_outcome: TransitionOutcome | None = None

    @property
    def outcome(self) -> TransitionOutcome:
        """APPLIED when either axis changed."""
        if TransitionOutcome.APPLIED in (self.issue_outcome, self.payment_outcome):
            return TransitionOutcome.APPLIED
        return TransitionOutcome.NOOP


@dataclass(frozen=True)
class PaymentListSummary:
    payment_list: PaymentListInfo
    subscriptions_count: int
    totals: tuple[NetTotal, ...]
    events_count: int
    statement_stats: StatementStats


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a keyset-paginated listing."""

    items: tuple[T, ...]
    next_cursor: str | None = None
    total: int | None = None
