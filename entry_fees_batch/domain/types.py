"""
entry_fees_batch.domain.types -- frozen request/result dataclasses.  ZERO I/O.

Two isolation policies share this vocabulary:
    - Period and payment-status batches run in one shared transaction.  A
      failure aborts everything and is reported once, as a BatchItemError
      pinned to {operation, index, entity_id}.
    - Cancellation batches run one transaction per item.  Every item gets
      a CancelItemResult and the counts are always filled in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from entry_fees.domain.dtos import PeriodInfo, StatementInfo
from entry_fees.domain.status import TransitionOutcome


# =============================================================================
# Enums
# =============================================================================


class BatchOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    PAYMENT_STATUS = "payment_status"
    CANCEL = "cancel"


class CancelItemStatus(str, Enum):
    CANCELLED = "CANCELLED"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    NOT_FOUND = "NOT_FOUND"
    ERROR = "ERROR"


# =============================================================================
# Shared
# =============================================================================


@dataclass(frozen=True)
class BatchItemError:
    """Where a batch failed and why, in the external code vocabulary."""

    operation: str
    index: int
    entity_id: str | None
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "op": self.operation,
            "index": self.index,
            "id": self.entity_id,
            "code": self.code,
            "message": self.message,
        }


@dataclass(frozen=True)
class BatchReport:
    """Non-raising envelope around an all-or-nothing batch."""

    ok: bool
    results: Any = None
    errors: tuple[BatchItemError, ...] = ()

    @property
    def code(self) -> str | None:
        return self.errors[0].code if self.errors else None


# =============================================================================
# Period batch
# =============================================================================


@dataclass(frozen=True)
class PeriodCreateItem:
    start_date: date
    end_date: date


@dataclass(frozen=True)
class PeriodUpdateItem:
    id: UUID
    start_date: date
    end_date: date


@dataclass(frozen=True)
class PeriodDeleteItem:
    id: UUID


@dataclass(frozen=True)
class PeriodBatchRequest:
    create: tuple[PeriodCreateItem, ...] = ()
    update: tuple[PeriodUpdateItem, ...] = ()
    delete: tuple[PeriodDeleteItem, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.create or self.update or self.delete)


@dataclass(frozen=True)
class PeriodBatchResult:
    created: tuple[PeriodInfo, ...] = ()
    updated: tuple[PeriodInfo, ...] = ()
    deleted: tuple[PeriodInfo, ...] = ()

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)


# =============================================================================
# Payment-status batch
# =============================================================================


@dataclass(frozen=True)
class PaymentStatusUpdate:
    statement_id: UUID
    payment_status: str


@dataclass(frozen=True)
class PaymentStatusItemResult:
    index: int
    statement_id: UUID
    outcome: TransitionOutcome
    statement: StatementInfo


@dataclass(frozen=True)
class PaymentStatusBatchResult:
    results: tuple[PaymentStatusItemResult, ...] = ()

    @property
    def updated_count(self) -> int:
        return sum(1 for r in self.results if r.outcome is TransitionOutcome.APPLIED)

    @property
    def unchanged_count(self) -> int:
        return sum(1 for r in self.results if r.outcome is TransitionOutcome.NOOP)


# =============================================================================
# Cancellation batch
# =============================================================================


@dataclass(frozen=True)
class CancelItemResult:
    index: int
    statement_id: UUID
    status: CancelItemStatus
    payment_list_id: UUID | None = None
    cancelled_at: datetime | None = None
    event_id: UUID | None = None
    error_code: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class CancelBatchResult:
    """Per-item outcomes; never an all-or-nothing failure."""

    results: tuple[CancelItemResult, ...] = ()
    payment_list_ids: tuple[UUID, ...] = field(default_factory=tuple)

    def _count(self, status: CancelItemStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def cancelled_count(self) -> int:
        return self._count(CancelItemStatus.CANCELLED)

    @property
    def already_cancelled_count(self) -> int:
        return self._count(CancelItemStatus.ALREADY_CANCELLED)

    @property
    def not_found_count(self) -> int:
        return self._count(CancelItemStatus.NOT_FOUND)

    @property
    def error_count(self) -> int:
        return self._count(CancelItemStatus.ERROR)

    @property
    def ok(self) -> bool:
        return self.not_found_count == 0 and self.error_count == 0
