"""
BatchOperationRunner -- ordered heterogeneous mutations with itemized reporting.

Contract:
    - ``apply_period_batch()``: deletes, then updates, then creates, all in
      ONE shared transaction.  The first failing item aborts the batch;
      the raised BatchOperationError names {operation, index, entity_id}.
    - ``update_payment_statuses()``: same all-or-nothing policy for
      payment-status changes.
    - ``cancel_statements()``: one transaction PER ITEM.  A missing or
      failing statement never blocks the others; the result always carries
      per-status counts and the full per-item array.
    - ``run_period_batch()`` / ``run_payment_status_batch()``: non-raising
      wrappers returning a BatchReport with the pinned error.

Architecture: entry_fees_batch/services.  Drives kernel services only
    through their public methods and owns every transaction it opens.

Invariants enforced:
    - Pre-validation happens before any storage access: duplicate ids
      inside one operation list, an id present in both update and delete,
      invalid ranges, unknown statuses, oversize cancellation batches.
    - No retries.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from entry_fees.db.engine import transaction_scope
from entry_fees.domain.clock import Clock, SystemClock
from entry_fees.domain.status import parse_payment_status
from entry_fees.exceptions import (
    BatchOperationError,
    BatchTooLargeError,
    DuplicateBatchIdError,
    EmptyRequestError,
    EntryFeesError,
    InternalError,
    StatementNotFoundError,
    ValidationError,
)
from entry_fees.logging_config import LogContext, get_logger
from entry_fees.services.period_service import EntryFeesPeriodService, validate_range
from entry_fees.services.statement_lifecycle import StatementLifecycleService
from entry_fees.settings import EngineSettings, get_settings

from entry_fees_batch.domain.types import (
    BatchItemError,
    BatchOperation,
    BatchReport,
    CancelBatchResult,
    CancelItemResult,
    CancelItemStatus,
    PaymentStatusBatchResult,
    PaymentStatusItemResult,
    PaymentStatusUpdate,
    PeriodBatchRequest,
    PeriodBatchResult,
)

logger = get_logger("batch.runner")

T = TypeVar("T")


def _duplicates(ids: Iterable) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for raw in ids:
        key = str(raw)
        if key in seen and key not in dupes:
            dupes.append(key)
        seen.add(key)
    return dupes


def _coerce_uuid(value: UUID | str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid id: {value!r}") from None


def _item_error(exc: Exception) -> BatchItemError:
    if isinstance(exc, BatchOperationError):
        return BatchItemError(
            operation=exc.operation,
            index=exc.index,
            entity_id=exc.entity_id,
            code=exc.code,
            message=str(exc.cause),
        )
    return BatchItemError(
        operation="batch",
        index=-1,
        entity_id=None,
        code=getattr(exc, "code", InternalError.code),
        message=str(exc),
    )


class BatchOperationRunner:
    """Run batches of period, payment-status and cancellation mutations."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Shared-transaction helpers
    # -------------------------------------------------------------------------

    def _run_item(
        self,
        operation: BatchOperation,
        index: int,
        entity_id: UUID | None,
        fn: Callable[[], T],
    ) -> T:
        """Run one item, pinning any failure to its position."""
        try:
            return fn()
        except Exception as exc:
            logger.warning(
                "batch_item_failed",
                extra={
                    "operation": operation.value,
                    "index": index,
                    "entity_id": str(entity_id) if entity_id else None,
                    "error_code": getattr(exc, "code", InternalError.code),
                },
            )
            raise BatchOperationError(
                operation.value,
                index,
                str(entity_id) if entity_id else None,
                exc,
            ) from exc

    # -------------------------------------------------------------------------
    # Periods
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_period_batch(request: PeriodBatchRequest) -> None:
        """
        Reject a period batch before touching storage.

        Raises:
            DuplicateBatchIdError: repeated id in update[] or delete[], or an
                id present in both.
            BatchOperationError: an item with start_date >= end_date.
        """
        update_ids = [str(item.id) for item in request.update]
        delete_ids = [str(item.id) for item in request.delete]

        dupes = _duplicates(update_ids)
        if dupes:
            raise DuplicateBatchIdError(BatchOperation.UPDATE.value, dupes)
        dupes = _duplicates(delete_ids)
        if dupes:
            raise DuplicateBatchIdError(BatchOperation.DELETE.value, dupes)

        collisions = sorted(set(update_ids) & set(delete_ids))
        if collisions:
            raise DuplicateBatchIdError("update/delete", collisions)

        for operation, items in (
            (BatchOperation.CREATE, request.create),
            (BatchOperation.UPDATE, request.update),
        ):
            for index, item in enumerate(items):
                try:
                    validate_range(item.start_date, item.end_date)
                except ValidationError as exc:
                    raise BatchOperationError(
                        operation.value, index, str(getattr(item, "id", "")) or None, exc
                    ) from exc

    def apply_period_batch(self, request: PeriodBatchRequest) -> PeriodBatchResult:
        """
        Apply a period batch atomically.

        Deletes run first, then updates, then creates, so a range freed in
        the batch can be reused by a later item of the same batch.

        Raises:
            DuplicateBatchIdError, BatchOperationError
        """
        self.validate_period_batch(request)
        if request.is_empty:
            return PeriodBatchResult()

        with LogContext.bind(batch_id=str(uuid4())):
            with transaction_scope(self._session_factory) as session:
                service = EntryFeesPeriodService(session, self._clock, self._settings)

                deleted = tuple(
                    self._run_item(
                        BatchOperation.DELETE, index, item.id,
                        lambda item=item: service.delete_period(item.id),
                    )
                    for index, item in enumerate(request.delete)
                )
                updated = tuple(
                    self._run_item(
                        BatchOperation.UPDATE, index, item.id,
                        lambda item=item: service.update_period(
                            item.id, item.start_date, item.end_date
                        ),
                    )
                    for index, item in enumerate(request.update)
                )
                created = tuple(
                    self._run_item(
                        BatchOperation.CREATE, index, None,
                        lambda item=item: service.create_period(item.start_date, item.end_date),
                    )
                    for index, item in enumerate(request.create)
                )

            logger.info(
                "period_batch_applied",
                extra={
                    "created_count": len(created),
                    "updated_count": len(updated),
                    "deleted_count": len(deleted),
                },
            )
        return PeriodBatchResult(created=created, updated=updated, deleted=deleted)

    def run_period_batch(self, request: PeriodBatchRequest) -> BatchReport:
        """apply_period_batch() that reports instead of raising."""
        try:
            return BatchReport(ok=True, results=self.apply_period_batch(request))
        except EntryFeesError as exc:
            return BatchReport(ok=False, results=PeriodBatchResult(), errors=(_item_error(exc),))

    # -------------------------------------------------------------------------
    # Payment status
    # -------------------------------------------------------------------------

    def update_payment_statuses(
        self,
        updates: Sequence[PaymentStatusUpdate],
    ) -> PaymentStatusBatchResult:
        """
        Apply payment-status changes atomically.

        Raises:
            EmptyRequestError, DuplicateBatchIdError, BatchOperationError
        """
        if not updates:
            raise EmptyRequestError("updates")
        dupes = _duplicates(u.statement_id for u in updates)
        if dupes:
            raise DuplicateBatchIdError(BatchOperation.PAYMENT_STATUS.value, dupes)

        targets = []
        for index, update in enumerate(updates):
            try:
                targets.append(
                    (_coerce_uuid(update.statement_id), parse_payment_status(update.payment_status))
                )
            except ValidationError as exc:
                raise BatchOperationError(
                    BatchOperation.PAYMENT_STATUS.value, index, str(update.statement_id), exc
                ) from exc

        with LogContext.bind(batch_id=str(uuid4())):
            with transaction_scope(self._session_factory) as session:
                lifecycle = StatementLifecycleService(session, self._clock, self._settings)
                results = []
                for index, (statement_id, status) in enumerate(targets):
                    change = self._run_item(
                        BatchOperation.PAYMENT_STATUS, index, statement_id,
                        lambda sid=statement_id, st=status: lifecycle.set_payment_status(sid, st),
                    )
                    results.append(
                        PaymentStatusItemResult(
                            index=index,
                            statement_id=statement_id,
                            outcome=change.outcome,
                            statement=change.statement,
                        )
                    )

        return PaymentStatusBatchResult(results=tuple(results))

    def run_payment_status_batch(self, updates: Sequence[PaymentStatusUpdate]) -> BatchReport:
        """update_payment_statuses() that reports instead of raising."""
        try:
            return BatchReport(ok=True, results=self.update_payment_statuses(updates))
        except EntryFeesError as exc:
            return BatchReport(
                ok=False, results=PaymentStatusBatchResult(), errors=(_item_error(exc),)
            )

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def cancel_statements(
        self,
        statement_ids: Sequence[UUID | str],
        reason: str | None = None,
    ) -> CancelBatchResult:
        """
        Cancel statements independently, one transaction each.

        Raises (before any item runs):
            EmptyRequestError, BatchTooLargeError, DuplicateBatchIdError,
            ValidationError for malformed ids.
        """
        if not statement_ids:
            raise EmptyRequestError("statement_ids")
        limit = self._settings.max_cancel_batch_size
        if len(statement_ids) > limit:
            raise BatchTooLargeError(BatchOperation.CANCEL.value, len(statement_ids), limit)
        ids = [_coerce_uuid(sid) for sid in statement_ids]
        dupes = _duplicates(ids)
        if dupes:
            raise DuplicateBatchIdError(BatchOperation.CANCEL.value, dupes)

        results: list[CancelItemResult] = []
        payment_list_ids: list[UUID] = []

        with LogContext.bind(batch_id=str(uuid4())):
            for index, statement_id in enumerate(ids):
                item = self._cancel_one(index, statement_id, reason)
                results.append(item)
                list_id = item.payment_list_id
                if list_id is not None and list_id not in payment_list_ids:
                    payment_list_ids.append(list_id)

            batch = CancelBatchResult(
                results=tuple(results),
                payment_list_ids=tuple(payment_list_ids),
            )
            logger.info(
                "cancel_batch_completed",
                extra={
                    "cancelled": batch.cancelled_count,
                    "already_cancelled": batch.already_cancelled_count,
                    "not_found": batch.not_found_count,
                    "errors": batch.error_count,
                },
            )
        return batch

    def _cancel_one(self, index: int, statement_id: UUID, reason: str | None) -> CancelItemResult:
        with LogContext.bind(statement_id=str(statement_id)):
            try:
                with transaction_scope(self._session_factory) as session:
                    lifecycle = StatementLifecycleService(session, self._clock, self._settings)
                    outcome = lifecycle.cancel_statement(statement_id, reason)
            except StatementNotFoundError:
                return CancelItemResult(
                    index=index,
                    statement_id=statement_id,
                    status=CancelItemStatus.NOT_FOUND,
                    error_code=StatementNotFoundError.code,
                )
            except Exception as exc:
                code = getattr(exc, "code", InternalError.code)
                logger.warning(
                    "batch_item_failed",
                    extra={
                        "operation": BatchOperation.CANCEL.value,
                        "index": index,
                        "entity_id": str(statement_id),
                        "error_code": code,
                    },
                )
                return CancelItemResult(
                    index=index,
                    statement_id=statement_id,
                    status=CancelItemStatus.ERROR,
                    error_code=code,
                    message=str(exc),
                )

        return CancelItemResult(
            index=index,
            statement_id=statement_id,
            status=CancelItemStatus(outcome.outcome.value),
            payment_list_id=outcome.statement.payment_list_id,
            cancelled_at=outcome.statement.cancelled_at,
            event_id=outcome.event.id if outcome.event is not None else None,
        )
