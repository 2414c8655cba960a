"""
Tests for entry_fees_batch.services.runner.

Uses in-memory SQLite shared through a StaticPool; each runner call opens
its own transactions on the session factory.
"""

from dataclasses import replace
from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from entry_fees.db.engine import transaction_scope
from entry_fees.domain.status import PaymentStatus, TransitionOutcome
from entry_fees.exceptions import (
    BatchOperationError,
    BatchTooLargeError,
    DuplicateBatchIdError,
    EmptyRequestError,
    ValidationError,
)
from entry_fees.models.payment_list import PaymentListEvent
from entry_fees.models.period import EntryFeesPeriod
from entry_fees.selectors.statement_selector import StatementSelector
from entry_fees.services.payment_list_service import CreatePaymentListRequest
from entry_fees.services.period_service import EntryFeesPeriodService

from entry_fees_batch.domain.types import (
    CancelItemStatus,
    PaymentStatusUpdate,
    PeriodBatchRequest,
    PeriodCreateItem,
    PeriodDeleteItem,
    PeriodUpdateItem,
)
from entry_fees_batch.services.runner import BatchOperationRunner
from tests.factories import TEST_ACTOR

JAN = (date(2024, 1, 1), date(2024, 2, 1))
FEB = (date(2024, 2, 1), date(2024, 3, 1))
MAR = (date(2024, 3, 1), date(2024, 4, 1))


# =============================================================================
# Test fixtures
# =============================================================================


@pytest.fixture
def runner(session_factory, clock, settings):
    return BatchOperationRunner(session_factory, clock, settings)


@pytest.fixture
def statements(coordinator, active_structure):
    return coordinator.create(
        CreatePaymentListRequest(
            created_by=TEST_ACTOR,
            subscription_ids=("sub-1", "sub-2", "sub-3", "sub-4", "sub-5"),
            compute_totals=True,
            include_statements=True,
        )
    ).statements


def make_period(session_factory, clock, settings, start, end):
    with transaction_scope(session_factory) as s:
        return EntryFeesPeriodService(s, clock, settings).create_period(start, end)


def count(session_factory, model) -> int:
    with session_factory() as s:
        return s.execute(select(func.count(model.id))).scalar_one()


# =============================================================================
# Period batch
# =============================================================================


class TestPeriodBatch:
    def test_create_many(self, runner, session_factory):
        result = runner.apply_period_batch(PeriodBatchRequest(
            create=(PeriodCreateItem(*JAN), PeriodCreateItem(*FEB)),
        ))
        assert result.created_count == 2
        assert count(session_factory, EntryFeesPeriod) == 2

    def test_delete_runs_before_create(self, runner, session_factory, clock, settings):
        jan = make_period(session_factory, clock, settings, *JAN)

        result = runner.apply_period_batch(PeriodBatchRequest(
            create=(PeriodCreateItem(date(2024, 1, 10), date(2024, 1, 20)),),
            delete=(PeriodDeleteItem(jan.id),),
        ))

        assert result.deleted_count == 1
        assert result.created_count == 1
        assert count(session_factory, EntryFeesPeriod) == 1

    def test_update_runs_before_create(self, runner, session_factory, clock, settings):
        jan = make_period(session_factory, clock, settings, *JAN)

        result = runner.apply_period_batch(PeriodBatchRequest(
            create=(PeriodCreateItem(date(2024, 1, 15), date(2024, 2, 1)),),
            update=(PeriodUpdateItem(jan.id, date(2024, 1, 1), date(2024, 1, 15)),),
        ))

        assert result.updated[0].end_date == date(2024, 1, 15)
        assert result.created[0].start_date == date(2024, 1, 15)

    def test_failure_rolls_back_whole_batch(self, runner, session_factory, clock, settings):
        jan = make_period(session_factory, clock, settings, *JAN)

        with pytest.raises(BatchOperationError) as exc_info:
            runner.apply_period_batch(PeriodBatchRequest(
                create=(
                    PeriodCreateItem(*MAR),
                    PeriodCreateItem(date(2024, 3, 15), date(2024, 5, 1)),
                ),
                delete=(PeriodDeleteItem(jan.id),),
            ))

        error = exc_info.value
        assert error.operation == "create"
        assert error.index == 1
        assert error.code == "PERIOD_OVERLAP"
        assert error.to_dict()["operation"] == "create"

        with session_factory() as s:
            remaining = s.execute(select(EntryFeesPeriod)).scalars().all()
        assert [p.id for p in remaining] == [jan.id]

    def test_unknown_id_pinned(self, runner):
        missing = uuid4()
        with pytest.raises(BatchOperationError) as exc_info:
            runner.apply_period_batch(PeriodBatchRequest(delete=(PeriodDeleteItem(missing),)))
        assert exc_info.value.code == "PERIOD_NOT_FOUND"
        assert exc_info.value.entity_id == str(missing)

    def test_duplicate_update_ids(self, runner):
        pid = uuid4()
        with pytest.raises(DuplicateBatchIdError) as exc_info:
            runner.apply_period_batch(PeriodBatchRequest(update=(
                PeriodUpdateItem(pid, *JAN),
                PeriodUpdateItem(pid, *FEB),
            )))
        assert exc_info.value.operation == "update"
        assert exc_info.value.code == "CONFLICT"

    def test_update_delete_collision(self, runner):
        pid = uuid4()
        with pytest.raises(DuplicateBatchIdError) as exc_info:
            runner.apply_period_batch(PeriodBatchRequest(
                update=(PeriodUpdateItem(pid, *JAN),),
                delete=(PeriodDeleteItem(pid),),
            ))
        assert exc_info.value.entity_ids == [str(pid)]

    def test_invalid_range_rejected_before_storage(self, runner, session_factory):
        with pytest.raises(BatchOperationError) as exc_info:
            runner.apply_period_batch(PeriodBatchRequest(create=(
                PeriodCreateItem(*JAN),
                PeriodCreateItem(date(2024, 3, 1), date(2024, 2, 1)),
            )))
        assert exc_info.value.index == 1
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert count(session_factory, EntryFeesPeriod) == 0

    def test_empty_batch(self, runner):
        result = runner.apply_period_batch(PeriodBatchRequest())
        assert (result.created_count, result.updated_count, result.deleted_count) == (0, 0, 0)

    def test_report_wraps_error(self, runner, session_factory, clock, settings):
        make_period(session_factory, clock, settings, *JAN)
        report = runner.run_period_batch(PeriodBatchRequest(
            create=(PeriodCreateItem(date(2024, 1, 20), date(2024, 2, 10)),),
        ))

        assert report.ok is False
        assert report.code == "PERIOD_OVERLAP"
        assert report.errors[0].to_dict() == {
            "op": "create",
            "index": 0,
            "id": None,
            "code": "PERIOD_OVERLAP",
            "message": report.errors[0].message,
        }
        assert "overlaps" in report.errors[0].message

    def test_report_success(self, runner):
        report = runner.run_period_batch(PeriodBatchRequest(create=(PeriodCreateItem(*JAN),)))
        assert report.ok is True
        assert report.code is None
        assert report.results.created_count == 1


# =============================================================================
# Payment-status batch
# =============================================================================


class TestPaymentStatusBatch:
    def test_updates_atomically(self, runner, statements, session_factory, settings):
        result = runner.update_payment_statuses([
            PaymentStatusUpdate(statements[0].id, "PAID"),
            PaymentStatusUpdate(statements[1].id, "UNPAID"),
        ])

        assert result.updated_count == 1
        assert result.unchanged_count == 1
        assert result.results[0].outcome is TransitionOutcome.APPLIED

        with session_factory() as s:
            stored = StatementSelector(s, settings).get(statements[0].id)
        assert stored.payment_status is PaymentStatus.PAID

    def test_missing_statement_rolls_back_all(
        self, runner, statements, session_factory, settings
    ):
        missing = uuid4()
        with pytest.raises(BatchOperationError) as exc_info:
            runner.update_payment_statuses([
                PaymentStatusUpdate(statements[0].id, "PAID"),
                PaymentStatusUpdate(missing, "PAID"),
            ])
        assert exc_info.value.index == 1
        assert exc_info.value.code == "STATEMENT_NOT_FOUND"

        with session_factory() as s:
            stored = StatementSelector(s, settings).get(statements[0].id)
        assert stored.payment_status is PaymentStatus.UNPAID

    def test_unknown_status_rejected_up_front(self, runner, statements):
        with pytest.raises(BatchOperationError) as exc_info:
            runner.update_payment_statuses([
                PaymentStatusUpdate(statements[0].id, "PAID"),
                PaymentStatusUpdate(statements[1].id, "SETTLED"),
            ])
        assert exc_info.value.index == 1
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_duplicates_and_empty(self, runner, statements):
        with pytest.raises(EmptyRequestError):
            runner.update_payment_statuses([])
        with pytest.raises(DuplicateBatchIdError):
            runner.update_payment_statuses([
                PaymentStatusUpdate(statements[0].id, "PAID"),
                PaymentStatusUpdate(statements[0].id, "UNPAID"),
            ])

    def test_report(self, runner, statements):
        report = runner.run_payment_status_batch([PaymentStatusUpdate(uuid4(), "PAID")])
        assert report.ok is False
        assert report.code == "STATEMENT_NOT_FOUND"


# =============================================================================
# Cancellation batch
# =============================================================================


class TestCancelBatch:
    def test_missing_item_does_not_block_others(self, runner, statements, session_factory):
        a, b = statements[0], statements[1]
        missing = uuid4()

        result = runner.cancel_statements([a.id, b.id, missing], reason="season cancelled")

        assert len(result.results) == 3
        assert result.cancelled_count == 2
        assert result.not_found_count == 1
        assert result.ok is False
        assert [r.status for r in result.results] == [
            CancelItemStatus.CANCELLED,
            CancelItemStatus.CANCELLED,
            CancelItemStatus.NOT_FOUND,
        ]
        assert result.results[2].error_code == "STATEMENT_NOT_FOUND"
        assert result.payment_list_ids == (a.payment_list_id,)
        assert count(session_factory, PaymentListEvent) == 2

    def test_already_cancelled_counts_separately(self, runner, statements, session_factory):
        runner.cancel_statements([statements[0].id])
        result = runner.cancel_statements([str(statements[0].id), statements[1].id])

        assert result.already_cancelled_count == 1
        assert result.cancelled_count == 1
        assert result.results[0].event_id is None
        assert result.ok is True
        assert count(session_factory, PaymentListEvent) == 2

    def test_cancelled_item_carries_event(self, runner, statements):
        result = runner.cancel_statements([statements[0].id])
        item = result.results[0]
        assert item.event_id is not None
        assert item.cancelled_at is not None
        assert item.payment_list_id == statements[0].payment_list_id

    def test_rejections_before_any_item(
        self, runner, statements, settings, session_factory, clock
    ):
        with pytest.raises(EmptyRequestError):
            runner.cancel_statements([])
        with pytest.raises(DuplicateBatchIdError):
            runner.cancel_statements([statements[0].id, str(statements[0].id)])
        with pytest.raises(ValidationError):
            runner.cancel_statements(["not-a-uuid"])

        small = BatchOperationRunner(
            session_factory, clock, replace(settings, max_cancel_batch_size=2)
        )
        with pytest.raises(BatchTooLargeError) as exc_info:
            small.cancel_statements([s.id for s in statements])
        assert exc_info.value.limit == 2

        assert count(session_factory, PaymentListEvent) == 0

    def test_completion_logged(self, runner, statements, captured_logs):
        runner.cancel_statements([statements[0].id, uuid4()])
        (record,) = [r for r in captured_logs() if r["message"] == "cancel_batch_completed"]
        assert record["cancelled"] == 1
        assert record["not_found"] == 1
        assert "batch_id" in record

    def test_item_logs_carry_statement_and_batch(self, runner, statements, captured_logs):
        missing = uuid4()
        runner.cancel_statements([statements[0].id, missing])
        logs = captured_logs()

        (cancelled,) = [r for r in logs if r["message"] == "statement_cancelled"]
        assert cancelled["statement_id"] == str(statements[0].id)
        assert cancelled["payment_list_id"] == str(statements[0].payment_list_id)

        (rolled_back,) = [r for r in logs if r["message"] == "transaction_rolled_back"]
        assert rolled_back["statement_id"] == str(missing)
        assert rolled_back["exc_code"] == "STATEMENT_NOT_FOUND"

        (completed,) = [r for r in logs if r["message"] == "cancel_batch_completed"]
        assert "statement_id" not in completed
        assert cancelled["batch_id"] == rolled_back["batch_id"] == completed["batch_id"]
