"""
StatementLifecycleService -- the only writer of statement statuses.

Responsibility:
    Apply payment/issue status changes through the transition tables in
    ``entry_fees.domain.status`` and cancel statements with a compensating
    ledger event.

Architecture position:
    Kernel > Services -- imperative shell.  Driven per request inside a
    ``transaction_scope`` and by the batch runner.

Invariants enforced:
    - The statement row is locked (SELECT ... FOR UPDATE) before any
      status mutation, so concurrent changes to one statement serialize
      while sibling statements of the same list stay independent.
    - payment_status: UNPAID <-> PAID on the generic path.  PAID stamps
      ``paid_at``; UNPAID clears it.
    - issue_status: ISSUED -> CANCELLED only through cancel_statement().
    - Cancelling a cancelled statement is ALREADY_CANCELLED and writes
      nothing; otherwise exactly one event with delta = -total_amount is
      appended in the same transaction.
    - Flush-only.

Failure modes:
    - StatementNotFoundError: unknown statement id.
    - UnknownStatusError: value outside the closed status sets.
    - StateTransitionError: (from, to) not allowed on the requested path.
"""

from uuid import UUID

from sqlalchemy import select

from entry_fees.domain.dtos import (
    CancellationOutcome,
    CancellationResult,
    StatusChangeResult,
    StatusUpdateResult,
)
from entry_fees.domain.ledger import cancellation_delta
from entry_fees.domain.status import (
    ISSUE_WORKFLOW,
    PAYMENT_WORKFLOW,
    IssueStatus,
    PaymentStatus,
    TransitionOutcome,
    TransitionPath,
    parse_issue_status,
    parse_payment_status,
)
from entry_fees.exceptions import EmptyRequestError, StatementNotFoundError
from entry_fees.logging_config import LogContext, get_logger
from entry_fees.models.statement import Statement
from entry_fees.services.base import BaseService
from entry_fees.services.payment_list_service import PaymentListService

logger = get_logger("services.statement_lifecycle")


class StatementLifecycleService(BaseService[Statement]):
    """Status transitions and cancellation for statements."""

    def _lock(self, statement_id: UUID) -> Statement:
        statement = self.session.execute(
            select(Statement)
            .where(Statement.id == statement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if statement is None:
            raise StatementNotFoundError(str(statement_id))
        return statement

    def set_payment_status(self, statement_id: UUID, payment_status) -> StatusChangeResult:
        """
        Move a statement between UNPAID and PAID.

        Raises:
            StatementNotFoundError, UnknownStatusError, StateTransitionError
        """
        target = parse_payment_status(payment_status)
        with LogContext.bind(statement_id=statement_id):
            statement = self._lock(statement_id)
            current = PaymentStatus(statement.payment_status)

            outcome = PAYMENT_WORKFLOW.evaluate(current, target, TransitionPath.STATUS_UPDATE)
            if outcome is TransitionOutcome.APPLIED:
                statement.payment_status = target.value
                statement.paid_at = self._clock.now() if target is PaymentStatus.PAID else None
                self.session.flush()

                logger.info(
                    "payment_status_changed",
                    extra={
                        "payment_list_id": str(statement.payment_list_id),
                        "from_status": current.value,
                        "to_status": target.value,
                    },
                )

        return StatusChangeResult(outcome=outcome, statement=statement.to_dto())

    def set_issue_status(self, statement_id: UUID, issue_status) -> StatusChangeResult:
        """
        Generic issue-status path.

        Only no-op requests succeed here; ISSUED -> CANCELLED must go through
        cancel_statement() so the ledger event is never skipped.

        Raises:
            StatementNotFoundError, UnknownStatusError, StateTransitionError
        """
        target = parse_issue_status(issue_status)
        with LogContext.bind(statement_id=statement_id):
            statement = self._lock(statement_id)
            current = IssueStatus(statement.issue_status)
            outcome = ISSUE_WORKFLOW.evaluate(current, target, TransitionPath.STATUS_UPDATE)
        return StatusChangeResult(outcome=outcome, statement=statement.to_dto())

    def update_status(
        self,
        statement_id: UUID,
        issue_status=None,
        payment_status=None,
    ) -> StatusUpdateResult:
        """
        Generic status update over both axes.

        The issue axis is evaluated first so a forbidden cancel attempt
        leaves the payment axis untouched.  The result carries the outcome
        of each requested axis.

        Raises:
            EmptyRequestError: neither axis given.
        """
        if issue_status is None and payment_status is None:
            raise EmptyRequestError("status")

        issue = payment = None
        if issue_status is not None:
            issue = self.set_issue_status(statement_id, issue_status)
        if payment_status is not None:
            payment = self.set_payment_status(statement_id, payment_status)

        return StatusUpdateResult(
            statement=(payment or issue).statement,
            issue_outcome=issue.outcome if issue else None,
            payment_outcome=payment.outcome if payment else None,
        )

    def cancel_statement(
        self,
        statement_id: UUID,
        reason: str | None = None,
    ) -> CancellationResult:
        """
        Cancel a statement and append its compensating ledger event.

        Returns:
            CancellationResult with outcome CANCELLED (and the event) or
            ALREADY_CANCELLED (no event).

        Raises:
            StatementNotFoundError
        """
        with LogContext.bind(statement_id=statement_id):
            statement = self._lock(statement_id)
            current = IssueStatus(statement.issue_status)

            outcome = ISSUE_WORKFLOW.evaluate(
                current, IssueStatus.CANCELLED, TransitionPath.CANCEL
            )
            if outcome is TransitionOutcome.NOOP:
                logger.info("statement_already_cancelled")
                return CancellationResult(
                    outcome=CancellationOutcome.ALREADY_CANCELLED,
                    statement=statement.to_dto(),
                )

            statement.issue_status = IssueStatus.CANCELLED.value
            statement.cancelled_at = self._clock.now()
            self.session.flush()

            event = PaymentListService(self.session, self._clock, self._settings).append_event(
                payment_list_id=statement.payment_list_id,
                currency=statement.currency,
                amount_delta=cancellation_delta(statement.total_amount),
                reason=reason or f"Statement {statement.statement_number} cancelled",
                statement_id=statement.id,
            )

            logger.info(
                "statement_cancelled",
                extra={
                    "payment_list_id": str(statement.payment_list_id),
                    "statement_number": statement.statement_number,
                    "currency": statement.currency,
                    "amount_delta": str(event.amount_delta),
                },
            )
        return CancellationResult(
            outcome=CancellationOutcome.CANCELLED,
            statement=statement.to_dto(),
            event=event,
        )
