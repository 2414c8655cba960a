"""
StatementGenerator -- persist deterministic statements for a payment list.

Responsibility:
    Turn a list of subscription fee snapshots into one Statement per
    (billing group, currency) bucket and one StatementLine per
    subscription.  Planning is delegated to the pure
    ``entry_fees.domain.partition`` core; this service only resolves the
    billing map, persists the plan and maintains derived counts.

Architecture position:
    Kernel > Services -- imperative shell.  Called by
    PaymentListTransactionCoordinator inside the creation transaction, or
    directly to (re)generate statements for an existing list.

Invariants enforced:
    - Idempotent: if any statement already exists for the payment list,
      nothing is written and the existing rows come back with
      ``created == 0``.
    - Every record is validated before the first insert; one bad record
      aborts the whole generation with no partial writes.
    - Statement numbers depend only on the sorted bucket order.
    - Flush-only.

Failure modes:
    - MissingCurrencyError, MissingSourceGroupError, InvalidFeeAmountError
      naming the offending subscription.
    - StatementsAlreadyGeneratedError when a concurrent writer stored
      statements for the same list between the existence check and insert.
"""

from collections import Counter
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from entry_fees.db.errors import translate_integrity_error
from entry_fees.domain.clock import Clock
from entry_fees.domain.dtos import GenerationResult, StatementInfo
from entry_fees.domain.feeds import SubscriptionRecord
from entry_fees.domain.partition import bucket_order, plan_statements, validate_fees
from entry_fees.domain.status import IssueStatus, PaymentStatus
from entry_fees.logging_config import get_logger
from entry_fees.models.payment_list import PaymentListTotal
from entry_fees.models.statement import Statement, StatementLine
from entry_fees.services.base import BaseService
from entry_fees.services.group_structure_service import GroupStructureResolver
from entry_fees.settings import EngineSettings

logger = get_logger("services.statement_generator")


class StatementGenerator(BaseService[Statement]):
    """Partition subscriptions into statements and persist them."""

    def __init__(
        self,
        session,
        resolver: GroupStructureResolver | None = None,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session, clock=clock, settings=settings)
        self._resolver = resolver or GroupStructureResolver(session)

    def existing_statements(self, payment_list_id: UUID) -> tuple[StatementInfo, ...]:
        """Statements of a list in (group_key, currency) order."""
        rows = self.session.execute(
            select(Statement).where(Statement.payment_list_id == payment_list_id)
        ).scalars()
        ordered = sorted(rows, key=lambda s: bucket_order((s.group_key, s.currency)))
        return tuple(s.to_dto() for s in ordered)

    def generate(
        self,
        payment_list_id: UUID,
        group_structure_id: UUID,
        records: Iterable[SubscriptionRecord],
    ) -> GenerationResult:
        """
        Generate statements for ``payment_list_id``.

        Args:
            payment_list_id: Target list.
            group_structure_id: Structure version used to resolve billing
                groups, normally the one the list snapshotted.
            records: Fee snapshots, in any order.

        Returns:
            GenerationResult with the number of statements created and every
            statement of the list.
        """
        existing = self.existing_statements(payment_list_id)
        if existing:
            logger.info(
                "statement_generation_skipped",
                extra={
                    "payment_list_id": str(payment_list_id),
                    "existing_statements": len(existing),
                },
            )
            return GenerationResult(
                payment_list_id=payment_list_id,
                created=0,
                statements=existing,
            )

        fees = validate_fees(records)
        plans = plan_statements(
            payment_list_id,
            fees,
            self._resolver.resolver_for(group_structure_id),
            prefix=self._settings.statement_number_prefix,
            scale=self._settings.amount_scale,
        )

        now = self._clock.now()
        statements: list[Statement] = []
        for plan in plans:
            statement = Statement(
                payment_list_id=payment_list_id,
                group_key=plan.group_key,
                statement_number=plan.statement_number,
                issue_status=IssueStatus.ISSUED.value,
                payment_status=PaymentStatus.UNPAID.value,
                currency=plan.currency,
                total_amount=plan.total_amount,
                created_at=now,
            )
            self.session.add(statement)
            statements.append(statement)
        self._flush(payment_list_id)

        for statement, plan in zip(statements, plans):
            self.session.add_all(
                StatementLine(
                    statement_id=statement.id,
                    subscription_id=line.subscription_id,
                    snapshot_source_group_id=line.source_group_id,
                    snapshot_total_amount=line.amount,
                )
                for line in plan.lines
            )
        self._flush(payment_list_id)

        self._update_statement_counts(payment_list_id, Counter(p.currency for p in plans))

        logger.info(
            "statements_generated",
            extra={
                "payment_list_id": str(payment_list_id),
                "group_structure_id": str(group_structure_id),
                "statements": len(statements),
                "subscriptions": len(fees),
            },
        )
        return GenerationResult(
            payment_list_id=payment_list_id,
            created=len(statements),
            statements=tuple(s.to_dto() for s in statements),
        )

    def _flush(self, payment_list_id: UUID) -> None:
        try:
            self.session.flush()
        except IntegrityError as exc:
            error = translate_integrity_error(exc, payment_list_id=str(payment_list_id))
            logger.warning(
                "statement_generation_conflict",
                extra={
                    "payment_list_id": str(payment_list_id),
                    "error_code": error.code,
                },
            )
            raise error from exc

    def _update_statement_counts(self, payment_list_id: UUID, per_currency: Counter) -> None:
        totals = self.session.execute(
            select(PaymentListTotal).where(PaymentListTotal.payment_list_id == payment_list_id)
        ).scalars()
        for total in totals:
            total.statements_count = per_currency.get(total.currency, 0)
        self.session.flush()
