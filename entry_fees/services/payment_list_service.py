"""
Payment list creation and ledger adjustments.

Responsibility:
    ``PaymentListService`` owns the write primitives: the conflict
    pre-check, the insert of a list with its membership and announced
    totals, and appends to the adjustment ledger.
    ``PaymentListTransactionCoordinator`` wires those primitives and the
    StatementGenerator into one unit of work:

        validate -> fetch feed -> BEGIN
            -> lock candidates -> conflict check -> insert -> generate
        -> COMMIT

Architecture position:
    Kernel > Services.  The coordinator is the only class here that opens
    a transaction; everything it calls flushes into that one session.

Invariants enforced:
    - The conflict check runs and passes before any insert.
    - A subscription attached to a non-cancelled statement cannot join a
      new list.
    - Any failure rolls back the list, its membership, its totals and its
      statements together.
    - On PostgreSQL, candidate subscriptions are serialized with
      transaction-scoped advisory locks taken in sorted order, so two
      concurrent creations over the same subscription run one after the
      other.

Failure modes:
    - EmptyRequestError, MissingSubscriptionsError,
      InvalidAnnouncedTotalError, fee validation errors: before storage.
    - SubscriptionAlreadyAssignedError: conflict, up to
      ``conflict_report_limit`` offending assignments.
    - GroupStructureNotFoundError: unknown or missing active structure.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from entry_fees.db.engine import is_postgres, transaction_scope
from entry_fees.domain.clock import Clock, SystemClock
from entry_fees.domain.dtos import (
    ConflictingAssignment,
    GenerationResult,
    PaymentListCreated,
    PaymentListEventInfo,
    PaymentListInfo,
    PaymentListTotalInfo,
)
from entry_fees.domain.feeds import SubscriptionFeed, SubscriptionRecord
from entry_fees.domain.ledger import AnnouncedTotal, compute_announced_totals
from entry_fees.domain.money import parse_amount, quantize_amount
from entry_fees.domain.partition import validate_fees
from entry_fees.domain.status import IssueStatus
from entry_fees.exceptions import (
    EmptyRequestError,
    GroupStructureNotFoundError,
    InvalidAnnouncedTotalError,
    MissingSubscriptionsError,
    PaymentListNotFoundError,
    SubscriptionAlreadyAssignedError,
)
from entry_fees.logging_config import LogContext, get_logger
from entry_fees.models.group_structure import GroupStructure
from entry_fees.models.payment_list import (
    PaymentList,
    PaymentListEvent,
    PaymentListSubscription,
    PaymentListTotal,
)
from entry_fees.models.statement import Statement, StatementLine
from entry_fees.services.base import BaseService
from entry_fees.services.group_structure_service import GroupStructureResolver
from entry_fees.services.statement_generator import StatementGenerator
from entry_fees.settings import EngineSettings, get_settings

logger = get_logger("services.payment_list")


def dedupe_ids(ids: Iterable[str]) -> tuple[str, ...]:
    """Drop blanks and repeats, keeping first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for raw in ids:
        value = str(raw).strip()
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return tuple(out)


def normalize_announced_totals(
    totals: Iterable[AnnouncedTotal],
    scale: int = 2,
) -> tuple[AnnouncedTotal, ...]:
    """
    Validate caller-supplied totals.

    Raises:
        InvalidAnnouncedTotalError: blank or repeated currency, or an amount
            that is not a finite number.
    """
    seen: set[str] = set()
    out: list[AnnouncedTotal] = []
    for total in totals:
        currency = (total.currency or "").strip()
        if not currency:
            raise InvalidAnnouncedTotalError(currency, "currency is required")
        if currency in seen:
            raise InvalidAnnouncedTotalError(currency, "currency repeated")
        seen.add(currency)

        amount = parse_amount(total.total_announced)
        if amount is None:
            raise InvalidAnnouncedTotalError(currency, f"amount {total.total_announced!r}")
        out.append(
            AnnouncedTotal(
                currency=currency,
                total_announced=quantize_amount(amount, scale),
                subscriptions_count=total.subscriptions_count,
                statements_count=total.statements_count,
            )
        )
    return tuple(out)


class PaymentListService(BaseService[PaymentList]):
    """Write primitives for payment lists.  Flush-only."""

    def lock_subscriptions(self, subscription_ids: Sequence[str]) -> None:
        """
        Serialize concurrent creations touching the same subscriptions.

        Transaction-scoped advisory locks, released at COMMIT/ROLLBACK.
        No-op on dialects without advisory locks.
        """
        if not is_postgres(self.session):
            return
        for subscription_id in sorted(subscription_ids):
            self.session.execute(select(func.pg_advisory_xact_lock(func.hashtext(subscription_id))))

    def find_conflicts(self, subscription_ids: Sequence[str]) -> tuple[ConflictingAssignment, ...]:
        """Assignments of ``subscription_ids`` to non-cancelled statements."""
        if not subscription_ids:
            return ()
        rows = self.session.execute(
            select(
                StatementLine.subscription_id,
                Statement.payment_list_id,
                Statement.id,
            )
            .join(Statement, Statement.id == StatementLine.statement_id)
            .where(
                StatementLine.subscription_id.in_(list(subscription_ids)),
                Statement.issue_status != IssueStatus.CANCELLED.value,
            )
            .order_by(StatementLine.subscription_id)
            .limit(self._settings.conflict_report_limit)
        ).all()
        return tuple(
            ConflictingAssignment(
                subscription_id=subscription_id,
                payment_list_id=payment_list_id,
                statement_id=statement_id,
            )
            for subscription_id, payment_list_id, statement_id in rows
        )

    def ensure_no_conflicts(self, subscription_ids: Sequence[str]) -> None:
        """
        Raises:
            SubscriptionAlreadyAssignedError
        """
        conflicts = self.find_conflicts(subscription_ids)
        if not conflicts:
            return

        logger.warning(
            "subscription_conflict_detected",
            extra={
                "conflicts": len(conflicts),
                "subscription_ids": [c.subscription_id for c in conflicts],
            },
        )
        raise SubscriptionAlreadyAssignedError(
            [
                (c.subscription_id, str(c.payment_list_id), str(c.statement_id))
                for c in conflicts
            ]
        )

    def create_payment_list(
        self,
        created_by: str,
        group_structure_id: UUID,
        subscription_ids: Sequence[str],
        totals: Sequence[AnnouncedTotal],
        period_label: str | None = None,
    ) -> PaymentListInfo:
        """Insert the list, its membership and one total row per currency."""
        payment_list = PaymentList(
            created_at=self._clock.now(),
            created_by=created_by,
            group_structure_id=group_structure_id,
            period_label=period_label,
            subscriptions_count=len(subscription_ids),
        )
        self.session.add(payment_list)
        self.session.flush()

        self.session.add_all(
            PaymentListSubscription(payment_list_id=payment_list.id, subscription_id=sid)
            for sid in subscription_ids
        )
        self.session.add_all(
            PaymentListTotal(
                payment_list_id=payment_list.id,
                currency=total.currency,
                total_announced=total.total_announced,
                subscriptions_count=(
                    total.subscriptions_count
                    if total.subscriptions_count is not None
                    else len(subscription_ids)
                ),
                statements_count=total.statements_count or 0,
            )
            for total in totals
        )
        self.session.flush()

        logger.info(
            "payment_list_created",
            extra={
                "payment_list_id": str(payment_list.id),
                "group_structure_id": str(group_structure_id),
                "subscriptions": len(subscription_ids),
                "currencies": [t.currency for t in totals],
            },
        )
        return payment_list.to_dto()

    def get_payment_list(self, payment_list_id: UUID) -> PaymentList:
        """
        Raises:
            PaymentListNotFoundError
        """
        payment_list = self.session.get(PaymentList, payment_list_id)
        if payment_list is None:
            raise PaymentListNotFoundError(str(payment_list_id))
        return payment_list

    def totals(self, payment_list_id: UUID) -> tuple[PaymentListTotalInfo, ...]:
        rows = self.session.execute(
            select(PaymentListTotal)
            .where(PaymentListTotal.payment_list_id == payment_list_id)
            .order_by(PaymentListTotal.currency)
        ).scalars()
        return tuple(r.to_dto() for r in rows)

    def append_event(
        self,
        payment_list_id: UUID,
        currency: str,
        amount_delta: Decimal,
        reason: str | None = None,
        statement_id: UUID | None = None,
    ) -> PaymentListEventInfo:
        """Append one ledger row.  Callers hold whatever lock they need."""
        event = PaymentListEvent(
            payment_list_id=payment_list_id,
            currency=currency,
            amount_delta=amount_delta,
            created_at=self._clock.now(),
            reason=reason,
            statement_id=statement_id,
        )
        self.session.add(event)
        self.session.flush()
        return event.to_dto()

    def record_adjustment(
        self,
        payment_list_id: UUID,
        currency: str,
        amount_delta,
        reason: str | None = None,
    ) -> PaymentListEventInfo:
        """
        Manual ledger correction on a payment list.

        Raises:
            PaymentListNotFoundError, EmptyRequestError,
            InvalidAnnouncedTotalError (unparseable delta)
        """
        self.get_payment_list(payment_list_id)
        currency = (currency or "").strip()
        if not currency:
            raise EmptyRequestError("currency")
        delta = parse_amount(amount_delta)
        if delta is None:
            raise InvalidAnnouncedTotalError(currency, f"amount {amount_delta!r}")

        event = self.append_event(
            payment_list_id,
            currency,
            quantize_amount(delta, self._settings.amount_scale),
            reason=reason,
        )
        logger.info(
            "payment_list_adjusted",
            extra={
                "payment_list_id": str(payment_list_id),
                "currency": currency,
                "amount_delta": str(event.amount_delta),
            },
        )
        return event


@dataclass(frozen=True)
class CreatePaymentListRequest:
    """
    Input of PaymentListTransactionCoordinator.create().

    Exactly one way of stating the announced baseline is required: either
    ``totals`` or ``compute_totals=True``.  ``group_structure_id=None``
    snapshots the currently active structure.
    """

    created_by: str
    subscription_ids: tuple[str, ...]
    group_structure_id: UUID | None = None
    period_label: str | None = None
    totals: tuple[AnnouncedTotal, ...] = field(default_factory=tuple)
    compute_totals: bool = False
    include_statements: bool = False


class PaymentListTransactionCoordinator:
    """
    Atomic payment-list creation.

    Holds a session factory, not a session: each call opens its own
    ``transaction_scope`` and hands that single session to every step.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        feed: SubscriptionFeed,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        self._session_factory = session_factory
        self._feed = feed
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()

    def _fetch(self, subscription_ids: Sequence[str]) -> list[SubscriptionRecord]:
        records = self._feed.fetch_subscriptions(list(subscription_ids))
        found = {r.subscription_id for r in records}
        missing = [sid for sid in subscription_ids if sid not in found]
        if missing:
            raise MissingSubscriptionsError(missing)
        wanted = set(subscription_ids)
        return [r for r in records if r.subscription_id in wanted]

    def _announced(
        self,
        request: CreatePaymentListRequest,
        records: Sequence[SubscriptionRecord],
    ) -> tuple[AnnouncedTotal, ...]:
        if request.compute_totals:
            return compute_announced_totals(
                records,
                default_currency=self._settings.default_currency,
                scale=self._settings.amount_scale,
            )
        if not request.totals:
            raise EmptyRequestError("totals")
        return normalize_announced_totals(request.totals, self._settings.amount_scale)

    def _resolve_structure(self, session: Session, requested: UUID | None) -> UUID:
        active_id = session.execute(
            select(GroupStructure.id).where(GroupStructure.is_active.is_(True))
        ).scalar_one_or_none()

        if requested is None:
            if active_id is None:
                raise GroupStructureNotFoundError("active")
            return active_id

        if session.get(GroupStructure, requested) is None:
            raise GroupStructureNotFoundError(str(requested))
        if active_id is not None and active_id != requested:
            logger.warning(
                "group_structure_not_active",
                extra={
                    "group_structure_id": str(requested),
                    "active_group_structure_id": str(active_id),
                },
            )
        return requested

    def create(self, request: CreatePaymentListRequest) -> PaymentListCreated:
        """
        Create a payment list with its totals and statements, atomically.

        Raises:
            EmptyRequestError, MissingSubscriptionsError,
            InvalidAnnouncedTotalError, fee validation errors,
            SubscriptionAlreadyAssignedError, GroupStructureNotFoundError
        """
        if not (request.created_by or "").strip():
            raise EmptyRequestError("created_by")
        subscription_ids = dedupe_ids(request.subscription_ids)
        if not subscription_ids:
            raise EmptyRequestError("subscription_ids")

        records = self._fetch(subscription_ids)
        validate_fees(records)
        announced = self._announced(request, records)

        with LogContext.bind(actor_id=request.created_by):
            with transaction_scope(self._session_factory) as session:
                service = PaymentListService(session, self._clock, self._settings)
                service.lock_subscriptions(subscription_ids)
                service.ensure_no_conflicts(subscription_ids)

                structure_id = self._resolve_structure(session, request.group_structure_id)
                info = service.create_payment_list(
                    created_by=request.created_by.strip(),
                    group_structure_id=structure_id,
                    subscription_ids=subscription_ids,
                    totals=announced,
                    period_label=request.period_label,
                )

                with LogContext.bind(payment_list_id=str(info.id)):
                    generation = StatementGenerator(
                        session,
                        GroupStructureResolver(session),
                        self._clock,
                        self._settings,
                    ).generate(info.id, structure_id, records)

                totals = service.totals(info.id)

        return PaymentListCreated(
            payment_list=PaymentListInfo(
                id=info.id,
                created_at=info.created_at,
                created_by=info.created_by,
                group_structure_id=info.group_structure_id,
                period_label=info.period_label,
                subscriptions_count=info.subscriptions_count,
                statements_count=len(generation.statements),
            ),
            totals=totals,
            statements=generation.statements if request.include_statements else None,
        )

    def generate_statements(self, payment_list_id: UUID) -> GenerationResult:
        """
        (Re)run generation for an existing list in its own transaction.

        Returns the existing statements with ``created == 0`` when the list
        was already generated.
        """
        with transaction_scope(self._session_factory) as session:
            service = PaymentListService(session, self._clock, self._settings)
            payment_list = service.get_payment_list(payment_list_id)
            generator = StatementGenerator(
                session, GroupStructureResolver(session), self._clock, self._settings
            )
            existing = generator.existing_statements(payment_list_id)
            if existing:
                return generator.generate(payment_list_id, payment_list.group_structure_id, ())

            subscription_ids = session.execute(
                select(PaymentListSubscription.subscription_id)
                .where(PaymentListSubscription.payment_list_id == payment_list_id)
                .order_by(PaymentListSubscription.subscription_id)
            ).scalars().all()
            records = self._fetch(subscription_ids)
            return generator.generate(
                payment_list_id, payment_list.group_structure_id, records
            )
