"""
PaymentListSelector -- read side of payment lists.

All money figures are aggregated in Python over Decimal values; the
ledger projection itself lives in ``entry_fees.domain.ledger``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from entry_fees.domain.dtos import (
    Page,
    PaymentListEventInfo,
    PaymentListInfo,
    PaymentListSummary,
    PaymentListTotalInfo,
)
from entry_fees.domain.ledger import project_net_totals
from entry_fees.domain.statement_stats import build_statement_stats
from entry_fees.exceptions import PaymentListNotFoundError
from entry_fees.models.payment_list import (
    PaymentList,
    PaymentListEvent,
    PaymentListSubscription,
    PaymentListTotal,
)
from entry_fees.models.statement import Statement
from entry_fees.selectors.base import BaseSelector, after_cursor, encode_cursor


class PaymentListSelector(BaseSelector[PaymentList]):
    """Read-only queries over payment lists, their totals and ledgers."""

    def _statement_counts(self, payment_list_ids: list[UUID]) -> dict[UUID, int]:
        if not payment_list_ids:
            return {}
        rows = self.session.execute(
            select(Statement.payment_list_id, func.count(Statement.id))
            .where(Statement.payment_list_id.in_(payment_list_ids))
            .group_by(Statement.payment_list_id)
        ).all()
        return {list_id: count for list_id, count in rows}

    def _load(self, payment_list_id: UUID) -> PaymentList:
        payment_list = self.session.get(PaymentList, payment_list_id)
        if payment_list is None:
            raise PaymentListNotFoundError(str(payment_list_id))
        return payment_list

    def get(self, payment_list_id: UUID) -> PaymentListInfo:
        payment_list = self._load(payment_list_id)
        counts = self._statement_counts([payment_list.id])
        return payment_list.to_dto(statements_count=counts.get(payment_list.id, 0))

    def list(
        self,
        created_by: str | None = None,
        group_structure_id: UUID | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[PaymentListInfo]:
        """Newest first.  ``total`` counts every match, ignoring the cursor."""
        filters = []
        if created_by is not None:
            filters.append(PaymentList.created_by == created_by)
        if group_structure_id is not None:
            filters.append(PaymentList.group_structure_id == group_structure_id)
        if created_from is not None:
            filters.append(PaymentList.created_at >= created_from)
        if created_to is not None:
            filters.append(PaymentList.created_at <= created_to)

        total = self.session.execute(
            select(func.count(PaymentList.id)).where(*filters)
        ).scalar_one()

        stmt = select(PaymentList).where(*filters)
        if cursor:
            stmt = stmt.where(after_cursor(PaymentList.created_at, PaymentList.id, cursor))
        page_size = self._settings.clamp_limit(limit)
        rows = list(
            self.session.execute(
                stmt.order_by(PaymentList.created_at.desc(), PaymentList.id.desc())
                .limit(page_size + 1)
            ).scalars()
        )
        has_more = len(rows) > page_size
        rows = rows[:page_size]

        counts = self._statement_counts([r.id for r in rows])
        return Page(
            items=tuple(r.to_dto(statements_count=counts.get(r.id, 0)) for r in rows),
            next_cursor=encode_cursor(rows[-1].created_at, rows[-1].id) if has_more else None,
            total=total,
        )

    def subscriptions(self, payment_list_id: UUID) -> tuple[str, ...]:
        self._load(payment_list_id)
        return tuple(
            self.session.execute(
                select(PaymentListSubscription.subscription_id)
                .where(PaymentListSubscription.payment_list_id == payment_list_id)
                .order_by(PaymentListSubscription.subscription_id)
            ).scalars()
        )

    def totals(self, payment_list_id: UUID) -> tuple[PaymentListTotalInfo, ...]:
        self._load(payment_list_id)
        rows = self.session.execute(
            select(PaymentListTotal)
            .where(PaymentListTotal.payment_list_id == payment_list_id)
            .order_by(PaymentListTotal.currency)
        ).scalars()
        return tuple(r.to_dto() for r in rows)

    def events(self, payment_list_id: UUID) -> tuple[PaymentListEventInfo, ...]:
        """Ledger in append order."""
        self._load(payment_list_id)
        rows = self.session.execute(
            select(PaymentListEvent)
            .where(PaymentListEvent.payment_list_id == payment_list_id)
            .order_by(PaymentListEvent.created_at, PaymentListEvent.id)
        ).scalars()
        return tuple(r.to_dto() for r in rows)

    def summary(self, payment_list_id: UUID) -> PaymentListSummary:
        """Announced and net totals per currency plus statement statistics."""
        info = self.get(payment_list_id)
        totals = self.totals(payment_list_id)
        events = self.events(payment_list_id)
        statements = [
            s.to_dto()
            for s in self.session.execute(
                select(Statement).where(Statement.payment_list_id == payment_list_id)
            ).scalars()
        ]
        scale = self._settings.amount_scale
        return PaymentListSummary(
            payment_list=info,
            subscriptions_count=info.subscriptions_count,
            totals=project_net_totals(totals, events, scale),
            events_count=len(events),
            statement_stats=build_statement_stats(statements, scale),
        )
