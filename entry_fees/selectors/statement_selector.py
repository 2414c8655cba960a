"""StatementSelector -- read side of statements and their lines."""

from uuid import UUID

from sqlalchemy import select

from entry_fees.domain.dtos import (
    Page,
    StatementDescription,
    StatementInfo,
    StatementLineInfo,
)
from entry_fees.domain.feeds import TeamDirectory
from entry_fees.domain.status import parse_issue_status, parse_payment_status
from entry_fees.exceptions import StatementNotFoundError
from entry_fees.models.statement import Statement, StatementLine
from entry_fees.selectors.base import BaseSelector, after_cursor, encode_cursor


class StatementSelector(BaseSelector[Statement]):
    """Read-only queries over statements."""

    def _load(self, statement_id: UUID) -> Statement:
        statement = self.session.get(Statement, statement_id)
        if statement is None:
            raise StatementNotFoundError(str(statement_id))
        return statement

    def get(self, statement_id: UUID) -> StatementInfo:
        return self._load(statement_id).to_dto()

    def lines(self, statement_id: UUID) -> tuple[StatementLineInfo, ...]:
        self._load(statement_id)
        rows = self.session.execute(
            select(StatementLine)
            .where(StatementLine.statement_id == statement_id)
            .order_by(StatementLine.subscription_id)
        ).scalars()
        return tuple(r.to_dto() for r in rows)

    def list(
        self,
        payment_list_id: UUID | None = None,
        issue_status=None,
        payment_status=None,
        currency: str | None = None,
        group_key: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[StatementInfo]:
        """
        Filtered listing, newest first.

        Raises:
            UnknownStatusError: status filter outside the closed sets.
        """
        stmt = select(Statement)
        if payment_list_id is not None:
            stmt = stmt.where(Statement.payment_list_id == payment_list_id)
        if issue_status is not None:
            stmt = stmt.where(Statement.issue_status == parse_issue_status(issue_status).value)
        if payment_status is not None:
            stmt = stmt.where(
                Statement.payment_status == parse_payment_status(payment_status).value
            )
        if currency is not None:
            stmt = stmt.where(Statement.currency == currency.strip())
        if group_key is not None:
            stmt = stmt.where(Statement.group_key == group_key)
        if cursor:
            stmt = stmt.where(after_cursor(Statement.created_at, Statement.id, cursor))

        page_size = self._settings.clamp_limit(limit)
        rows = list(
            self.session.execute(
                stmt.order_by(Statement.created_at.desc(), Statement.id.desc())
                .limit(page_size + 1)
            ).scalars()
        )
        has_more = len(rows) > page_size
        rows = rows[:page_size]
        return Page(
            items=tuple(r.to_dto() for r in rows),
            next_cursor=encode_cursor(rows[-1].created_at, rows[-1].id) if has_more else None,
        )

    def statements_for_subscription(self, subscription_id: str) -> tuple[StatementInfo, ...]:
        """Every statement, cancelled or not, that carries the subscription."""
        rows = self.session.execute(
            select(Statement)
            .join(StatementLine, StatementLine.statement_id == Statement.id)
            .where(StatementLine.subscription_id == subscription_id)
            .order_by(Statement.created_at.desc(), Statement.id.desc())
        ).scalars()
        return tuple(r.to_dto() for r in rows)

    def describe(self, statement_id: UUID, team_directory: TeamDirectory) -> StatementDescription:
        """Statement with display names; names never affect amounts or grouping."""
        statement = self.get(statement_id)
        lines = self.lines(statement_id)
        sources = sorted({line.snapshot_source_group_id for line in lines})
        return StatementDescription(
            statement=statement,
            group_name=team_directory.display_name(statement.group_key),
            lines=lines,
            source_group_names={s: team_directory.display_name(s) for s in sources},
        )
