"""
EntryFeesPeriodService -- billing windows that never overlap.

Responsibility:
    Create, update, delete and look up entry-fee periods, each a half-open
    date range [start_date, end_date).

Architecture position:
    Kernel > Services -- imperative shell.  Driven directly or through the
    period batch in entry_fees_batch.

Invariants enforced:
    - start_date < end_date, checked before storage and by a CHECK
      constraint.
    - No two ranges overlap.  Checked proactively by query so the caller
      gets the conflicting period's id; on PostgreSQL a gist exclusion
      constraint is the final authority, and its violation is translated
      into the same PeriodOverlapError.
    - Touching endpoints do not overlap: [a, b) and [b, c) coexist.
    - Flush-only: never commits or rolls back.

Failure modes:
    - InvalidPeriodRangeError: start_date >= end_date.
    - PeriodOverlapError: range intersects an existing period.
    - PeriodNotFoundError: unknown period id on update/delete/get.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from entry_fees.db.errors import translate_integrity_error
from entry_fees.domain.dtos import Page, PeriodInfo
from entry_fees.exceptions import (
    InvalidCursorError,
    InvalidPeriodRangeError,
    PeriodNotFoundError,
    PeriodOverlapError,
)
from entry_fees.logging_config import get_logger
from entry_fees.models.period import EntryFeesPeriod
from entry_fees.services.base import BaseService

logger = get_logger("services.period")


def validate_range(start_date: date, end_date: date) -> None:
    """
    Raises:
        InvalidPeriodRangeError: start_date is not strictly before end_date.
    """
    if not start_date < end_date:
        raise InvalidPeriodRangeError(str(start_date), str(end_date))


class EntryFeesPeriodService(BaseService[EntryFeesPeriod]):
    """
    Service for entry-fee periods.

    Guarantees:
        - Every public method returns frozen ``PeriodInfo`` DTOs.
        - Storage constraint violations surface as typed errors, never as
          IntegrityError.
    """

    def _get_or_raise(self, period_id: UUID) -> EntryFeesPeriod:
        period = self.session.get(EntryFeesPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def _validate_no_overlap(
        self,
        start_date: date,
        end_date: date,
        exclude_id: UUID | None = None,
    ) -> None:
        """
        Two half-open ranges overlap iff start1 < end2 AND start2 < end1.

        Raises:
            PeriodOverlapError: naming the first overlapping period.
        """
        stmt = select(EntryFeesPeriod).where(
            EntryFeesPeriod.start_date < end_date,
            EntryFeesPeriod.end_date > start_date,
        )
        if exclude_id is not None:
            stmt = stmt.where(EntryFeesPeriod.id != exclude_id)

        existing = self.session.execute(
            stmt.order_by(EntryFeesPeriod.start_date).limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            logger.warning(
                "period_overlap_rejected",
                extra={
                    "start_date": str(start_date),
                    "end_date": str(end_date),
                    "existing_period_id": str(existing.id),
                },
            )
            raise PeriodOverlapError(
                start_date=str(start_date),
                end_date=str(end_date),
                existing_period_id=str(existing.id),
            )

    def _flush(self, start_date: date, end_date: date) -> None:
        try:
            self.session.flush()
        except IntegrityError as exc:
            error = translate_integrity_error(
                exc, start_date=str(start_date), end_date=str(end_date)
            )
            if isinstance(error, PeriodOverlapError):
                logger.warning(
                    "period_overlap_rejected",
                    extra={
                        "start_date": str(start_date),
                        "end_date": str(end_date),
                        "detected_by": "constraint",
                    },
                )
            raise error from exc

    def create_period(self, start_date: date, end_date: date) -> PeriodInfo:
        """
        Create a period [start_date, end_date).

        Raises:
            InvalidPeriodRangeError, PeriodOverlapError
        """
        validate_range(start_date, end_date)
        self._validate_no_overlap(start_date, end_date)

        period = EntryFeesPeriod(
            start_date=start_date,
            end_date=end_date,
            created_at=self._clock.now(),
        )
        self.session.add(period)
        self._flush(start_date, end_date)

        logger.info(
            "period_created",
            extra={
                "period_id": str(period.id),
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return period.to_dto()

    def update_period(
        self,
        period_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> PeriodInfo:
        """
        Move one or both bounds of an existing period.

        Omitted bounds keep their stored value; the resulting range is
        validated as a whole.

        Raises:
            PeriodNotFoundError, InvalidPeriodRangeError, PeriodOverlapError
        """
        period = self._get_or_raise(period_id)
        new_start = start_date if start_date is not None else period.start_date
        new_end = end_date if end_date is not None else period.end_date

        validate_range(new_start, new_end)
        self._validate_no_overlap(new_start, new_end, exclude_id=period.id)

        period.start_date = new_start
        period.end_date = new_end
        self._flush(new_start, new_end)

        logger.info(
            "period_updated",
            extra={
                "period_id": str(period.id),
                "start_date": str(new_start),
                "end_date": str(new_end),
            },
        )
        return period.to_dto()

    def delete_period(self, period_id: UUID) -> PeriodInfo:
        """
        Raises:
            PeriodNotFoundError
        """
        period = self._get_or_raise(period_id)
        info = period.to_dto()
        self.session.delete(period)
        self.session.flush()

        logger.info("period_deleted", extra={"period_id": str(period_id)})
        return info

    def get_period(self, period_id: UUID) -> PeriodInfo:
        return self._get_or_raise(period_id).to_dto()

    def resolve_period(self, day: date) -> PeriodInfo | None:
        """The unique period with start_date <= day < end_date, or None."""
        period = self.session.execute(
            select(EntryFeesPeriod).where(
                EntryFeesPeriod.start_date <= day,
                EntryFeesPeriod.end_date > day,
            )
        ).scalar_one_or_none()
        return period.to_dto() if period is not None else None

    def list_periods(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[PeriodInfo]:
        """
        Periods intersecting [date_from, date_to), ordered by start_date.

        ``cursor`` is the start_date of the last period returned; ranges
        never overlap, so start dates are unique.
        """
        page_size = self._settings.clamp_limit(limit)
        stmt = select(EntryFeesPeriod)
        if date_from is not None:
            stmt = stmt.where(EntryFeesPeriod.end_date > date_from)
        if date_to is not None:
            stmt = stmt.where(EntryFeesPeriod.start_date < date_to)
        if cursor:
            stmt = stmt.where(EntryFeesPeriod.start_date > _parse_date_cursor(cursor))

        rows = list(
            self.session.execute(
                stmt.order_by(EntryFeesPeriod.start_date).limit(page_size + 1)
            ).scalars()
        )
        has_more = len(rows) > page_size
        rows = rows[:page_size]
        return Page(
            items=tuple(r.to_dto() for r in rows),
            next_cursor=rows[-1].start_date.isoformat() if has_more else None,
        )


def _parse_date_cursor(cursor: str) -> date:
    try:
        return date.fromisoformat(cursor)
    except ValueError:
        raise InvalidCursorError(cursor) from None
