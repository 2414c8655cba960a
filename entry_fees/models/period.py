"""
Module: entry_fees.models.period
Responsibility: ORM persistence for entry-fee billing periods.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - start_date < end_date (CHECK constraint, all dialects).
    - No two half-open ranges [start_date, end_date) overlap: a gist
      exclusion constraint on PostgreSQL.  Other dialects rely on the
      query-level check in PeriodService.
"""

from datetime import date, datetime

from sqlalchemy import DDL, CheckConstraint, Date, DateTime, Index, event, func
from sqlalchemy.orm import Mapped, mapped_column

from entry_fees.db.base import Base
from entry_fees.db.errors import PERIOD_NO_OVERLAP, PERIOD_RANGE_CHECK
from entry_fees.domain.dtos import PeriodInfo


class EntryFeesPeriod(Base):
    """Billing window [start_date, end_date)."""

    __tablename__ = "entry_fees_period"

    __table_args__ = (
        CheckConstraint("start_date < end_date", name=PERIOD_RANGE_CHECK),
        Index("idx_entry_fees_period_dates", "start_date", "end_date"),
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Exclusive upper bound
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<EntryFeesPeriod [{self.start_date}, {self.end_date})>"

    def contains_date(self, day: date) -> bool:
        return self.start_date <= day < self.end_date

    def to_dto(self) -> PeriodInfo:
        return PeriodInfo(id=self.id, start_date=self.start_date, end_date=self.end_date)


event.listen(
    EntryFeesPeriod.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE entry_fees_period ADD CONSTRAINT {PERIOD_NO_OVERLAP} "
        "EXCLUDE USING gist (daterange(start_date, end_date, '[)') WITH &&)"
    ).execute_if(dialect="postgresql"),
)
