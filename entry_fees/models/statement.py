"""
Module: entry_fees.models.statement
Responsibility: ORM persistence for statements and their subscription lines.
Architecture position: Kernel > Models.  May import from db/ and domain DTOs.

Invariants enforced:
    - Exactly one statement per (payment list, billing group, currency).
    - statement_number is unique within its payment list.  Numbers embed
      only the first 8 characters of the list id, so lists may share them.
    - A subscription appears at most once per statement; line amounts and
      source groups are snapshots, never recomputed.
    - issue_status / payment_status only ever hold values of the closed
      IssueStatus / PaymentStatus enums; every change goes through
      StatementLifecycleService.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from entry_fees.db.base import Base, UUIDString
from entry_fees.domain.dtos import StatementInfo, StatementLineInfo
from entry_fees.domain.status import IssueStatus, PaymentStatus


class Statement(Base):
    """Consolidated document for one (billing group, currency) bucket."""

    __tablename__ = "entry_fees_statement"

    __table_args__ = (
        UniqueConstraint(
            "payment_list_id", "group_key", "currency", name="uq_statement_bucket"
        ),
        UniqueConstraint(
            "payment_list_id", "statement_number", name="uq_statement_number"
        ),
        Index("idx_statement_payment_list", "payment_list_id"),
        Index("idx_statement_status", "issue_status", "payment_status"),
    )

    payment_list_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entry_fees_payment_list.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Billing group id
    group_key: Mapped[str] = mapped_column(String(64), nullable=False)

    statement_number: Mapped[str] = mapped_column(String(100), nullable=False)

    issue_status: Mapped[str] = mapped_column(
        String(20),
        default=IssueStatus.ISSUED.value,
        nullable=False,
    )

    payment_status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.UNPAID.value,
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(String(10), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Statement {self.statement_number} {self.issue_status}/{self.payment_status}>"

    @property
    def is_cancelled(self) -> bool:
        return self.issue_status == IssueStatus.CANCELLED.value

    def to_dto(self) -> StatementInfo:
        return StatementInfo(
            id=self.id,
            payment_list_id=self.payment_list_id,
            group_key=self.group_key,
            statement_number=self.statement_number,
            issue_status=IssueStatus(self.issue_status),
            payment_status=PaymentStatus(self.payment_status),
            currency=self.currency,
            total_amount=self.total_amount,
            created_at=self.created_at,
            paid_at=self.paid_at,
            cancelled_at=self.cancelled_at,
        )


class StatementLine(Base):
    """Immutable fee/origin snapshot of one subscription on a statement."""

    __tablename__ = "entry_fees_statement_subscription"

    __table_args__ = (
        UniqueConstraint("statement_id", "subscription_id", name="uq_statement_line_sub"),
        Index("idx_statement_line_subscription", "subscription_id"),
    )

    statement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entry_fees_statement.id", ondelete="CASCADE"),
        nullable=False,
    )

    subscription_id: Mapped[str] = mapped_column(String(64), nullable=False)

    snapshot_source_group_id: Mapped[str] = mapped_column(String(64), nullable=False)

    snapshot_total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> StatementLineInfo:
        return StatementLineInfo(
            id=self.id,
            statement_id=self.statement_id,
            subscription_id=self.subscription_id,
            snapshot_source_group_id=self.snapshot_source_group_id,
            snapshot_total_amount=self.snapshot_total_amount,
        )
