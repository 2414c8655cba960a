"""
Module: entry_fees.models.payment_list
Responsibility: ORM persistence for payment lists, their subscription
    membership, announced totals and the append-only adjustment ledger.
Architecture position: Kernel > Models.  May import from db/ and domain DTOs.

Invariants enforced:
    - A subscription appears at most once per payment list.
    - One announced total row per (payment list, currency).
    - PaymentListEvent rows are append-only; nothing in the engine updates
      or deletes them.  ``statement_id`` is a weak reference (no FK).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from entry_fees.db.base import Base, UUIDString
from entry_fees.domain.dtos import (
    PaymentListEventInfo,
    PaymentListInfo,
    PaymentListTotalInfo,
)


class PaymentList(Base):
    """Top-level billing batch created from a subscription set."""

    __tablename__ = "entry_fees_payment_list"

    __table_args__ = (
        Index("idx_payment_list_created_at", "created_at"),
        Index("idx_payment_list_created_by", "created_by"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    created_by: Mapped[str] = mapped_column(String(200), nullable=False)

    # Snapshot of the structure version in force at creation
    group_structure_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("group_structures.id"),
        nullable=False,
    )

    period_label: Mapped[str | None] = mapped_column(String(200), nullable=True)

    subscriptions_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentList {self.id} subs={self.subscriptions_count}>"

    def to_dto(self, statements_count: int = 0) -> PaymentListInfo:
        return PaymentListInfo(
            id=self.id,
            created_at=self.created_at,
            created_by=self.created_by,
            group_structure_id=self.group_structure_id,
            period_label=self.period_label,
            subscriptions_count=self.subscriptions_count,
            statements_count=statements_count,
        )


class PaymentListSubscription(Base):
    """Membership of one subscription in a payment list."""

    __tablename__ = "entry_fees_payment_list_subscription"

    __table_args__ = (
        UniqueConstraint(
            "payment_list_id", "subscription_id", name="uq_payment_list_subscription"
        ),
        Index("idx_payment_list_subscription_sub", "subscription_id"),
    )

    payment_list_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entry_fees_payment_list.id", ondelete="CASCADE"),
        nullable=False,
    )

    subscription_id: Mapped[str] = mapped_column(String(64), nullable=False)


class PaymentListTotal(Base):
    """Externally-declared baseline for one currency."""

    __tablename__ = "entry_fees_payment_list_total"

    __table_args__ = (
        UniqueConstraint("payment_list_id", "currency", name="uq_payment_list_total_currency"),
    )

    payment_list_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entry_fees_payment_list.id", ondelete="CASCADE"),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(String(10), nullable=False)

    total_announced: Mapped[Decimal] = mapped_column(nullable=False)

    subscriptions_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Derived: number of statements generated in this currency
    statements_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def to_dto(self) -> PaymentListTotalInfo:
        return PaymentListTotalInfo(
            payment_list_id=self.payment_list_id,
            currency=self.currency,
            total_announced=self.total_announced,
            subscriptions_count=self.subscriptions_count,
            statements_count=self.statements_count,
        )


class PaymentListEvent(Base):
    """Append-only ledger adjustment on a payment list."""

    __tablename__ = "entry_fees_payment_list_event"

    __table_args__ = (
        Index("idx_payment_list_event_list", "payment_list_id", "created_at"),
        Index("idx_payment_list_event_statement", "statement_id"),
    )

    payment_list_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entry_fees_payment_list.id", ondelete="CASCADE"),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(String(10), nullable=False)

    amount_delta: Mapped[Decimal] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    statement_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentListEvent {self.currency} {self.amount_delta}>"

    def to_dto(self) -> PaymentListEventInfo:
        return PaymentListEventInfo(
            id=self.id,
            payment_list_id=self.payment_list_id,
            currency=self.currency,
            amount_delta=self.amount_delta,
            created_at=self.created_at,
            reason=self.reason,
            statement_id=self.statement_id,
        )
