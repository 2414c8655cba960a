"""Statement counts and per-currency amounts by issue/payment status."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from entry_fees.domain.money import ZERO, quantize_amount
from entry_fees.domain.status import IssueStatus, PaymentStatus


class _StatementLike(Protocol):
    issue_status: IssueStatus
    payment_status: PaymentStatus
    currency: str
    total_amount: Decimal


BUCKETS = (
    "total",
    "issued",
    "cancelled",
    "issued_paid",
    "issued_unpaid",
    "cancelled_paid",
    "cancelled_unpaid",
)


@dataclass(frozen=True)
class StatementStats:
    """``counts[bucket]`` and ``amounts[bucket][currency]`` for each of BUCKETS."""

    counts: dict[str, int] = field(default_factory=lambda: {b: 0 for b in BUCKETS})
    amounts: dict[str, dict[str, Decimal]] = field(
        default_factory=lambda: {b: {} for b in BUCKETS}
    )

    @property
    def total_count(self) -> int:
        return self.counts["total"]


def build_statement_stats(
    statements: Iterable[_StatementLike],
    scale: int = 2,
) -> StatementStats:
    counts: dict[str, int] = {b: 0 for b in BUCKETS}
    sums: dict[str, dict[str, Decimal]] = {b: defaultdict(lambda: ZERO) for b in BUCKETS}

    for st in statements:
        issue = "issued" if st.issue_status == IssueStatus.ISSUED else "cancelled"
        payment = "paid" if st.payment_status == PaymentStatus.PAID else "unpaid"
        for bucket in ("total", issue, f"{issue}_{payment}"):
            counts[bucket] += 1
            sums[bucket][st.currency] += st.total_amount

    return StatementStats(
        counts=counts,
        amounts={
            bucket: {cur: quantize_amount(amt, scale) for cur, amt in sorted(by_cur.items())}
            for bucket, by_cur in sums.items()
        },
    )
