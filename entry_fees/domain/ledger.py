"""
Payment-list ledger projection.

Announced totals are the externally-declared baseline, one per currency.
Adjustments (cancellations, manual corrections) are an append-only event
log.  The net position is a pure projection:

    net(currency) = announced(currency) + sum(event.amount_delta for currency)

A currency with events but no announced row projects from a zero baseline.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from entry_fees.domain.feeds import SubscriptionRecord
from entry_fees.domain.money import ZERO, parse_amount, quantize_amount


class _Announced(Protocol):
    currency: str
    total_announced: Decimal


class _Delta(Protocol):
    currency: str
    amount_delta: Decimal


@dataclass(frozen=True)
class AnnouncedTotal:
    """Per-currency baseline supplied by the caller or computed from the feed."""

    currency: str
    total_announced: Decimal
    subscriptions_count: int | None = None
    statements_count: int | None = None


@dataclass(frozen=True)
class NetTotal:
    currency: str
    announced_total: Decimal
    adjustments_total: Decimal
    net_total: Decimal
    events_count: int


def cancellation_delta(total_amount: Decimal) -> Decimal:
    """Compensating delta for a cancelled statement."""
    return -total_amount


def project_net_totals(
    announced: Iterable[_Announced],
    events: Iterable[_Delta],
    scale: int = 2,
) -> tuple[NetTotal, ...]:
    """Fold the event log onto the announced baseline, ordered by currency."""
    baseline: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for total in announced:
        baseline[total.currency] += total.total_announced

    deltas: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for event in events:
        deltas[event.currency] += event.amount_delta
        counts[event.currency] += 1

    return tuple(
        NetTotal(
            currency=currency,
            announced_total=quantize_amount(baseline[currency], scale),
            adjustments_total=quantize_amount(deltas[currency], scale),
            net_total=quantize_amount(baseline[currency] + deltas[currency], scale),
            events_count=counts[currency],
        )
        for currency in sorted(set(baseline) | set(deltas))
    )


def compute_announced_totals(
    records: Iterable[SubscriptionRecord],
    default_currency: str = "EUR",
    scale: int = 2,
) -> tuple[AnnouncedTotal, ...]:
    """
    Sum feed amounts per currency.

    Records without a currency fall back to ``default_currency``; missing or
    unparseable amounts count as zero.  Generation validates independently.
    """
    sums: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for record in records:
        currency = (record.currency or "").strip() or default_currency
        sums[currency] += parse_amount(record.entry_fees_amount) or ZERO
        counts[currency] += 1

    return tuple(
        AnnouncedTotal(
            currency=currency,
            total_announced=quantize_amount(sums[currency], scale),
            subscriptions_count=counts[currency],
        )
        for currency in sorted(sums)
    )
