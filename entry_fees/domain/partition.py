"""
Statement partitioning (``entry_fees.domain.partition``).

Responsibility
--------------
Turn a list of subscription fee snapshots plus a billing-group resolver into
deterministic statement plans.  Pure functional core, ZERO I/O; the
StatementGenerator persists what this module plans.

Algorithm
---------
1. billing group = resolve(source group) for each subscription.
2. Bucket by (billing group, currency).
3. Sort buckets ascending by (billing group, currency).  This order alone
   determines numbering, so shuffling the input never changes it.
4. statement number = f(payment list id, currency, index in sorted order).
5. Each line amount is rounded half-up once; total = sum of the rounded
   lines, so a statement always equals the sum of its lines.

Preconditions per subscription: non-empty currency, non-null source group,
finite fee >= 0.  A single offending record aborts the whole plan.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from entry_fees.domain.feeds import SubscriptionRecord
from entry_fees.domain.money import ZERO, parse_amount, quantize_amount
from entry_fees.exceptions import (
    InvalidFeeAmountError,
    MissingCurrencyError,
    MissingSourceGroupError,
)


@dataclass(frozen=True)
class SubscriptionFee:
    """A validated fee snapshot."""

    subscription_id: str
    source_group_id: str
    currency: str
    amount: Decimal


@dataclass(frozen=True)
class StatementLinePlan:
    subscription_id: str
    source_group_id: str
    amount: Decimal


@dataclass(frozen=True)
class StatementPlan:
    group_key: str
    currency: str
    statement_number: str
    total_amount: Decimal
    lines: tuple[StatementLinePlan, ...]


def validate_fee(record: SubscriptionRecord) -> SubscriptionFee:
    """
    Check one record's generation preconditions.

    Raises:
        MissingCurrencyError, MissingSourceGroupError, InvalidFeeAmountError
    """
    currency = (record.currency or "").strip()
    if not currency:
        raise MissingCurrencyError(record.subscription_id)
    if not record.source_group_id:
        raise MissingSourceGroupError(record.subscription_id)

    amount = parse_amount(record.entry_fees_amount)
    if amount is None or amount < ZERO:
        # zero is a legitimate fee
        raise InvalidFeeAmountError(record.subscription_id, record.entry_fees_amount)

    return SubscriptionFee(
        subscription_id=record.subscription_id,
        source_group_id=record.source_group_id,
        currency=currency,
        amount=amount,
    )


def validate_fees(records: Iterable[SubscriptionRecord]) -> tuple[SubscriptionFee, ...]:
    """Validate every record up front; duplicate subscription ids keep the first."""
    seen: set[str] = set()
    fees: list[SubscriptionFee] = []
    for record in records:
        if record.subscription_id in seen:
            continue
        seen.add(record.subscription_id)
        fees.append(validate_fee(record))
    return tuple(fees)


def build_statement_number(
    payment_list_id: UUID | str,
    currency: str,
    index: int,
    prefix: str = "PL",
) -> str:
    """e.g. ``PL-1a2b3c4d-EUR-3`` for the third bucket in sorted order."""
    return f"{prefix}-{str(payment_list_id)[:8]}-{currency.strip()}-{index + 1}"


def bucket_order(key: tuple[str, str]) -> tuple[str, str]:
    """Sort key for (billing group, currency) buckets."""
    group_key, currency = key
    return (group_key, currency)


def plan_statements(
    payment_list_id: UUID | str,
    fees: Iterable[SubscriptionFee],
    resolve: Callable[[str], str],
    *,
    prefix: str = "PL",
    scale: int = 2,
) -> tuple[StatementPlan, ...]:
    """
    Partition validated fees into numbered statement plans.

    Args:
        payment_list_id: Owning payment list, feeds the statement number.
        fees: Validated fee snapshots.
        resolve: source group id -> billing group id.
        prefix: Statement number prefix.
        scale: Decimal places applied at the boundary.

    Returns:
        Plans in (billing group, currency) order; lines ordered by
        subscription id.
    """
    buckets: dict[tuple[str, str], list[SubscriptionFee]] = defaultdict(list)
    for fee in fees:
        buckets[(resolve(fee.source_group_id), fee.currency)].append(fee)

    plans: list[StatementPlan] = []
    for index, key in enumerate(sorted(buckets, key=bucket_order)):
        group_key, currency = key
        members = sorted(buckets[key], key=lambda f: f.subscription_id)
        lines = tuple(
            StatementLinePlan(
                subscription_id=f.subscription_id,
                source_group_id=f.source_group_id,
                amount=quantize_amount(f.amount, scale),
            )
            for f in members
        )
        plans.append(
            StatementPlan(
                group_key=group_key,
                currency=currency,
                statement_number=build_statement_number(
                    payment_list_id, currency, index, prefix
                ),
                total_amount=quantize_amount(sum((line.amount for line in lines), ZERO), scale),
                lines=lines,
            )
        )
    return tuple(plans)
