"""
Tests for entry_fees.domain.ledger -- the announced + events projection.
"""

from dataclasses import dataclass
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from entry_fees.domain.ledger import (
    AnnouncedTotal,
    cancellation_delta,
    compute_announced_totals,
    project_net_totals,
)
from tests.factories import make_record


@dataclass(frozen=True)
class Delta:
    currency: str
    amount_delta: Decimal


class TestProjectNetTotals:
    def test_no_events_net_equals_announced(self):
        totals = project_net_totals([AnnouncedTotal("EUR", Decimal("225.50"))], [])
        assert len(totals) == 1
        assert totals[0].net_total == Decimal("225.50")
        assert totals[0].adjustments_total == Decimal("0.00")
        assert totals[0].events_count == 0

    def test_cancellation_reduces_net(self):
        totals = project_net_totals(
            [AnnouncedTotal("EUR", Decimal("225.50"))],
            [Delta("EUR", cancellation_delta(Decimal("150.50")))],
        )
        assert totals[0].net_total == Decimal("75.00")
        assert totals[0].adjustments_total == Decimal("-150.50")
        assert totals[0].events_count == 1

    def test_events_only_currency_projects_from_zero(self):
        totals = project_net_totals(
            [AnnouncedTotal("EUR", Decimal("10"))],
            [Delta("CHF", Decimal("-5"))],
        )
        assert [t.currency for t in totals] == ["CHF", "EUR"]
        assert totals[0].announced_total == Decimal("0.00")
        assert totals[0].net_total == Decimal("-5.00")

    def test_empty(self):
        assert project_net_totals([], []) == ()

    @given(
        announced=st.decimals(min_value=0, max_value=100_000, places=2),
        deltas=st.lists(st.decimals(min_value=-10_000, max_value=10_000, places=2), max_size=20),
    )
    @settings(max_examples=50, deadline=None)
    def test_net_is_announced_plus_sum_of_deltas(self, announced, deltas):
        totals = project_net_totals(
            [AnnouncedTotal("EUR", announced)],
            [Delta("EUR", d) for d in deltas],
        )
        assert totals[0].net_total == announced + sum(deltas, Decimal("0"))
        assert totals[0].events_count == len(deltas)


class TestCancellationDelta:
    def test_negates_total(self):
        assert cancellation_delta(Decimal("150.50")) == Decimal("-150.50")

    def test_zero_total(self):
        assert cancellation_delta(Decimal("0")) == 0


class TestComputeAnnouncedTotals:
    def test_sums_per_currency(self):
        totals = compute_announced_totals([
            make_record("s1", currency="EUR", amount="100.00"),
            make_record("s2", currency="EUR", amount="50.50"),
            make_record("s3", currency="CHF", amount="20"),
        ])
        assert [(t.currency, t.total_announced, t.subscriptions_count) for t in totals] == [
            ("CHF", Decimal("20.00"), 1),
            ("EUR", Decimal("150.50"), 2),
        ]

    def test_missing_currency_uses_default(self):
        totals = compute_announced_totals(
            [make_record("s1", currency=None, amount="5")],
            default_currency="CHF",
        )
        assert totals[0].currency == "CHF"

    def test_unparseable_amount_counts_as_zero(self):
        totals = compute_announced_totals([
            make_record("s1", amount="abc"),
            make_record("s2", amount="1.25"),
        ])
        assert totals[0].total_announced == Decimal("1.25")
        assert totals[0].subscriptions_count == 2
