"""Tests for PaymentListSelector, including the net-total summary."""

from decimal import Decimal
from uuid import uuid4

import pytest

from entry_fees.db.engine import transaction_scope
from entry_fees.exceptions import PaymentListNotFoundError
from entry_fees.selectors.payment_list_selector import PaymentListSelector
from entry_fees.services.payment_list_service import CreatePaymentListRequest
from entry_fees.services.statement_lifecycle import StatementLifecycleService
from tests.factories import TEST_ACTOR


def create(coordinator, subscription_ids, created_by=TEST_ACTOR):
    return coordinator.create(
        CreatePaymentListRequest(
            created_by=created_by,
            subscription_ids=tuple(subscription_ids),
            compute_totals=True,
            include_statements=True,
        )
    )


@pytest.fixture
def selector_for(session_factory, settings):
    """Open a read session per call; closed when the test ends."""
    sessions = []

    def _selector():
        session = session_factory()
        sessions.append(session)
        return PaymentListSelector(session, settings)

    yield _selector
    for session in sessions:
        session.close()


class TestGetAndList:
    def test_get_counts_statements(self, coordinator, active_structure, selector_for):
        created = create(coordinator, ["sub-1", "sub-2", "sub-3"])
        info = selector_for().get(created.payment_list.id)
        assert info.statements_count == 2
        assert info.subscriptions_count == 3

    def test_get_unknown(self, selector_for):
        with pytest.raises(PaymentListNotFoundError):
            selector_for().get(uuid4())

    def test_list_newest_first_with_total(
        self, coordinator, active_structure, selector_for, clock
    ):
        ids = []
        for sid in ("sub-1", "sub-3", "sub-4"):
            ids.append(create(coordinator, [sid]).payment_list.id)
            clock.advance(60)

        selector = selector_for()
        page = selector.list(limit=2)
        assert [p.id for p in page.items] == [ids[2], ids[1]]
        assert page.total == 3
        assert page.next_cursor is not None

        rest = selector.list(limit=2, cursor=page.next_cursor)
        assert [p.id for p in rest.items] == [ids[0]]
        assert rest.next_cursor is None
        assert rest.total == 3

    def test_list_filters(self, coordinator, active_structure, selector_for, clock):
        create(coordinator, ["sub-1"])
        clock.advance(3600)
        later = create(coordinator, ["sub-3"], created_by="treasurer@example.org")

        selector = selector_for()
        by_actor = selector.list(created_by="treasurer@example.org")
        assert [p.id for p in by_actor.items] == [later.payment_list.id]

        recent = selector.list(created_from=later.payment_list.created_at)
        assert [p.id for p in recent.items] == [later.payment_list.id]

        by_structure = selector.list(group_structure_id=active_structure)
        assert by_structure.total == 2

    def test_subscriptions_and_totals(self, coordinator, active_structure, selector_for):
        created = create(coordinator, ["sub-4", "sub-1"])
        selector = selector_for()
        assert selector.subscriptions(created.payment_list.id) == ("sub-1", "sub-4")
        assert [t.currency for t in selector.totals(created.payment_list.id)] == ["CHF", "EUR"]


class TestSummary:
    def test_summary_before_any_event(self, coordinator, active_structure, selector_for):
        created = create(coordinator, ["sub-1", "sub-2", "sub-3", "sub-4", "sub-5"])
        summary = selector_for().summary(created.payment_list.id)

        assert summary.subscriptions_count == 5
        assert summary.events_count == 0
        assert [(t.currency, t.announced_total, t.net_total) for t in summary.totals] == [
            ("CHF", Decimal("20.00"), Decimal("20.00")),
            ("EUR", Decimal("225.50"), Decimal("225.50")),
        ]
        assert summary.statement_stats.counts["issued_unpaid"] == 4

    def test_summary_after_cancel_and_payment(
        self, coordinator, active_structure, selector_for, session_factory, clock, settings
    ):
        created = create(coordinator, ["sub-1", "sub-2", "sub-3", "sub-4", "sub-5"])
        club_a_eur, club_b_chf = created.statements[0], created.statements[1]

        with transaction_scope(session_factory) as s:
            lifecycle = StatementLifecycleService(s, clock, settings)
            lifecycle.cancel_statement(club_a_eur.id)
            lifecycle.set_payment_status(club_b_chf.id, "PAID")

        summary = selector_for().summary(created.payment_list.id)
        net = {t.currency: t for t in summary.totals}

        assert net["EUR"].adjustments_total == Decimal("-150.50")
        assert net["EUR"].net_total == Decimal("75.00")
        assert net["CHF"].net_total == Decimal("20.00")
        assert summary.events_count == 1

        stats = summary.statement_stats
        assert stats.counts["cancelled"] == 1
        assert stats.counts["issued_paid"] == 1
        assert stats.amounts["cancelled"] == {"EUR": Decimal("150.50")}
        assert stats.amounts["issued_paid"] == {"CHF": Decimal("20.00")}

    def test_events_in_append_order(
        self, coordinator, active_structure, selector_for, session_factory, clock, settings
    ):
        created = create(coordinator, ["sub-1", "sub-3"])
        with transaction_scope(session_factory) as s:
            lifecycle = StatementLifecycleService(s, clock, settings)
            clock.advance(10)
            lifecycle.cancel_statement(created.statements[1].id)
            clock.advance(10)
            lifecycle.cancel_statement(created.statements[0].id)

        events = selector_for().events(created.payment_list.id)
        assert [e.statement_id for e in events] == [
            created.statements[1].id,
            created.statements[0].id,
        ]
