"""Tests for entry_fees.domain.money and entry_fees.domain.feeds."""

from decimal import Decimal

import pytest

from entry_fees.domain.feeds import (
    StaticSubscriptionFeed,
    StaticTeamDirectory,
    SubscriptionRecord,
    record_from_mapping,
)
from entry_fees.domain.money import format_amount, parse_amount, quantize_amount
from tests.factories import make_record


class TestParseAmount:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("12.50", Decimal("12.50")),
            (" 3 ", Decimal("3")),
            (7, Decimal("7")),
            (0.1, Decimal("0.1")),
            (Decimal("-1"), Decimal("-1")),
        ],
    )
    def test_parses(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, True, "", "twelve", "NaN", "-Infinity"])
    def test_rejects(self, raw):
        assert parse_amount(raw) is None


class TestRounding:
    def test_half_up(self):
        assert quantize_amount(Decimal("0.125")) == Decimal("0.13")
        assert quantize_amount(Decimal("0.124")) == Decimal("0.12")

    def test_scale(self):
        assert quantize_amount(Decimal("1.5"), scale=0) == Decimal("2")

    def test_format(self):
        assert format_amount(Decimal("12.5")) == "12.50"
        assert format_amount(Decimal("0")) == "0.00"


class TestRecordFromMapping:
    def test_camel_case_row(self):
        record = record_from_mapping({
            "subscriptionId": 42,
            "teamId": "team-a1",
            "amountCurrency": "EUR",
            "entry_fees_amount": "10.00",
        })
        assert record == SubscriptionRecord("42", "team-a1", "EUR", "10.00")

    def test_snake_case_row(self):
        record = record_from_mapping({
            "subscription_id": "s1",
            "source_group_id": "team-b",
            "currency": "CHF",
            "entryFeesAmount": 5,
        })
        assert record.source_group_id == "team-b"
        assert record.entry_fees_amount == 5

    def test_missing_fields_stay_none(self):
        record = record_from_mapping({"subscriptionId": "s1"})
        assert record.source_group_id is None
        assert record.currency is None

    def test_missing_id_raises(self):
        with pytest.raises(KeyError):
            record_from_mapping({"teamId": "team-a1"})


class TestStaticFeed:
    def test_returns_only_known_requested_records(self):
        feed = StaticSubscriptionFeed([make_record("s1"), make_record("s2")])
        found = feed.fetch_subscriptions(["s2", "missing"])
        assert [r.subscription_id for r in found] == ["s2"]

    def test_accepts_mapping_rows(self):
        feed = StaticSubscriptionFeed([{"subscriptionId": "s1", "teamId": "t"}])
        assert feed.fetch_subscriptions(["s1"])[0].source_group_id == "t"

    def test_team_directory(self):
        directory = StaticTeamDirectory({"club-a": "Club A"})
        assert directory.display_name("club-a") == "Club A"
        assert directory.display_name("club-z") is None
