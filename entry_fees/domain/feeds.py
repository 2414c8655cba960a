"""
External collaborators, specified at their boundary only.

* Subscription feed: a flat list of fee records.  The engine performs no
  pagination; a feed returns every requested record it knows about.
* Team directory: id -> display name, used for human-readable output only,
  never for grouping or totals.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class SubscriptionRecord:
    """One subscription as exposed by the feed; amounts are kept raw."""

    subscription_id: str
    source_group_id: str | None
    currency: str | None
    entry_fees_amount: Any


def _first(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def record_from_mapping(row: Mapping[str, Any]) -> SubscriptionRecord:
    """
    Parse one flattened feed row.

    Accepts the upstream camelCase keys (``subscriptionId``, ``teamId``,
    ``amountCurrency``) as well as their snake_case equivalents.

    Raises:
        KeyError: the row carries no subscription id.
    """
    subscription_id = _first(row, "subscriptionId", "subscription_id")
    if subscription_id is None:
        raise KeyError("subscriptionId")
    source = _first(row, "teamId", "team_id", "source_group_id", "sourceGroupId")
    currency = _first(row, "amountCurrency", "currency")
    return SubscriptionRecord(
        subscription_id=str(subscription_id),
        source_group_id=str(source) if source is not None else None,
        currency=str(currency) if currency is not None else None,
        entry_fees_amount=_first(row, "entry_fees_amount", "entryFeesAmount"),
    )


class SubscriptionFeed(Protocol):
    def fetch_subscriptions(self, subscription_ids: Sequence[str]) -> list[SubscriptionRecord]:
        """Return the known records among ``subscription_ids``."""
        ...


class TeamDirectory(Protocol):
    def display_name(self, team_id: str) -> str | None:
        ...


class StaticSubscriptionFeed:
    """In-memory feed over a fixed record set (embedding and tests)."""

    def __init__(self, records: Iterable[SubscriptionRecord | Mapping[str, Any]]):
        self._records: dict[str, SubscriptionRecord] = {}
        for raw in records:
            record = raw if isinstance(raw, SubscriptionRecord) else record_from_mapping(raw)
            self._records.setdefault(record.subscription_id, record)

    def fetch_subscriptions(self, subscription_ids: Sequence[str]) -> list[SubscriptionRecord]:
        wanted = set(subscription_ids)
        return [r for sid, r in self._records.items() if sid in wanted]


class StaticTeamDirectory:
    def __init__(self, names: Mapping[str, str]):
        self._names = dict(names)

    def display_name(self, team_id: str) -> str | None:
        return self._names.get(team_id)
