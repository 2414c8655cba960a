"""ORM models.  Importing this package registers every table on Base.metadata."""

from entry_fees.models.group_structure import GroupStructure, GroupStructureMapping
from entry_fees.models.payment_list import (
    PaymentList,
    PaymentListEvent,
    PaymentListSubscription,
    PaymentListTotal,
)
from entry_fees.models.period import EntryFeesPeriod
from entry_fees.models.statement import Statement, StatementLine

__all__ = [
    "GroupStructure",
    "GroupStructureMapping",
    "EntryFeesPeriod",
    "PaymentList",
    "PaymentListSubscription",
    "PaymentListTotal",
    "PaymentListEvent",
    "Statement",
    "StatementLine",
]
