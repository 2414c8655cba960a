"""Read-only selectors returning frozen DTOs."""

from entry_fees.selectors.payment_list_selector import PaymentListSelector
from entry_fees.selectors.statement_selector import StatementSelector

__all__ = ["PaymentListSelector", "StatementSelector"]
