"""Write-side services.  All of them flush within the caller's transaction."""

from entry_fees.services.group_structure_service import (
    GroupStructureResolver,
    GroupStructureService,
)
from entry_fees.services.payment_list_service import (
    CreatePaymentListRequest,
    PaymentListService,
    PaymentListTransactionCoordinator,
)
from entry_fees.services.period_service import EntryFeesPeriodService
from entry_fees.services.statement_generator import StatementGenerator
from entry_fees.services.statement_lifecycle import StatementLifecycleService

__all__ = [
    "GroupStructureResolver",
    "GroupStructureService",
    "EntryFeesPeriodService",
    "StatementGenerator",
    "PaymentListService",
    "PaymentListTransactionCoordinator",
    "CreatePaymentListRequest",
    "StatementLifecycleService",
]
