"""
Entry Fees - statement generation and lifecycle engine

Administers recurring entry-fee billing cycles for fund subscriptions:
- Billing-group resolution through versioned group structures
- Atomic payment-list creation with conflict detection
- Deterministic statement partitioning and numbering
- Issue/payment status state machines with compensating ledger events
- Non-overlapping billing periods
"""

__version__ = "0.1.0"
