"""
Enums for ledger models.

Transaction kinds and types, settlement statuses (django-fsm states),
and expense/order statuses.
"""

from ledger.state_machines.states import (
    DEBT_KINDS,
    FEE_KINDS,
    ExpenseStatus,
    ExpenseType,
    OrderInterval,
    OrderStatus,
    TransactionKind,
    TransactionSettlementStatus,
    TransactionType,
)

__all__ = [
    "DEBT_KINDS",
    "ExpenseStatus",
    "ExpenseType",
    "FEE_KINDS",
    "OrderInterval",
    "OrderStatus",
    "TransactionKind",
    "TransactionSettlementStatus",
    "TransactionType",
]
