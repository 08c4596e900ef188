"""
Ledger domain models.

- Transaction: One double-entry row (CREDIT or DEBIT)
- TransactionSettlement: Invoicing status of a debt transaction group
- Expense / ExpenseItem / ExpenseAttachedFile: Payment requests, including
  monthly host settlements
- Order: Contributor commitments (yearly budgets, blocked funds)
- CurrencyExchangeRate: Stored FX rates
"""

from ledger.models.currency_exchange_rate import CurrencyExchangeRate
from ledger.models.expense import Expense, ExpenseAttachedFile, ExpenseItem
from ledger.models.order import Order
from ledger.models.transaction import Transaction
from ledger.models.transaction_settlement import TransactionSettlement

__all__ = [
    "CurrencyExchangeRate",
    "Expense",
    "ExpenseAttachedFile",
    "ExpenseItem",
    "Order",
    "Transaction",
    "TransactionSettlement",
]
