"""
Ledger services.

This module provides:
- CurrencyConverter: Date-aware FX conversion with a run-scoped memo
- FeeResolver: Fee amounts of primary rows (legacy fields or sibling rows)
- BalanceService: Balances and windowed aggregates
- LedgerWriter: Balanced transaction groups and refund reversals
- SettlementEngine: Monthly settlement of host debts

Usage:
    from ledger.services import LedgerWriter, BalanceService

    group = LedgerWriter().record_economic_event(draft)
    balance = BalanceService().get_balance(collective.id)
"""

from ledger.services.balances import BalanceService
from ledger.services.currency import CurrencyConverter, round_half_up
from ledger.services.fees import FeeResolver, can_have_fees, resolve_fees
from ledger.services.settlement import (
    SettlementEngine,
    mark_settlement_expense_paid,
    run_host_settlement,
)
from ledger.services.transactions import (
    LedgerWriter,
    record_economic_event,
    refund_transaction_group,
)

__all__ = [
    "BalanceService",
    "CurrencyConverter",
    "FeeResolver",
    "LedgerWriter",
    "SettlementEngine",
    "can_have_fees",
    "mark_settlement_expense_paid",
    "record_economic_event",
    "refund_transaction_group",
    "resolve_fees",
    "round_half_up",
    "run_host_settlement",
]
