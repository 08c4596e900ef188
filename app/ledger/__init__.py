"""
Ledger app for fiscal-host accounting.

This app handles:
- Recording economic events as balanced CREDIT/DEBIT transaction groups
- Host fee, platform fee, processor fee and tax derivation
- Collective balances and income/expense aggregates
- Refund reversals
- Monthly settlement of what hosts owe the platform

Related apps:
    - accounts: Collectives, hosts, plans and payout methods

Usage:
    from ledger.services import BalanceService, LedgerWriter, SettlementEngine

    group = LedgerWriter().record_economic_event(draft)

    balances = BalanceService().get_balances([collective.id])

    stats = SettlementEngine(SettlementOptions(dry_run=True)).run()
"""
