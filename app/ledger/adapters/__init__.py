"""
Adapters for external services used by the ledger.

All FX provider calls go through these adapters to ensure consistent
error handling, timeouts and observability.

Usage:
    from ledger.adapters import FixerAdapter

    rates = FixerAdapter.fetch_rates("EUR", ["USD", "GBP"], as_of=date(2026, 9, 30))
"""

from ledger.adapters.fixer_adapter import FixerAdapter, FxRatesResult

__all__ = [
    "FixerAdapter",
    "FxRatesResult",
]
