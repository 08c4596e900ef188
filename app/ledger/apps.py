"""
Ledger app configuration.

This app provides the double-entry transaction ledger:
- Fee derivation into paired CREDIT/DEBIT rows
- Balance and aggregation queries
- Monthly settlement of host debts to the platform
"""

from django.apps import AppConfig


class LedgerConfig(AppConfig):
    """Configuration for the ledger application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "ledger"
    verbose_name = "Ledger"
