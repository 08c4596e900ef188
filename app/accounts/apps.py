"""
Accounts app configuration.

Collectives, hosts, host plans and the payout methods the settlement
engine bills against.
"""

from django.apps import AppConfig


class AccountsConfig(AppConfig):
    """Configuration for the accounts application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "accounts"
    verbose_name = "Accounts"
