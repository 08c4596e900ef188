"""
Transaction model: one row of the double-entry ledger.

Every economic event produces CREDIT/DEBIT pairs sharing a
`transaction_group`. CREDIT rows carry positive amounts and DEBIT rows
negative ones; a pair mirrors the collective/from_collective of each side.

Amounts (`amount`, `net_amount_in_collective_currency`) are minor units of
the row's `currency`; `amount_in_host_currency` is minor units of
`host_currency` at `host_currency_fx_rate`.

Rows are never updated once written, except for soft deletion on refund
and enrichment flags (is_disputed, refund_transaction).

Usage:
    from ledger.models import Transaction

    Transaction.objects.filter(transaction_group=group)   # live rows
    Transaction.all_objects.filter(transaction_group=group)  # with deleted
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.managers import SoftDeleteManager
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel

from ledger.state_machines import TransactionKind, TransactionType


class Transaction(SoftDeleteMixin, BaseModel):
    """
    A single ledger row.

    Fields:
        type: CREDIT or DEBIT
        kind: What the row represents (TransactionKind)
        amount: Signed minor units in `currency`
        currency: ISO 4217 code
        amount_in_host_currency: Signed minor units in `host_currency`
        host_currency / host_currency_fx_rate: Host accounting currency and
            the rate used from `currency`
        net_amount_in_collective_currency: Signed amount after legacy fee
            fields; equals `amount` for rows whose fees live in sibling rows
        host_fee_in_host_currency, platform_fee_in_host_currency,
        payment_processor_fee_in_host_currency, tax_amount: Legacy fee
            fields, stored as negative values; zero on split-fee rows
        is_debt: Row records money the host owes the platform
        is_refund: Row is part of a refund reversal
        is_disputed: Contribution under chargeback dispute
        is_internal: Transfer between a collective and its own children
        refund_transaction: Links an original and its reversal (both ways)
        transaction_group: UUID shared by all rows of one event
        collective / from_collective / host: Parties
        order / expense: Source records
    """

    # ==========================================================================
    # Classification
    # ==========================================================================

    type = models.CharField(max_length=6, choices=TransactionType.choices)
    kind = models.CharField(
        max_length=32,
        choices=TransactionKind.choices,
        db_index=True,
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.BigIntegerField()
    currency = models.CharField(max_length=3)
    amount_in_host_currency = models.BigIntegerField()
    host_currency = models.CharField(max_length=3)
    host_currency_fx_rate = models.FloatField(default=1.0)
    net_amount_in_collective_currency = models.BigIntegerField()

    host_fee_in_host_currency = models.BigIntegerField(default=0)
    platform_fee_in_host_currency = models.BigIntegerField(default=0)
    payment_processor_fee_in_host_currency = models.BigIntegerField(default=0)
    tax_amount = models.BigIntegerField(default=0)

    # ==========================================================================
    # Flags
    # ==========================================================================

    is_debt = models.BooleanField(default=False)
    is_refund = models.BooleanField(default=False)
    is_disputed = models.BooleanField(default=False)
    is_internal = models.BooleanField(default=False)

    refund_transaction = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    # ==========================================================================
    # Relationships
    # ==========================================================================

    transaction_group = models.UUIDField(db_index=True)

    collective = models.ForeignKey(
        "accounts.Collective",
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    from_collective = models.ForeignKey(
        "accounts.Collective",
        on_delete=models.PROTECT,
        related_name="outgoing_transactions",
    )
    host = models.ForeignKey(
        "accounts.Collective",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="host_transactions",
    )
    order = models.ForeignKey(
        "ledger.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    expense = models.ForeignKey(
        "ledger.Expense",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )

    description = models.CharField(max_length=255, blank=True, default="")
    data = models.JSONField(default=dict, blank=True)

    # Settable: imported and backdated rows keep their own event time
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["transaction_group", "collective"]),
            models.Index(fields=["collective", "created_at"]),
            models.Index(fields=["host", "created_at"]),
            models.Index(fields=["kind", "is_debt"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(type=TransactionType.CREDIT, amount__gte=0)
                    | models.Q(type=TransactionType.DEBIT, amount__lte=0)
                ),
                name="ledger_transaction_amount_sign_matches_type",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"{self.type} {self.kind} {self.amount} {self.currency} "
            f"(collective={self.collective_id}, group={self.transaction_group})"
        )

    @property
    def is_credit(self) -> bool:
        return self.type == TransactionType.CREDIT
