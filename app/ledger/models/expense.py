"""
Expense models: requests for a collective's money to be paid out.

The settlement run creates SETTLEMENT expenses billed by the platform to a
host, with one ExpenseItem per category and a CSV of the underlying debt
rows attached as an ExpenseAttachedFile.

Usage:
    from ledger.models import Expense

    Expense.objects.filter(
        type=ExpenseType.SETTLEMENT,
        collective=host,
        settlement_period="2026-09",
    )
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel

from ledger.state_machines import ExpenseStatus, ExpenseType


class Expense(BaseModel):
    """
    A payment request against a collective's balance.

    State Flow:
        DRAFT -> PENDING -> APPROVED -> SCHEDULED_FOR_PAYMENT -> PROCESSING -> PAID
        PENDING -> REJECTED
        PROCESSING -> ERROR

    Fields:
        collective: Collective paying the expense (the host for settlements)
        from_collective: Payee (the platform for settlements)
        amount: Sum of item amounts, minor units of `currency`
        currency: ISO 4217 code
        description: Human readable title
        type: ExpenseType
        status: Current FSM state
        payout_method: Where the payee gets paid
        settlement_period: Billing period tag ("YYYY-MM") on settlement expenses
        data: JSON (transaction_ids for settlements)
        incurred_at: Date the expense applies to
    """

    collective = models.ForeignKey(
        "accounts.Collective",
        on_delete=models.PROTECT,
        related_name="expenses",
    )
    from_collective = models.ForeignKey(
        "accounts.Collective",
        on_delete=models.PROTECT,
        related_name="submitted_expenses",
    )

    amount = models.BigIntegerField()
    currency = models.CharField(max_length=3)
    description = models.CharField(max_length=255)
    type = models.CharField(
        max_length=20,
        choices=ExpenseType.choices,
        default=ExpenseType.INVOICE,
        db_index=True,
    )
    status = FSMField(
        default=ExpenseStatus.PENDING,
        choices=ExpenseStatus.choices,
        db_index=True,
    )
    payout_method = models.ForeignKey(
        "accounts.PayoutMethod",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="expenses",
    )
    settlement_period = models.CharField(
        max_length=7,
        blank=True,
        default="",
        db_index=True,
        help_text="Billing period (YYYY-MM) of settlement expenses",
    )
    data = models.JSONField(default=dict, blank=True)
    incurred_at = models.DateTimeField(default=timezone.now)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["collective", "type", "settlement_period"]),
        ]

    def __str__(self) -> str:
        return f"Expense({self.pk}, {self.type}, {self.amount} {self.currency}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=ExpenseStatus.DRAFT, target=ExpenseStatus.PENDING)
    def submit(self) -> None:
        pass

    @transition(field=status, source=ExpenseStatus.PENDING, target=ExpenseStatus.APPROVED)
    def approve(self) -> None:
        pass

    @transition(
        field=status,
        source=[ExpenseStatus.PENDING, ExpenseStatus.APPROVED],
        target=ExpenseStatus.REJECTED,
    )
    def reject(self) -> None:
        pass

    @transition(
        field=status,
        source=ExpenseStatus.APPROVED,
        target=ExpenseStatus.SCHEDULED_FOR_PAYMENT,
    )
    def schedule_for_payment(self) -> None:
        pass

    @transition(
        field=status,
        source=[ExpenseStatus.APPROVED, ExpenseStatus.SCHEDULED_FOR_PAYMENT],
        target=ExpenseStatus.PROCESSING,
    )
    def process(self) -> None:
        pass

    @transition(
        field=status,
        source=[
            ExpenseStatus.APPROVED,
            ExpenseStatus.SCHEDULED_FOR_PAYMENT,
            ExpenseStatus.PROCESSING,
        ],
        target=ExpenseStatus.PAID,
    )
    def mark_paid(self) -> None:
        """
        Transition: APPROVED/SCHEDULED_FOR_PAYMENT/PROCESSING -> PAID

        Settlement expenses also settle their debts; see
        ledger.services.settlement.mark_settlement_expense_paid().
        """
        self.paid_at = timezone.now()

    @transition(field=status, source=ExpenseStatus.PROCESSING, target=ExpenseStatus.ERROR)
    def fail(self) -> None:
        pass

    @property
    def is_settlement(self) -> bool:
        return self.type == ExpenseType.SETTLEMENT


class ExpenseItem(BaseModel):
    """One line of an expense."""

    expense = models.ForeignKey(Expense, on_delete=models.CASCADE, related_name="items")
    amount = models.BigIntegerField()
    currency = models.CharField(max_length=3)
    description = models.CharField(max_length=255)
    incurred_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.description}: {self.amount} {self.currency}"


def settlement_upload_path(instance: ExpenseAttachedFile, filename: str) -> str:
    """settlements/<YYYY-MM>/<filename>, or settlements/<filename> without a period."""
    period = instance.expense.settlement_period if instance.expense_id else ""
    if period:
        return f"settlements/{period}/{filename}"
    return f"settlements/{filename}"


class ExpenseAttachedFile(BaseModel):
    """File attached to an expense (CSV of settled transactions)."""

    expense = models.ForeignKey(
        Expense,
        on_delete=models.CASCADE,
        related_name="attached_files",
    )
    file = models.FileField(upload_to=settlement_upload_path)

    def __str__(self) -> str:
        return self.file.name
