"""
TransactionSettlement model: invoicing status of a debt transaction group.

One row per (transaction_group, kind) for every debt the host owes the
platform (platform tips collected by the host, host fee share). The
settlement run moves rows OWED -> INVOICED when it bills them; payment
of the settlement expense moves them INVOICED -> SETTLED.

Usage:
    from ledger.models import TransactionSettlement

    settlement = TransactionSettlement.objects.get(
        transaction_group=group, kind=TransactionKind.PLATFORM_TIP_DEBT
    )
    settlement.mark_invoiced(expense)
    settlement.save()

    # Batch invoicing (guarded on status=OWED)
    TransactionSettlement.mark_transactions_as_invoiced(transactions, expense)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel

from ledger.exceptions import LedgerIntegrityError
from ledger.state_machines import DEBT_KINDS, TransactionKind, TransactionSettlementStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ledger.models.expense import Expense
    from ledger.models.transaction import Transaction

logger = logging.getLogger(__name__)


class TransactionSettlement(BaseModel):
    """
    Settlement status for one debt kind of one transaction group.

    State Flow:
        OWED -> INVOICED -> SETTLED
        OWED -> SETTLED (debt cancelled by a refund)

    Fields:
        transaction_group: Group of the debt rows
        kind: PLATFORM_TIP_DEBT or HOST_FEE_SHARE_DEBT
        status: Current FSM state (protected, transitions only)
        expense: Settlement expense that invoiced the debt
    """

    transaction_group = models.UUIDField(db_index=True)
    kind = models.CharField(max_length=32, choices=TransactionKind.choices)

    status = FSMField(
        default=TransactionSettlementStatus.OWED,
        choices=TransactionSettlementStatus.choices,
        db_index=True,
        protected=True,
        help_text="Settlement status (managed by FSM)",
    )

    expense = models.ForeignKey(
        "ledger.Expense",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transaction_settlements",
    )

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["transaction_group", "kind"],
                name="ledger_settlement_unique_group_kind",
            ),
        ]

    def __str__(self) -> str:
        return f"TransactionSettlement({self.transaction_group}, {self.kind}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=TransactionSettlementStatus.OWED,
        target=TransactionSettlementStatus.INVOICED,
    )
    def mark_invoiced(self, expense: Expense) -> None:
        """
        Attach the debt to a settlement expense.

        Transition: OWED -> INVOICED
        """
        self.expense = expense

    @transition(
        field=status,
        source=TransactionSettlementStatus.INVOICED,
        target=TransactionSettlementStatus.SETTLED,
    )
    def mark_settled(self) -> None:
        """
        Transition: INVOICED -> SETTLED

        Called once the settlement expense has been paid.
        """

    @transition(
        field=status,
        source=TransactionSettlementStatus.OWED,
        target=TransactionSettlementStatus.SETTLED,
    )
    def cancel(self) -> None:
        """
        Transition: OWED -> SETTLED

        The debt was reversed by a refund; nothing is left to invoice.
        """

    @property
    def is_owed(self) -> bool:
        return self.status == TransactionSettlementStatus.OWED

    # ==========================================================================
    # Batch operations
    # ==========================================================================

    @classmethod
    def mark_transactions_as_invoiced(
        cls,
        transactions: Iterable[Transaction],
        expense: Expense,
    ) -> int:
        """
        Flip the settlements of the given debt rows from OWED to INVOICED.

        The update is guarded on status=OWED. If fewer rows move than were
        requested, another process invoiced some of them first and the
        caller's database transaction must roll back.

        Returns:
            Number of settlements updated

        Raises:
            LedgerIntegrityError: If any requested settlement was not OWED
        """
        keys = {(t.transaction_group, t.kind) for t in transactions if t.kind in DEBT_KINDS}
        if not keys:
            return 0

        condition = models.Q()
        for group, kind in keys:
            condition |= models.Q(transaction_group=group, kind=kind)

        # Bulk update bypasses the protected FSM field
        updated = cls.objects.filter(condition, status=TransactionSettlementStatus.OWED).update(
            status=TransactionSettlementStatus.INVOICED,
            expense=expense,
        )

        if updated != len(keys):
            logger.error(
                "Settlement invoicing count mismatch",
                extra={
                    "expense_id": expense.pk,
                    "expected": len(keys),
                    "updated": updated,
                },
            )
            raise LedgerIntegrityError(
                f"Expected to invoice {len(keys)} settlements, updated {updated}",
                details={"expense_id": expense.pk, "expected": len(keys), "updated": updated},
            )
        return updated

    @classmethod
    def mark_expense_settlements_as_settled(cls, expense: Expense) -> int:
        """Move every settlement invoiced by `expense` to SETTLED."""
        return cls.objects.filter(
            expense=expense,
            status=TransactionSettlementStatus.INVOICED,
        ).update(status=TransactionSettlementStatus.SETTLED)
