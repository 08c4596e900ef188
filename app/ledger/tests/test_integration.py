"""
End-to-end ledger tests.

A month of activity for one host is recorded through the ledger writer,
settled by the monthly run and paid, checking balances along the way.
"""

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.db.models import Sum

from accounts.tests.factories import CollectiveFactory
from ledger.models import Expense, Transaction, TransactionSettlement
from ledger.services.settlement import mark_settlement_expense_paid, run_host_settlement
from ledger.state_machines import ExpenseStatus, TransactionKind, TransactionSettlementStatus
from ledger.types import FeeSchedule, SettlementOptions, TransactionDraft


def september(day):
    return datetime(2026, 9, day, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def month_of_activity(writer, host, collective, contributor):
    host.plan.host_fee_share_percent = Decimal("10")
    host.plan.save()

    def contribution(amount, tip, day):
        return writer.record_economic_event(
            TransactionDraft(
                kind=TransactionKind.CONTRIBUTION,
                amount=amount,
                currency="USD",
                from_collective_id=contributor.id,
                collective_id=collective.id,
                fees=FeeSchedule(platform_tip=tip),
                created_at=september(day),
            )
        )

    kept = contribution(50000, 2000, 3)
    refunded = contribution(10000, 1000, 10)
    writer.refund_transaction_group(refunded)
    writer.record_economic_event(
        TransactionDraft(
            kind=TransactionKind.EXPENSE,
            amount=5000,
            currency="USD",
            from_collective_id=CollectiveFactory().id,
            collective_id=collective.id,
            description="Venue rental",
            created_at=september(25),
        )
    )
    return {"kept": kept, "refunded": refunded}


class TestMonthlyCycle:
    def test_ledger_stays_balanced(self, month_of_activity):
        total = Transaction.objects.aggregate(total=Sum("net_amount_in_collective_currency"))

        assert total["total"] == 0

    def test_balances_after_the_month(self, month_of_activity, balances, host, collective, platform):
        # 500.00 - 50.00 host fee - 50.00 expense; the refunded contribution nets out
        assert balances.get_balance(collective.id).value == 40000
        # 50.00 host fee - 5.00 shared + 25.00 owed to the platform
        assert balances.get_balance(host.id).value == 7000
        # Platform revenue is offset by the debts until the host pays
        assert balances.get_balance(platform.id).value == 0

    def test_settle_and_pay(
        self, month_of_activity, converter, host, platform_payout_method, mock_redis, media_root
    ):
        stats = run_host_settlement(
            SettlementOptions(base_date=datetime(2026, 10, 1, tzinfo=dt_timezone.utc)),
            converter=converter,
        )

        assert stats["expenses_created"] == 1
        expense = Expense.objects.get(collective=host, settlement_period="2026-09")
        assert expense.amount == 2500
        assert len(expense.data["transaction_ids"]) == 2

        refunded = TransactionSettlement.objects.filter(transaction_group=month_of_activity["refunded"])
        assert {s.status for s in refunded} == {TransactionSettlementStatus.SETTLED}
        assert {s.expense_id for s in refunded} == {None}

        expense.approve()
        expense.save()
        mark_settlement_expense_paid(expense)

        assert Expense.objects.get(pk=expense.pk).status == ExpenseStatus.PAID
        kept = TransactionSettlement.objects.filter(transaction_group=month_of_activity["kept"])
        assert {s.status for s in kept} == {TransactionSettlementStatus.SETTLED}
        assert {s.expense_id for s in kept} == {expense.id}
