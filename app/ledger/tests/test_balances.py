"""
Tests for BalanceService aggregations.
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.utils import timezone

from accounts.models import CollectiveType
from accounts.tests.factories import CollectiveFactory
from core.exceptions import ValidationError
from ledger.exceptions import CollectiveNotFound
from ledger.state_machines import ExpenseStatus, OrderInterval, TransactionKind
from ledger.tests.factories import (
    ExpenseFactory,
    OrderFactory,
    TransactionFactory,
    create_transaction_pair,
)
from ledger.types import AggregationOptions, Amount, FeeSchedule, TransactionDraft


def contribute(writer, collective, contributor, amount=10000, **fees):
    return writer.record_economic_event(
        TransactionDraft(
            kind=TransactionKind.CONTRIBUTION,
            amount=amount,
            currency=collective.currency,
            from_collective_id=contributor.id,
            collective_id=collective.id,
            fees=FeeSchedule(**fees),
        )
    )


def spend(writer, collective, payee, amount):
    return writer.record_economic_event(
        TransactionDraft(
            kind=TransactionKind.EXPENSE,
            amount=amount,
            currency=collective.currency,
            from_collective_id=payee.id,
            collective_id=collective.id,
        )
    )


@pytest.fixture
def event(collective, host):
    return CollectiveFactory(type=CollectiveType.EVENT, parent=collective, host=host)


class TestGetBalances:
    def test_net_and_gross(self, writer, balances, collective, contributor):
        contribute(writer, collective, contributor, platform_fee_percent=Decimal("5"))

        assert balances.get_balances([collective.id]) == {collective.id: Amount(8500, "USD")}
        assert balances.get_balances([collective.id], AggregationOptions(net=False)) == {
            collective.id: Amount(10000, "USD")
        }

    def test_account_without_rows_is_zero(self, balances, collective):
        assert balances.get_balance(collective.id) == Amount(0, "USD")

    def test_unknown_collective(self, balances):
        with pytest.raises(CollectiveNotFound):
            balances.get_balances([999999])

    def test_partial_sums_converted_to_collective_currency(self, balances, host):
        collective = CollectiveFactory(host=host, currency="EUR")
        TransactionFactory(collective=collective, currency="EUR", amount=10000)
        TransactionFactory(collective=collective, currency="USD", amount=1100)

        assert balances.get_balance(collective.id) == Amount(11000, "EUR")

    def test_requested_currency(self, balances, host):
        collective = CollectiveFactory(host=host, currency="EUR")
        TransactionFactory(collective=collective, currency="EUR", amount=10000)

        balance = balances.get_balance(collective.id, AggregationOptions(currency="usd"))

        assert balance == Amount(11000, "USD")

    def test_date_window_is_half_open(self, balances, collective):
        TransactionFactory(collective=collective, amount=100, created_at=datetime(2026, 1, 15, tzinfo=dt_timezone.utc))
        TransactionFactory(collective=collective, amount=200, created_at=datetime(2026, 2, 1, tzinfo=dt_timezone.utc))
        TransactionFactory(collective=collective, amount=400, created_at=datetime(2026, 3, 1, tzinfo=dt_timezone.utc))

        options = AggregationOptions(
            start_date=datetime(2026, 2, 1, tzinfo=dt_timezone.utc),
            end_date=datetime(2026, 3, 1, tzinfo=dt_timezone.utc),
        )

        assert balances.get_balance(collective.id, options).value == 200

    def test_kinds_filter(self, writer, balances, collective, contributor):
        contribute(writer, collective, contributor)

        options = AggregationOptions(kinds=[TransactionKind.HOST_FEE])

        assert balances.get_balance(collective.id, options).value == -1000

    def test_soft_deleted_rows_are_ignored(self, balances, collective):
        TransactionFactory(collective=collective, amount=500)
        TransactionFactory(collective=collective, amount=700).soft_delete()

        assert balances.get_balance(collective.id).value == 500


class TestChildren:
    def test_children_rolled_into_parent(self, balances, collective, event):
        TransactionFactory(collective=collective, amount=1000)
        TransactionFactory(collective=event, amount=2000)

        with_children = AggregationOptions(include_children=True)

        assert balances.get_balance(collective.id).value == 1000
        assert balances.get_balance(collective.id, with_children).value == 3000

    def test_child_in_other_currency_is_converted(self, balances, collective, host):
        eur_event = CollectiveFactory(
            type=CollectiveType.EVENT, parent=collective, host=host, currency="EUR"
        )
        TransactionFactory(collective=collective, currency="USD", amount=1000)
        TransactionFactory(collective=eur_event, currency="EUR", amount=2000)

        with_children = AggregationOptions(include_children=True)

        # 20.00 EUR at 1.1
        assert balances.get_balance(eur_event.id) == Amount(2000, "EUR")
        assert balances.get_balance(collective.id, with_children) == Amount(3200, "USD")

    def test_transfers_inside_family_are_dropped(self, balances, collective, event):
        TransactionFactory(collective=collective, amount=1000)
        TransactionFactory(collective=event, amount=2000)
        create_transaction_pair(event, collective, 500)

        with_children = AggregationOptions(include_children=True)

        assert balances.get_balance(collective.id).value == 500
        assert balances.get_balance(collective.id, with_children).value == 3000

    def test_exclude_internals(self, balances, collective, event):
        TransactionFactory(collective=collective, amount=1000)
        create_transaction_pair(event, collective, 500)
        TransactionFactory(collective=collective, amount=300, is_internal=True)

        options = AggregationOptions(exclude_internals=True)

        assert balances.get_balance(collective.id, options).value == 1000


class TestBlockedFunds:
    def test_in_flight_expenses_and_disputes_are_blocked(self, balances, collective):
        TransactionFactory(collective=collective, amount=1000)
        TransactionFactory(collective=collective, amount=200, is_disputed=True)
        ExpenseFactory(collective=collective, amount=300, status=ExpenseStatus.PROCESSING)
        ExpenseFactory(collective=collective, amount=5000, status=ExpenseStatus.PENDING)

        blocked = balances.get_blocked_funds([collective.id])
        options = AggregationOptions(with_blocked_funds=True)

        assert blocked[collective.id] == Amount(500, "USD")
        assert balances.get_balance(collective.id, options).value == 700

    def test_blocked_funds_reject_date_window(self, balances, collective):
        options = AggregationOptions(with_blocked_funds=True, start_date=timezone.now())

        with pytest.raises(ValidationError) as exc_info:
            balances.get_balances([collective.id], options)

        assert exc_info.value.error_code == "BLOCKED_FUNDS_WITH_DATES"


class TestReceivedAndSpent:
    def test_received_net_and_gross(self, writer, balances, collective, contributor):
        contribute(writer, collective, contributor)

        net = balances.get_sum_amount_received([collective.id])
        gross = balances.get_sum_amount_received([collective.id], AggregationOptions(net=False))

        assert net[collective.id].value == 9000
        assert gross[collective.id].value == 10000

    def test_spent_is_positive_and_excludes_fees(self, writer, balances, collective, contributor):
        contribute(writer, collective, contributor)
        spend(writer, collective, CollectiveFactory(), 4000)

        spent = balances.get_sum_amount_spent([collective.id])

        assert spent[collective.id] == Amount(4000, "USD")


class TestContributionCounts:
    def test_counts_contributions_and_distinct_contributors(
        self, writer, balances, collective, contributor
    ):
        other = CollectiveFactory(type=CollectiveType.USER)
        contribute(writer, collective, contributor, amount=1000)
        contribute(writer, collective, contributor, amount=2000)
        contribute(writer, collective, other, amount=3000)
        refunded = contribute(writer, collective, other, amount=4000)
        writer.refund_transaction_group(refunded)

        counts = balances.get_contributions_and_contributors_count([collective.id])

        assert counts == {collective.id: {"contributions": 3, "contributors": 2}}

    def test_empty(self, balances, collective):
        counts = balances.get_contributions_and_contributors_count([collective.id])

        assert counts[collective.id] == {"contributions": 0, "contributors": 0}


class TestYearlyBudget:
    def test_recurring_and_one_time_income(self, balances, collective):
        OrderFactory(collective=collective, total_amount=1000, interval=OrderInterval.MONTH)
        OrderFactory(collective=collective, total_amount=5000, interval=OrderInterval.YEAR)
        OrderFactory(collective=collective, total_amount=9999, is_active=False)
        TransactionFactory(collective=collective, amount=2000)
        TransactionFactory(
            collective=collective,
            amount=7000,
            created_at=timezone.now() - timedelta(days=400),
        )

        budgets = balances.get_yearly_budgets([collective.id])

        assert budgets[collective.id] == Amount(12000 + 5000 + 2000, "USD")

    def test_contributions_of_active_recurring_order_not_double_counted(
        self, balances, collective
    ):
        order = OrderFactory(collective=collective, total_amount=1000)
        TransactionFactory(collective=collective, amount=1000, order=order)

        assert balances.get_yearly_budgets([collective.id])[collective.id].value == 12000


class TestTotalMoneyManaged:
    def test_host_and_hosted_collectives(self, writer, balances, host, collective, contributor):
        contribute(writer, collective, contributor, platform_fee_percent=Decimal("5"))
        eur_collective = CollectiveFactory(host=host, currency="EUR")
        TransactionFactory(collective=eur_collective, currency="EUR", amount=1000)

        managed = balances.get_total_money_managed([host.id])

        assert managed == {host.id: Amount(8500 + 1000 + 1100, "USD")}

    def test_not_a_host(self, balances, collective):
        with pytest.raises(CollectiveNotFound):
            balances.get_total_money_managed([collective.id])
