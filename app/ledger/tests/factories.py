"""
Factory Boy factories for ledger test data.

TransactionFactory writes a single raw row and is meant for legacy data
and read-side tests; balanced groups should be written through
LedgerWriter.record_economic_event().

Usage:
    from ledger.tests.factories import TransactionFactory, create_transaction_pair

    row = TransactionFactory(collective=collective, amount=5000)
    credit, debit = create_transaction_pair(collective, contributor, 5000)
"""

import uuid

import factory
from django.utils import timezone

from accounts.tests.factories import CollectiveFactory
from ledger.models import (
    CurrencyExchangeRate,
    Expense,
    Order,
    Transaction,
    TransactionSettlement,
)
from ledger.state_machines import (
    ExpenseStatus,
    ExpenseType,
    OrderStatus,
    TransactionKind,
    TransactionType,
)


class TransactionFactory(factory.django.DjangoModelFactory):
    """A CREDIT contribution row in USD with no fees."""

    class Meta:
        model = Transaction
        skip_postgeneration_save = True

    type = TransactionType.CREDIT
    kind = TransactionKind.CONTRIBUTION
    amount = 1000
    currency = "USD"
    amount_in_host_currency = factory.LazyAttribute(lambda o: o.amount)
    host_currency = "USD"
    host_currency_fx_rate = 1.0
    net_amount_in_collective_currency = factory.LazyAttribute(lambda o: o.amount)
    transaction_group = factory.LazyFunction(uuid.uuid4)
    collective = factory.SubFactory(CollectiveFactory)
    from_collective = factory.SubFactory(CollectiveFactory)
    created_at = factory.LazyFunction(timezone.now)


def create_transaction_pair(credited, debited, amount, **kwargs):
    """Write a mirrored CREDIT/DEBIT pair (CREDIT `credited` +amount)."""
    group = kwargs.pop("transaction_group", None) or uuid.uuid4()
    credit = TransactionFactory(
        type=TransactionType.CREDIT,
        collective=credited,
        from_collective=debited,
        amount=amount,
        transaction_group=group,
        **kwargs,
    )
    debit = TransactionFactory(
        type=TransactionType.DEBIT,
        collective=debited,
        from_collective=credited,
        amount=-amount,
        transaction_group=group,
        **kwargs,
    )
    return credit, debit


class TransactionSettlementFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = TransactionSettlement
        skip_postgeneration_save = True

    transaction_group = factory.LazyFunction(uuid.uuid4)
    kind = TransactionKind.PLATFORM_TIP_DEBT


class ExpenseFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Expense
        skip_postgeneration_save = True

    collective = factory.SubFactory(CollectiveFactory)
    from_collective = factory.SubFactory(CollectiveFactory)
    amount = 1000
    currency = "USD"
    description = factory.Sequence(lambda n: f"Expense {n}")
    type = ExpenseType.INVOICE
    status = ExpenseStatus.PENDING


class OrderFactory(factory.django.DjangoModelFactory):
    """An active monthly order."""

    class Meta:
        model = Order
        skip_postgeneration_save = True

    from_collective = factory.SubFactory(CollectiveFactory)
    collective = factory.SubFactory(CollectiveFactory)
    total_amount = 1000
    currency = "USD"
    status = OrderStatus.ACTIVE
    interval = "month"
    is_active = True


class CurrencyExchangeRateFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CurrencyExchangeRate
        skip_postgeneration_save = True

    from_currency = "EUR"
    to_currency = "USD"
    rate = 1.1
