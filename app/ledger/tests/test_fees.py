"""
Tests for fee resolution from legacy fields and sibling fee rows.
"""

import uuid
from decimal import Decimal

import pytest

from accounts.tests.factories import CollectiveFactory
from ledger.exceptions import FeeInconsistencyError, LedgerError
from ledger.models import Transaction
from ledger.services.fees import FeeResolver, can_have_fees, resolve_fees
from ledger.state_machines import TransactionKind, TransactionType
from ledger.tests.factories import TransactionFactory, create_transaction_pair
from ledger.types import FeeSchedule, TransactionDraft


@pytest.fixture
def primary(collective):
    return TransactionFactory(collective=collective, amount=10000)


def add_fee_rows(primary, recipient, kind, amount):
    return create_transaction_pair(
        recipient,
        primary.collective,
        amount,
        kind=kind,
        transaction_group=primary.transaction_group,
    )


class TestCanHaveFees:
    @pytest.mark.parametrize(
        "kind,expected",
        [
            (TransactionKind.CONTRIBUTION, True),
            (TransactionKind.ADDED_FUNDS, True),
            (TransactionKind.EXPENSE, False),
            (TransactionKind.HOST_FEE, False),
            (TransactionKind.PLATFORM_TIP_DEBT, False),
        ],
    )
    def test_known_kinds(self, kind, expected):
        assert can_have_fees(Transaction(kind=kind)) is expected

    def test_unknown_kind(self):
        with pytest.raises(LedgerError) as exc_info:
            can_have_fees(Transaction(kind="GIFT_CARD"))

        assert exc_info.value.error_code == "UNKNOWN_TRANSACTION_KIND"


@pytest.mark.django_db
class TestResolveFees:
    def test_legacy_field_only(self, collective):
        legacy = TransactionFactory(collective=collective, host_fee_in_host_currency=-500)

        assert resolve_fees([legacy], TransactionKind.HOST_FEE) == [-500]

    def test_no_fee_at_all(self, primary):
        assert resolve_fees([primary], TransactionKind.HOST_FEE) == [0]

    def test_sibling_row_only(self, primary, host):
        add_fee_rows(primary, host, TransactionKind.HOST_FEE, 1000)

        assert resolve_fees([primary], TransactionKind.HOST_FEE) == [-1000]

    def test_legacy_and_sibling_agree(self, collective, host):
        primary = TransactionFactory(collective=collective, host_fee_in_host_currency=-1000)
        add_fee_rows(primary, host, TransactionKind.HOST_FEE, 1000)

        assert resolve_fees([primary], TransactionKind.HOST_FEE) == [-1000]

    def test_legacy_and_sibling_disagree(self, collective, host):
        primary = TransactionFactory(collective=collective, host_fee_in_host_currency=-900)
        add_fee_rows(primary, host, TransactionKind.HOST_FEE, 1000)

        with pytest.raises(FeeInconsistencyError):
            resolve_fees([primary], TransactionKind.HOST_FEE)

    def test_tax_sibling_uses_amount(self, primary, host):
        add_fee_rows(primary, host, TransactionKind.TAX, 2000)

        assert resolve_fees([primary], TransactionKind.TAX) == [-2000]

    def test_kind_without_fees_ignores_siblings(self, collective, host):
        expense = TransactionFactory(
            collective=collective,
            type=TransactionType.DEBIT,
            kind=TransactionKind.EXPENSE,
            amount=-3000,
        )
        add_fee_rows(expense, host, TransactionKind.PAYMENT_PROCESSOR_FEE, 100)

        assert resolve_fees([expense], TransactionKind.PAYMENT_PROCESSOR_FEE) == [0]

    def test_invalid_fee_kind(self, primary):
        with pytest.raises(LedgerError) as exc_info:
            resolve_fees([primary], TransactionKind.PLATFORM_FEE)

        assert exc_info.value.error_code == "INVALID_FEE_KIND"

    def test_results_follow_input_order(self, collective, host):
        first = TransactionFactory(collective=collective)
        second = TransactionFactory(collective=collective, host_fee_in_host_currency=-50)
        add_fee_rows(first, host, TransactionKind.HOST_FEE, 100)

        assert resolve_fees([second, first], TransactionKind.HOST_FEE) == [-50, -100]


@pytest.mark.django_db
class TestFeeResolverBatching:
    def test_one_query_per_fee_kind(self, collective, host, django_assert_num_queries):
        primaries = [TransactionFactory(collective=collective) for _ in range(3)]
        for primary in primaries:
            add_fee_rows(primary, host, TransactionKind.HOST_FEE, 100)
        resolver = FeeResolver()

        with django_assert_num_queries(1):
            assert resolver.resolve_fees(primaries, TransactionKind.HOST_FEE) == [-100] * 3

        with django_assert_num_queries(0):
            resolver.resolve_fees(primaries, TransactionKind.HOST_FEE)

    def test_fees_written_by_ledger_writer(self, writer, collective, contributor):
        group = writer.record_economic_event(
            TransactionDraft(
                kind=TransactionKind.CONTRIBUTION,
                amount=10000,
                currency="USD",
                from_collective_id=contributor.id,
                collective_id=collective.id,
                fees=FeeSchedule(payment_processor_fee=320, tax_percent=Decimal("5")),
            )
        )
        primary = Transaction.objects.get(
            transaction_group=group,
            kind=TransactionKind.CONTRIBUTION,
            type=TransactionType.CREDIT,
        )
        resolver = FeeResolver()

        assert resolver.resolve_fees([primary], TransactionKind.HOST_FEE) == [-1000]
        assert resolver.resolve_fees([primary], TransactionKind.PAYMENT_PROCESSOR_FEE) == [-320]
        assert resolver.resolve_fees([primary], TransactionKind.TAX) == [-500]

    def test_unrelated_group_is_not_a_sibling(self, primary, host):
        create_transaction_pair(
            host,
            primary.collective,
            700,
            kind=TransactionKind.HOST_FEE,
            transaction_group=uuid.uuid4(),
        )

        assert resolve_fees([primary], TransactionKind.HOST_FEE) == [0]
