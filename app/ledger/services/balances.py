"""
Balance and aggregation queries over the ledger.

Every query sums per (account, currency) in the database, then converts
each partial sum once to the account's display currency. Results are
dicts keyed by collective id; accounts with no matching rows get a zero
amount.

Usage:
    from ledger.services.balances import BalanceService
    from ledger.types import AggregationOptions

    service = BalanceService()
    balances = service.get_balances([collective.id])
    gross = service.get_balances([collective.id], AggregationOptions(net=False))
    with_children = service.get_balances(
        [collective.id], AggregationOptions(include_children=True)
    )
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.db.models import Case, Count, F, IntegerField, Q, Sum, When
from django.utils import timezone

from accounts.models import Collective
from core.exceptions import ValidationError
from ledger.exceptions import CollectiveNotFound
from ledger.models import Expense, Order, Transaction
from ledger.services.currency import CurrencyConverter
from ledger.state_machines import (
    FEE_KINDS,
    ExpenseStatus,
    OrderInterval,
    OrderStatus,
    TransactionKind,
    TransactionType,
)
from ledger.types import AggregationOptions, Amount

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from django.db.models import QuerySet

logger = logging.getLogger(__name__)

CONTRIBUTION_KINDS = [TransactionKind.CONTRIBUTION, TransactionKind.ADDED_FUNDS]

# Expense statuses whose amount is already committed
BLOCKING_EXPENSE_STATUSES = [ExpenseStatus.PROCESSING, ExpenseStatus.SCHEDULED_FOR_PAYMENT]


class BalanceService:
    """
    Read-side aggregation engine.

    Holds a CurrencyConverter for the lifetime of the service; pass one in
    to share rates with other components of the same run.
    """

    def __init__(self, converter: CurrencyConverter | None = None) -> None:
        self.converter = converter or CurrencyConverter()

    # ==========================================================================
    # Query building
    # ==========================================================================

    @staticmethod
    def _scoped_queryset(
        collective_ids: Sequence[int],
        options: AggregationOptions,
    ) -> QuerySet:
        """
        Live rows of the given accounts, annotated with `account_id`.

        With include_children, rows of EVENT/PROJECT children are attributed
        to their parent and transfers inside the family are dropped.
        """
        ids = list(collective_ids)
        queryset = Transaction.objects.all()

        if options.include_children:
            queryset = queryset.filter(
                Q(collective_id__in=ids) | Q(collective__parent_id__in=ids)
            ).annotate(
                account_id=Case(
                    When(collective_id__in=ids, then=F("collective_id")),
                    default=F("collective__parent_id"),
                    output_field=IntegerField(),
                )
            )
        else:
            queryset = queryset.filter(collective_id__in=ids).annotate(
                account_id=F("collective_id")
            )

        if options.include_children or options.exclude_internals:
            queryset = (
                queryset.exclude(from_collective__parent_id=F("collective_id"))
                .exclude(collective__parent_id=F("from_collective_id"))
                .exclude(
                    collective__parent_id__isnull=False,
                    collective__parent_id=F("from_collective__parent_id"),
                )
            )
        if options.exclude_internals:
            queryset = queryset.exclude(is_internal=True)

        if options.start_date is not None:
            queryset = queryset.filter(created_at__gte=options.start_date)
        if options.end_date is not None:
            queryset = queryset.filter(created_at__lt=options.end_date)
        if options.kinds:
            queryset = queryset.filter(kind__in=options.kinds)
        if options.exclude_refunds:
            queryset = queryset.filter(is_refund=False, refund_transaction__isnull=True)

        return queryset

    def _display_currencies(
        self,
        collective_ids: Sequence[int],
        currency: str | None,
    ) -> dict[int, str]:
        found = dict(
            Collective.objects.filter(id__in=collective_ids).values_list("id", "currency")
        )
        missing = [cid for cid in collective_ids if cid not in found]
        if missing:
            raise CollectiveNotFound(
                f"Collectives not found: {missing}",
                details={"collective_ids": missing},
            )
        if currency:
            currency = self.converter.validate_currency(currency)
            return {cid: currency for cid in collective_ids}
        return {cid: found[cid] for cid in collective_ids}

    def _convert_totals(
        self,
        collective_ids: Sequence[int],
        rows: Iterable[dict[str, Any]],
        currency: str | None = None,
        as_of=None,
        sign: int = 1,
    ) -> dict[int, Amount]:
        """Convert (account_id, currency, total) rows into one Amount per account."""
        display = self._display_currencies(collective_ids, currency)
        rows = [row for row in rows if row["total"]]

        self.converter.load_rates(
            (row["currency"], display[row["account_id"]], as_of) for row in rows
        )

        results = {cid: Amount(0, display[cid]) for cid in collective_ids}
        for row in rows:
            account_id = row["account_id"]
            value = self.converter.convert(
                row["total"], row["currency"], display[account_id], as_of=as_of
            )
            results[account_id] = Amount(
                results[account_id].value + sign * value, display[account_id]
            )
        return results

    @staticmethod
    def _sum_by_account(queryset: QuerySet, field: str) -> list[dict[str, Any]]:
        return list(
            queryset.values("account_id", "currency")
            .annotate(total=Sum(field))
            .order_by()
        )

    # ==========================================================================
    # Balances
    # ==========================================================================

    def get_balances(
        self,
        collective_ids: Sequence[int],
        options: AggregationOptions | None = None,
    ) -> dict[int, Amount]:
        """
        Balance of each collective.

        With `net=True` (default) every live row counts at its net amount.
        With `net=False` fee rows are ignored and gross amounts are summed.

        Raises:
            ValidationError: with_blocked_funds combined with a date window
            CollectiveNotFound: Unknown collective id
        """
        options = options or AggregationOptions()
        if options.with_blocked_funds and (options.start_date or options.end_date):
            raise ValidationError(
                "Blocked funds cannot be combined with a date range",
                error_code="BLOCKED_FUNDS_WITH_DATES",
                details={"collective_ids": list(collective_ids)},
            )

        queryset = self._scoped_queryset(collective_ids, options)
        if options.net:
            field = "net_amount_in_collective_currency"
        else:
            field = "amount"
            queryset = queryset.exclude(kind__in=FEE_KINDS)

        balances = self._convert_totals(
            collective_ids,
            self._sum_by_account(queryset, field),
            currency=options.currency,
            as_of=options.end_date,
        )

        if options.with_blocked_funds:
            blocked = self.get_blocked_funds(collective_ids, currency=options.currency)
            balances = {cid: balances[cid] - blocked[cid] for cid in collective_ids}

        return balances

    def get_balance(
        self,
        collective_id: int,
        options: AggregationOptions | None = None,
    ) -> Amount:
        return self.get_balances([collective_id], options)[collective_id]

    # ==========================================================================
    # Windowed sums
    # ==========================================================================

    def get_sum_amount_received(
        self,
        collective_ids: Sequence[int],
        options: AggregationOptions | None = None,
    ) -> dict[int, Amount]:
        """
        Money received: CREDIT rows, net of the fees taken on them when `net`.
        """
        options = options or AggregationOptions()
        queryset = self._scoped_queryset(collective_ids, options)

        if options.net:
            queryset = queryset.filter(
                Q(type=TransactionType.CREDIT)
                | Q(type=TransactionType.DEBIT, kind__in=FEE_KINDS)
            )
            field = "net_amount_in_collective_currency"
        else:
            queryset = queryset.filter(type=TransactionType.CREDIT)
            field = "amount"

        return self._convert_totals(
            collective_ids,
            self._sum_by_account(queryset, field),
            currency=options.currency,
            as_of=options.end_date,
        )

    def get_sum_amount_spent(
        self,
        collective_ids: Sequence[int],
        options: AggregationOptions | None = None,
    ) -> dict[int, Amount]:
        """Money spent: DEBIT rows except fees, as a positive amount."""
        options = options or AggregationOptions()
        queryset = (
            self._scoped_queryset(collective_ids, options)
            .filter(type=TransactionType.DEBIT)
            .exclude(kind__in=FEE_KINDS)
        )
        field = "net_amount_in_collective_currency" if options.net else "amount"

        return self._convert_totals(
            collective_ids,
            self._sum_by_account(queryset, field),
            currency=options.currency,
            as_of=options.end_date,
            sign=-1,
        )

    def get_contributions_and_contributors_count(
        self,
        collective_ids: Sequence[int],
        options: AggregationOptions | None = None,
    ) -> dict[int, dict[str, int]]:
        """
        Number of contributions and distinct contributors per collective.

        Refunded contributions and refunds are never counted.
        """
        options = options or AggregationOptions()
        queryset = (
            self._scoped_queryset(collective_ids, options)
            .filter(
                type=TransactionType.CREDIT,
                kind__in=CONTRIBUTION_KINDS,
                is_refund=False,
                refund_transaction__isnull=True,
            )
            .values("account_id")
            .annotate(
                contributions=Count("id"),
                contributors=Count("from_collective_id", distinct=True),
            )
            .order_by()
        )

        results = {cid: {"contributions": 0, "contributors": 0} for cid in collective_ids}
        for row in queryset:
            results[row["account_id"]] = {
                "contributions": row["contributions"],
                "contributors": row["contributors"],
            }
        return results

    # ==========================================================================
    # Budgets and committed funds
    # ==========================================================================

    def get_yearly_budgets(self, collective_ids: Sequence[int]) -> dict[int, Amount]:
        """
        Expected income over a year.

        Active monthly orders count twelve times, active yearly orders once,
        and money received over the last twelve months from one-time or
        stopped orders counts as is.
        """
        ids = list(collective_ids)
        totals: dict[tuple[int, str], int] = defaultdict(int)

        recurring = (
            Order.objects.filter(
                collective_id__in=ids,
                is_active=True,
                status=OrderStatus.ACTIVE,
                interval__in=[OrderInterval.MONTH, OrderInterval.YEAR],
            )
            .values("collective_id", "currency", "interval")
            .annotate(total=Sum("total_amount"))
            .order_by()
        )
        for row in recurring:
            multiplier = 12 if row["interval"] == OrderInterval.MONTH else 1
            totals[(row["collective_id"], row["currency"])] += row["total"] * multiplier

        one_time = (
            Transaction.objects.filter(
                collective_id__in=ids,
                type=TransactionType.CREDIT,
                kind__in=CONTRIBUTION_KINDS,
                is_refund=False,
                refund_transaction__isnull=True,
                created_at__gte=timezone.now() - timedelta(days=365),
            )
            .filter(Q(order__interval__isnull=True) | Q(order__is_active=False))
            .values("collective_id", "currency")
            .annotate(total=Sum("amount"))
            .order_by()
        )
        for row in one_time:
            totals[(row["collective_id"], row["currency"])] += row["total"]

        rows = [
            {"account_id": cid, "currency": currency, "total": total}
            for (cid, currency), total in totals.items()
        ]
        return self._convert_totals(ids, rows)

    def get_blocked_funds(
        self,
        collective_ids: Sequence[int],
        currency: str | None = None,
    ) -> dict[int, Amount]:
        """
        Funds that cannot be spent: expenses being paid out and disputed
        contributions that were not refunded yet.
        """
        ids = list(collective_ids)
        rows = [
            {"account_id": row["collective_id"], "currency": row["currency"], "total": row["total"]}
            for row in Expense.objects.filter(
                collective_id__in=ids,
                status__in=BLOCKING_EXPENSE_STATUSES,
            )
            .values("collective_id", "currency")
            .annotate(total=Sum("amount"))
            .order_by()
        ]
        rows += [
            {"account_id": row["collective_id"], "currency": row["currency"], "total": row["total"]}
            for row in Transaction.objects.filter(
                collective_id__in=ids,
                type=TransactionType.CREDIT,
                kind=TransactionKind.CONTRIBUTION,
                is_disputed=True,
                refund_transaction__isnull=True,
            )
            .values("collective_id", "currency")
            .annotate(total=Sum("amount"))
            .order_by()
        ]
        return self._convert_totals(ids, rows, currency=currency)

    def get_total_money_managed(self, host_ids: Sequence[int]) -> dict[int, Amount]:
        """Sum of the balances of each host and its hosted collectives, in host currency."""
        hosts = {
            host.id: host
            for host in Collective.objects.filter(id__in=host_ids, is_host_account=True)
        }
        missing = [hid for hid in host_ids if hid not in hosts]
        if missing:
            raise CollectiveNotFound(
                f"Hosts not found: {missing}",
                details={"host_ids": missing},
            )

        results = {}
        for host_id in host_ids:
            host = hosts[host_id]
            ids = [host.id] + list(
                Collective.objects.filter(host=host).exclude(pk=host.pk).values_list("id", flat=True)
            )
            balances = self.get_balances(ids, AggregationOptions(currency=host.currency))
            results[host_id] = Amount(
                sum(amount.value for amount in balances.values()), host.currency
            )
        return results
