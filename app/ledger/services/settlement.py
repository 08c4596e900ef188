"""
Monthly settlement of what hosts owe the platform.

For the billing period (the calendar month before the base date), every
host with owed debt or activity gets one SETTLEMENT expense billed by the
platform. The expense bundles:

- Platform Tips: tips the host collected on the platform's behalf
- Shared Revenue: the platform's share of the host's fees
- Fixed Fee per Hosted Collective: from the host's plan

Creating the expense and flipping the underlying settlements to INVOICED
happen in one database transaction per host, under a per-host lease, so
a debt is invoiced at most once even with concurrent runs.

Usage:
    from ledger.services.settlement import SettlementEngine
    from ledger.types import SettlementOptions

    stats = SettlementEngine(SettlementOptions(dry_run=True)).run()
"""

from __future__ import annotations

import csv
import io
import logging
from collections import defaultdict
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.files.base import ContentFile
from django.db import transaction as db_transaction
from django.db.models import Exists, OuterRef, Q
from django.utils import timezone

from accounts.models import (
    Collective,
    ConnectedAccount,
    ConnectedAccountService,
    PayoutMethod,
    PayoutMethodType,
)
from ledger.exceptions import (
    CollectiveNotFound,
    HostPayoutMethodUnresolved,
    LockAcquisitionError,
    PlatformPayoutMethodMissing,
    SettlementAlreadyExists,
)
from ledger.locks import SettlementLease
from ledger.models import (
    Expense,
    ExpenseAttachedFile,
    ExpenseItem,
    Transaction,
    TransactionSettlement,
)
from ledger.services.currency import CurrencyConverter
from ledger.state_machines import (
    DEBT_KINDS,
    ExpenseStatus,
    ExpenseType,
    TransactionKind,
    TransactionSettlementStatus,
    TransactionType,
)
from ledger.types import BillingPeriod, SettlementOptions

if TYPE_CHECKING:
    from collections.abc import Sequence

    from django.db.models import QuerySet

logger = logging.getLogger(__name__)

ITEM_PLATFORM_TIPS = "Platform Tips"
ITEM_SHARED_REVENUE = "Shared Revenue"
ITEM_FIXED_FEE = "Fixed Fee per Hosted Collective"

# Debt kind billed under each item
DEBT_ITEMS = {
    TransactionKind.PLATFORM_TIP_DEBT: ITEM_PLATFORM_TIPS,
    TransactionKind.HOST_FEE_SHARE_DEBT: ITEM_SHARED_REVENUE,
}

CSV_COLUMNS = ["created_at", "description", "amount", "currency", "order_id", "transaction_group"]

# Outcomes of settling one host
OUTCOME_CREATED = "created"
OUTCOME_DRY_RUN = "dry_run"
OUTCOME_BELOW_THRESHOLD = "below_threshold"
OUTCOME_NOTHING_OWED = "nothing_owed"


def owed_settlement_exists() -> Exists:
    """Exists() over an OWED settlement for the outer transaction row."""
    return Exists(
        TransactionSettlement.objects.filter(
            transaction_group=OuterRef("transaction_group"),
            kind=OuterRef("kind"),
            status=TransactionSettlementStatus.OWED,
        )
    )


def build_settlement_csv(transactions: Sequence[Transaction]) -> str:
    """CSV listing the debt rows billed by a settlement expense."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for t in transactions:
        writer.writerow(
            [
                t.created_at.isoformat(),
                t.description,
                f"{t.amount / 100:.2f}",
                t.currency,
                t.order_id or "",
                str(t.transaction_group),
            ]
        )
    return buffer.getvalue()


class SettlementEngine:
    """
    One settlement run.

    Hosts are processed sequentially. A failure on one host is logged and
    counted; the run continues with the next host. Only a missing platform
    payout method aborts the whole run.
    """

    def __init__(
        self,
        options: SettlementOptions | None = None,
        converter: CurrencyConverter | None = None,
    ) -> None:
        self.options = options or SettlementOptions()
        self.converter = converter or CurrencyConverter()
        self.period = BillingPeriod.previous_month(self.options.base_date or timezone.now())
        self.debt_kinds = [self.options.kind] if self.options.kind else sorted(DEBT_KINDS)
        self.minimum_amount_usd = (
            self.options.minimum_amount_usd
            if self.options.minimum_amount_usd is not None
            else settings.SETTLEMENT_MINIMUM_AMOUNT_USD
        )
        self.stats = {
            "hosts_processed": 0,
            "expenses_created": 0,
            "skipped_below_threshold": 0,
            "skipped_already_invoiced": 0,
            "skipped_locked": 0,
            "failed": 0,
            "dry_run": self.options.dry_run,
        }

    # ==========================================================================
    # Run
    # ==========================================================================

    def run(self) -> dict:
        """
        Settle every eligible host for the billing period.

        Returns:
            Stats dict (hosts_processed, expenses_created,
            skipped_below_threshold, skipped_already_invoiced,
            skipped_locked, failed, dry_run)

        Raises:
            CollectiveNotFound: No platform collective
            PlatformPayoutMethodMissing: The platform cannot be paid at all
        """
        try:
            self.platform = Collective.get_platform()
        except Collective.DoesNotExist:
            raise CollectiveNotFound(
                "Platform collective not found",
                error_code="PLATFORM_NOT_FOUND",
            ) from None

        self.payout_methods = list(
            PayoutMethod.objects.filter(collective=self.platform, is_saved=True).order_by("created_at")
        )
        if not self.payout_methods:
            logger.error(
                "Platform has no payout method, aborting settlement run",
                extra={"platform_id": self.platform.id, "period": self.period.tag},
            )
            raise PlatformPayoutMethodMissing(
                "The platform has no saved payout method",
                details={"platform_id": self.platform.id},
            )

        hosts = list(self.get_hosts())
        logger.info(
            "Starting host settlement run",
            extra={
                "period": self.period.tag,
                "hosts": len(hosts),
                "dry_run": self.options.dry_run,
                "kind": self.options.kind,
                "minimum_amount_usd": self.minimum_amount_usd,
            },
        )

        for host in hosts:
            self.stats["hosts_processed"] += 1
            try:
                if self.options.dry_run:
                    outcome = self.settle_host(host)
                else:
                    with SettlementLease(host.id, self.period.tag):
                        outcome = self.settle_host(host)
            except SettlementAlreadyExists as e:
                self.stats["skipped_already_invoiced"] += 1
                logger.info(
                    "Host already has a settlement for this period, skipping",
                    extra=e.details,
                )
                continue
            except LockAcquisitionError:
                self.stats["skipped_locked"] += 1
                logger.warning(
                    "Host settlement already running elsewhere, skipping",
                    extra={"host_id": host.id, "period": self.period.tag},
                )
                continue
            except Exception as e:
                self.stats["failed"] += 1
                logger.error(
                    f"Error settling host: {e}",
                    extra={"host_id": host.id, "host_slug": host.slug, "period": self.period.tag},
                    exc_info=True,
                )
                continue

            if outcome == OUTCOME_CREATED:
                self.stats["expenses_created"] += 1
            elif outcome == OUTCOME_BELOW_THRESHOLD:
                self.stats["skipped_below_threshold"] += 1

        logger.info("Host settlement run completed", extra={**self.stats, "period": self.period.tag})
        return self.stats

    # ==========================================================================
    # Selection
    # ==========================================================================

    def owed_debt_transactions(self, host_id: int | None = None) -> QuerySet:
        """CREDIT debt rows of hosts still OWED and created before the period end."""
        queryset = Transaction.objects.filter(
            type=TransactionType.CREDIT,
            is_debt=True,
            kind__in=self.debt_kinds,
            created_at__lt=self.period.end,
        ).filter(owed_settlement_exists())
        if host_id is not None:
            queryset = queryset.filter(collective_id=host_id)
        return queryset

    def get_hosts(self) -> QuerySet:
        """Hosts with owed debt, or with transactions during the period."""
        owed = self.owed_debt_transactions().filter(collective_id=OuterRef("pk"))
        active = Transaction.objects.filter(
            host_id=OuterRef("pk"),
            created_at__gte=self.period.start,
            created_at__lt=self.period.end,
        )
        hosts = (
            Collective.objects.filter(is_host_account=True)
            .exclude(pk=self.platform.pk)
            .filter(Q(Exists(owed)) | Q(Exists(active)))
            .select_related("plan")
        )
        if self.options.host_id is not None:
            hosts = hosts.filter(pk=self.options.host_id)
        if self.options.slugs:
            hosts = hosts.filter(slug__in=self.options.slugs)
        if self.options.skip_slugs:
            hosts = hosts.exclude(slug__in=self.options.skip_slugs)
        return hosts.order_by("id")

    def existing_settlement(self, host: Collective) -> Expense | None:
        # Counted back from the period end, not from today
        since = self.period.end - timedelta(days=settings.SETTLEMENT_IDEMPOTENCY_WINDOW_DAYS)
        return Expense.objects.filter(
            collective=host,
            from_collective=self.platform,
            type=ExpenseType.SETTLEMENT,
            settlement_period=self.period.tag,
            created_at__gte=since,
        ).first()

    # ==========================================================================
    # Per host
    # ==========================================================================

    def build_items(
        self,
        host: Collective,
        debts: Sequence[Transaction],
    ) -> list[tuple[str, int]]:
        """(description, amount in host currency) for every non-zero item."""
        totals: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for t in debts:
            totals[DEBT_ITEMS[t.kind]][t.currency] += t.amount

        self.converter.load_rates(
            (currency, host.currency, None)
            for by_currency in totals.values()
            for currency in by_currency
        )

        items = []
        for label in DEBT_ITEMS.values():
            if label not in totals:
                continue
            amount = sum(
                self.converter.convert(value, currency, host.currency)
                for currency, value in totals[label].items()
            )
            items.append((label, amount))

        if not self.options.kind and host.plan_id and host.plan.price_per_collective:
            count = host.hosted_collectives_count() or 0
            fixed_fee = self.converter.convert(
                host.plan.price_per_collective * count, host.plan.currency, host.currency
            )
            items.append((ITEM_FIXED_FEE, fixed_fee))

        return [(label, amount) for label, amount in items if amount]

    def resolve_payout_method(self, host: Collective) -> PayoutMethod:
        """
        Pick the platform payout method for this host's settlement.

        Order: method used on the host's last settlement; a bank account
        (preferably in the host currency) when the host is connected to
        Wise; PayPal when connected to PayPal and not disabled; any OTHER
        method; any bank account.

        Raises:
            HostPayoutMethodUnresolved: Nothing matched
        """
        by_id = {method.id: method for method in self.payout_methods}

        last_used = (
            Expense.objects.filter(
                collective=host,
                from_collective=self.platform,
                type=ExpenseType.SETTLEMENT,
                payout_method__isnull=False,
            )
            .order_by("-created_at")
            .values_list("payout_method_id", flat=True)
            .first()
        )
        if last_used in by_id:
            return by_id[last_used]

        by_type: dict[str, list[PayoutMethod]] = defaultdict(list)
        for method in self.payout_methods:
            by_type[method.type].append(method)

        services = set(
            ConnectedAccount.objects.filter(collective=host).values_list("service", flat=True)
        )
        if ConnectedAccountService.TRANSFERWISE in services and by_type[PayoutMethodType.BANK_ACCOUNT]:
            banks = by_type[PayoutMethodType.BANK_ACCOUNT]
            for method in banks:
                if method.currency == host.currency:
                    return method
            return banks[0]

        paypal_disabled = bool((host.settings or {}).get("disablePaypalPayouts"))
        if (
            ConnectedAccountService.PAYPAL in services
            and not paypal_disabled
            and by_type[PayoutMethodType.PAYPAL]
        ):
            return by_type[PayoutMethodType.PAYPAL][0]

        for method_type in (PayoutMethodType.OTHER, PayoutMethodType.BANK_ACCOUNT):
            if by_type[method_type]:
                return by_type[method_type][0]

        raise HostPayoutMethodUnresolved(
            f"No payout method for host {host.slug}",
            details={"host_id": host.id, "period": self.period.tag},
        )

    def settle_host(self, host: Collective) -> str:
        """
        Build and (unless dry run) record the settlement for one host.

        Returns:
            One of the OUTCOME_* constants

        Raises:
            SettlementAlreadyExists: The host was billed for this period
            HostPayoutMethodUnresolved: No platform payout method fits
            FxRateUnavailable: An item cannot be converted
        """
        log_context = {"host_id": host.id, "host_slug": host.slug, "period": self.period.tag}

        existing = self.existing_settlement(host)
        if existing is not None:
            raise SettlementAlreadyExists(
                f"Host {host.slug} already has a settlement for {self.period.tag}",
                details={**log_context, "expense_id": existing.id},
            )

        debts = list(self.owed_debt_transactions(host.id).order_by("created_at", "id"))
        items = self.build_items(host, debts)
        if not items:
            logger.debug("Nothing owed by host", extra=log_context)
            return OUTCOME_NOTHING_OWED

        total = sum(amount for _, amount in items)
        total_usd = self.converter.convert(total, host.currency, "USD")
        log_context.update(
            {"amount": total, "currency": host.currency, "amount_usd": total_usd}
        )

        if total_usd < self.minimum_amount_usd:
            logger.info(
                "Host settlement below minimum, carried to next period",
                extra={**log_context, "minimum_amount_usd": self.minimum_amount_usd},
            )
            return OUTCOME_BELOW_THRESHOLD

        payout_method = self.resolve_payout_method(host)

        if self.options.dry_run:
            logger.info(
                "Dry run: would create settlement expense",
                extra={
                    **log_context,
                    "items": [{"description": d, "amount": a} for d, a in items],
                    "payout_method_id": payout_method.id,
                    "transactions": len(debts),
                },
            )
            return OUTCOME_DRY_RUN

        with db_transaction.atomic():
            expense = self.create_settlement_expense(host, items, debts, payout_method)
            TransactionSettlement.mark_transactions_as_invoiced(debts, expense)

        logger.info(
            "Created host settlement expense",
            extra={**log_context, "expense_id": expense.id, "transactions": len(debts)},
        )
        return OUTCOME_CREATED

    def create_settlement_expense(
        self,
        host: Collective,
        items: Sequence[tuple[str, int]],
        debts: Sequence[Transaction],
        payout_method: PayoutMethod,
    ) -> Expense:
        now = timezone.now()
        expense = Expense.objects.create(
            collective=host,
            from_collective=self.platform,
            amount=sum(amount for _, amount in items),
            currency=host.currency,
            description=f"Platform settlement for {self.period.label}",
            type=ExpenseType.SETTLEMENT,
            status=ExpenseStatus.PENDING,
            payout_method=payout_method,
            settlement_period=self.period.tag,
            data={
                "transaction_ids": [t.id for t in debts],
                "is_platform_tip_settlement": True,
            },
            incurred_at=now,
        )
        ExpenseItem.objects.bulk_create(
            [
                ExpenseItem(
                    expense=expense,
                    amount=amount,
                    currency=host.currency,
                    description=description,
                    incurred_at=now,
                )
                for description, amount in items
            ]
        )
        attachment = ExpenseAttachedFile(expense=expense)
        attachment.file.save(
            f"{host.slug}-{self.period.tag}.csv",
            ContentFile(build_settlement_csv(debts).encode("utf-8")),
            save=True,
        )
        return expense


def run_host_settlement(
    options: SettlementOptions | None = None,
    converter: CurrencyConverter | None = None,
) -> dict:
    """Run one settlement pass with a fresh converter unless one is given."""
    return SettlementEngine(options, converter=converter).run()


def mark_settlement_expense_paid(expense: Expense) -> int:
    """
    Mark a settlement expense paid and settle every debt it invoiced.

    Returns:
        Number of settlements moved to SETTLED
    """
    with db_transaction.atomic():
        expense.mark_paid()
        expense.save()
        settled = TransactionSettlement.mark_expense_settlements_as_settled(expense)

    logger.info(
        "Settlement expense paid",
        extra={"expense_id": expense.id, "settlements": settled},
    )
    return settled
