"""
Ledger writer: records economic events as balanced transaction groups.

Every event (contribution, added funds, expense) is written as mirrored
CREDIT/DEBIT pairs sharing one transaction group, together with the pairs
for the fees derived from it. All rows of an event are checked to balance
and written in one database transaction.

Pairs written for a contribution of A to collective C hosted by H, from
contributor F, with platform P:

    CONTRIBUTION            C +A / F -A
    HOST_FEE                H +h / C -h
    PLATFORM_FEE            P +p / C -p
    PAYMENT_PROCESSOR_FEE   processor (default H) +f / C -f
    TAX                     tax collector (default H) +t / C -t
    PLATFORM_TIP            P +tip / F -tip
    PLATFORM_TIP_DEBT       H +tip / P -tip (is_debt, OWED settlement)
    HOST_FEE_SHARE          P +s / H -s (host currency)
    HOST_FEE_SHARE_DEBT     H +s / P -s (is_debt, OWED settlement)

Usage:
    from ledger.services.transactions import LedgerWriter

    group = LedgerWriter().record_economic_event(draft)
    LedgerWriter().refund_transaction_group(group)
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import transaction as db_transaction
from django.utils import timezone

from accounts.models import Collective
from core.exceptions import ConflictError, NotFoundError
from ledger.exceptions import (
    CollectiveNotFound,
    InsufficientBalance,
    InvalidTransactionDraft,
    LedgerIntegrityError,
)
from ledger.models import Transaction, TransactionSettlement
from ledger.services.balances import BalanceService
from ledger.services.currency import CurrencyConverter, round_half_up
from ledger.state_machines import (
    DEBT_KINDS,
    TransactionKind,
    TransactionType,
)

if TYPE_CHECKING:
    from datetime import datetime

    from ledger.types import TransactionDraft

logger = logging.getLogger(__name__)


def percent_of(amount: int, percent: Decimal | int | float) -> int:
    """`percent` % of `amount`, rounded half up to a minor unit."""
    return round_half_up(Decimal(amount) * Decimal(str(percent)) / Decimal("100"))


def assert_balanced(rows: list[Transaction]) -> None:
    """
    Check that drafted rows form a balanced group.

    Per currency, signed net amounts sum to zero and CREDIT and DEBIT rows
    come in equal numbers; every amount has the sign of its type.

    Raises:
        LedgerIntegrityError: If any check fails
    """
    net_by_currency: dict[str, int] = defaultdict(int)
    sides: dict[str, int] = defaultdict(int)

    for row in rows:
        if row.type == TransactionType.CREDIT and row.amount < 0:
            raise LedgerIntegrityError(
                f"CREDIT {row.kind} row has a negative amount",
                details={"kind": row.kind, "amount": row.amount},
            )
        if row.type == TransactionType.DEBIT and row.amount > 0:
            raise LedgerIntegrityError(
                f"DEBIT {row.kind} row has a positive amount",
                details={"kind": row.kind, "amount": row.amount},
            )
        net_by_currency[row.currency] += row.net_amount_in_collective_currency
        sides[row.currency] += 1 if row.type == TransactionType.CREDIT else -1

    unbalanced = {currency: total for currency, total in net_by_currency.items() if total != 0}
    if unbalanced:
        raise LedgerIntegrityError(
            "Transaction group does not sum to zero",
            details={"unbalanced": unbalanced},
        )
    unpaired = {currency: diff for currency, diff in sides.items() if diff != 0}
    if unpaired:
        raise LedgerIntegrityError(
            "Transaction group has unpaired CREDIT/DEBIT rows",
            details={"unpaired": unpaired},
        )


class LedgerWriter:
    """
    Writes balanced transaction groups.

    Holds a CurrencyConverter so every rate used while writing one batch
    is fetched once.
    """

    def __init__(self, converter: CurrencyConverter | None = None) -> None:
        self.converter = converter or CurrencyConverter()

    # ==========================================================================
    # Economic events
    # ==========================================================================

    def record_economic_event(self, draft: TransactionDraft) -> uuid.UUID:
        """
        Record a contribution, added funds or expense with all derived fees.

        Returns:
            The transaction group shared by every written row

        Raises:
            InvalidTransactionDraft: Fees exceed the amount, or no host
            InvalidCurrency: Unsupported currency
            CollectiveNotFound: A referenced collective does not exist
            InsufficientBalance: An expense exceeds the collective's balance
            FxRateUnavailable: No rate to the host currency
            LedgerIntegrityError: Drafted rows do not balance
        """
        currency = self.converter.validate_currency(draft.currency)
        collective = self._get_collective(draft.collective_id)
        from_collective = self._get_collective(draft.from_collective_id)
        host = self._resolve_host(draft, collective)
        platform = self._get_platform()

        group = uuid.uuid4()
        created_at = draft.created_at or timezone.now()
        builder = _GroupBuilder(
            writer=self,
            group=group,
            host=host,
            platform=platform,
            platform_host=self._get_collective(platform.host_id) if platform.host_id else platform,
            created_at=created_at,
            draft=draft,
        )

        with db_transaction.atomic():
            if draft.kind == TransactionKind.EXPENSE:
                debts = self._draft_expense(builder, draft, currency, collective, from_collective, host)
            else:
                debts = self._draft_contribution(
                    builder, draft, currency, collective, from_collective, host, platform
                )

            assert_balanced(builder.rows)
            Transaction.objects.bulk_create(builder.rows)
            for kind in debts:
                TransactionSettlement.objects.create(transaction_group=group, kind=kind)

        logger.info(
            "Recorded economic event",
            extra={
                "transaction_group": str(group),
                "kind": draft.kind,
                "amount": draft.amount,
                "currency": currency,
                "collective_id": collective.id,
                "host_id": host.id,
                "rows": len(builder.rows),
            },
        )
        return group

    def _draft_contribution(
        self,
        builder: _GroupBuilder,
        draft: TransactionDraft,
        currency: str,
        collective: Collective,
        contributor: Collective,
        host: Collective,
        platform: Collective,
    ) -> list[str]:
        fees = draft.fees
        amount = draft.amount

        host_fee_percent = fees.host_fee_percent
        if host_fee_percent is None:
            host_fee_percent = collective.host_fee_percent
        if host_fee_percent is None:
            host_fee_percent = host.host_fee_percent or Decimal("0")

        # A host receiving money directly pays itself no host fee
        host_fee = percent_of(amount, host_fee_percent) if host.id != collective.id else 0
        platform_fee = (
            fees.platform_fee
            if fees.platform_fee is not None
            else percent_of(amount, fees.platform_fee_percent)
        )
        tax = fees.tax_amount if fees.tax_amount is not None else percent_of(amount, fees.tax_percent)
        processor_fee = fees.payment_processor_fee

        total_fees = host_fee + platform_fee + tax + processor_fee
        if total_fees > amount:
            raise InvalidTransactionDraft(
                "Fees exceed the contribution amount",
                details={"amount": amount, "fees": total_fees},
            )

        builder.pair(draft.kind, collective, contributor, amount, currency, primary=True)

        if host_fee:
            builder.pair(TransactionKind.HOST_FEE, host, collective, host_fee, currency)
        if platform_fee and not collective.is_platform:
            builder.pair(TransactionKind.PLATFORM_FEE, platform, collective, platform_fee, currency)
        if processor_fee:
            processor = host
            if fees.payment_processor_collective_id:
                processor = self._get_collective(fees.payment_processor_collective_id)
            builder.pair(
                TransactionKind.PAYMENT_PROCESSOR_FEE, processor, collective, processor_fee, currency
            )
        if tax:
            tax_collector = host
            if fees.tax_collective_id:
                tax_collector = self._get_collective(fees.tax_collective_id)
            builder.pair(TransactionKind.TAX, tax_collector, collective, tax, currency)

        debts = []
        host_owes_platform = not host.is_platform

        if fees.platform_tip:
            builder.pair(TransactionKind.PLATFORM_TIP, platform, contributor, fees.platform_tip, currency)
            if host_owes_platform and not fees.platform_tip_collected_by_platform:
                builder.pair(
                    TransactionKind.PLATFORM_TIP_DEBT,
                    host,
                    platform,
                    fees.platform_tip,
                    currency,
                    is_debt=True,
                )
                debts.append(TransactionKind.PLATFORM_TIP_DEBT)

        share_percent = host.plan.host_fee_share_percent if host.plan_id else Decimal("0")
        if host_fee and share_percent and host_owes_platform:
            host_fee_in_host = self.converter.convert(
                host_fee, currency, host.currency, as_of=builder.created_at
            )
            share = percent_of(host_fee_in_host, share_percent)
            if share:
                builder.pair(TransactionKind.HOST_FEE_SHARE, platform, host, share, host.currency)
                if not fees.host_fee_share_collected_by_platform:
                    builder.pair(
                        TransactionKind.HOST_FEE_SHARE_DEBT,
                        host,
                        platform,
                        share,
                        host.currency,
                        is_debt=True,
                    )
                    debts.append(TransactionKind.HOST_FEE_SHARE_DEBT)

        return debts

    def _draft_expense(
        self,
        builder: _GroupBuilder,
        draft: TransactionDraft,
        currency: str,
        collective: Collective,
        payee: Collective,
        host: Collective,
    ) -> list[str]:
        processor_fee = draft.fees.payment_processor_fee

        # Serialize concurrent expenses of the same collective
        Collective.objects.select_for_update().filter(pk=collective.pk).first()

        required = self.converter.convert(
            draft.amount + processor_fee, currency, collective.currency, as_of=builder.created_at
        )
        available = BalanceService(converter=self.converter).get_balance(collective.id).value
        if available < required:
            logger.warning(
                "Expense rejected for insufficient balance",
                extra={
                    "collective_id": collective.id,
                    "required": required,
                    "available": available,
                },
            )
            raise InsufficientBalance(collective.id, required=required, available=available)

        builder.pair(TransactionKind.EXPENSE, payee, collective, draft.amount, currency, primary=True)
        if processor_fee:
            processor = host
            if draft.fees.payment_processor_collective_id:
                processor = self._get_collective(draft.fees.payment_processor_collective_id)
            builder.pair(
                TransactionKind.PAYMENT_PROCESSOR_FEE, processor, collective, processor_fee, currency
            )
        return []

    # ==========================================================================
    # Refunds
    # ==========================================================================

    def refund_transaction_group(
        self,
        transaction_group: uuid.UUID,
        soft_delete: bool = False,
        description: str | None = None,
    ) -> uuid.UUID:
        """
        Reverse every live row of a group.

        Each reversal has the opposite type and amounts, `is_refund=True`,
        and is linked to its original through `refund_transaction` in both
        directions. OWED debts of the group are cancelled (moved to SETTLED).
        With soft_delete, the originals and their reversals are both
        soft-deleted, hiding the group and its refund from balances.

        Returns:
            The transaction group of the reversal rows

        Raises:
            NotFoundError: No live rows in the group
            ConflictError: The group was already refunded
        """
        refund_group = uuid.uuid4()
        now = timezone.now()

        with db_transaction.atomic():
            originals = list(
                Transaction.objects.select_for_update()
                .filter(transaction_group=transaction_group)
                .order_by("id")
            )
            if not originals:
                raise NotFoundError(
                    f"No transactions in group {transaction_group}",
                    error_code="TRANSACTION_GROUP_NOT_FOUND",
                    details={"transaction_group": str(transaction_group)},
                )
            if any(t.refund_transaction_id or t.is_refund for t in originals):
                raise ConflictError(
                    f"Transaction group {transaction_group} was already refunded",
                    error_code="ALREADY_REFUNDED",
                    details={"transaction_group": str(transaction_group)},
                )

            reversals = [
                self._reversal_of(original, refund_group, now, description) for original in originals
            ]
            assert_balanced(reversals)
            Transaction.objects.bulk_create(reversals)

            for original, reversal in zip(originals, reversals):
                original.refund_transaction = reversal
                original.updated_at = now
            Transaction.objects.bulk_update(originals, ["refund_transaction", "updated_at"])

            for settlement in TransactionSettlement.objects.filter(
                transaction_group=transaction_group,
                kind__in=DEBT_KINDS,
            ):
                if settlement.is_owed:
                    settlement.cancel()
                    settlement.save()
                else:
                    logger.warning(
                        "Refunded debt was already invoiced",
                        extra={
                            "transaction_group": str(transaction_group),
                            "kind": settlement.kind,
                            "status": settlement.status,
                            "expense_id": settlement.expense_id,
                        },
                    )

            if soft_delete:
                # Originals and reversals together
                Transaction.objects.filter(
                    pk__in=[t.pk for t in originals] + [t.pk for t in reversals]
                ).delete()

        logger.info(
            "Refunded transaction group",
            extra={
                "transaction_group": str(transaction_group),
                "refund_group": str(refund_group),
                "rows": len(reversals),
                "soft_delete": soft_delete,
            },
        )
        return refund_group

    @staticmethod
    def _reversal_of(
        original: Transaction,
        refund_group: uuid.UUID,
        created_at: datetime,
        description: str | None,
    ) -> Transaction:
        opposite = (
            TransactionType.DEBIT if original.type == TransactionType.CREDIT else TransactionType.CREDIT
        )
        return Transaction(
            type=opposite,
            kind=original.kind,
            amount=-original.amount,
            currency=original.currency,
            amount_in_host_currency=-original.amount_in_host_currency,
            host_currency=original.host_currency,
            host_currency_fx_rate=original.host_currency_fx_rate,
            net_amount_in_collective_currency=-original.net_amount_in_collective_currency,
            host_fee_in_host_currency=-original.host_fee_in_host_currency,
            platform_fee_in_host_currency=-original.platform_fee_in_host_currency,
            payment_processor_fee_in_host_currency=-original.payment_processor_fee_in_host_currency,
            tax_amount=-original.tax_amount,
            is_debt=original.is_debt,
            is_refund=True,
            is_internal=original.is_internal,
            refund_transaction=original,
            transaction_group=refund_group,
            collective_id=original.collective_id,
            from_collective_id=original.from_collective_id,
            host_id=original.host_id,
            order_id=original.order_id,
            expense_id=original.expense_id,
            description=description or f'Refund of "{original.description}"'[:255],
            created_at=created_at,
        )

    # ==========================================================================
    # Lookups
    # ==========================================================================

    @staticmethod
    def _get_collective(collective_id: int) -> Collective:
        try:
            return Collective.objects.select_related("plan").get(pk=collective_id)
        except Collective.DoesNotExist:
            raise CollectiveNotFound(
                f"Collective {collective_id} not found",
                details={"collective_id": collective_id},
            ) from None

    @staticmethod
    def _get_platform() -> Collective:
        try:
            return Collective.get_platform()
        except Collective.DoesNotExist:
            raise CollectiveNotFound(
                "Platform collective not found",
                error_code="PLATFORM_NOT_FOUND",
            ) from None

    def _resolve_host(self, draft: TransactionDraft, collective: Collective) -> Collective:
        if draft.host_id is not None:
            return self._get_collective(draft.host_id)
        if collective.host_id is not None:
            return self._get_collective(collective.host_id)
        if collective.is_host_account:
            return collective
        raise InvalidTransactionDraft(
            f"Collective {collective.id} has no host",
            details={"collective_id": collective.id},
        )


class _GroupBuilder:
    """Accumulates the unsaved rows of one transaction group."""

    def __init__(
        self,
        writer: LedgerWriter,
        group: uuid.UUID,
        host: Collective,
        platform: Collective,
        platform_host: Collective,
        created_at: datetime,
        draft: TransactionDraft,
    ) -> None:
        self.writer = writer
        self.group = group
        self.host = host
        self.platform = platform
        self.platform_host = platform_host
        self.created_at = created_at
        self.draft = draft
        self.rows: list[Transaction] = []

    def _host_for(self, collective: Collective) -> Collective:
        # Rows of the platform belong to the platform's own host
        if collective.id == self.platform.id:
            return self.platform_host
        return self.host

    def _row(
        self,
        side: str,
        kind: str,
        collective: Collective,
        from_collective: Collective,
        amount: int,
        currency: str,
        is_debt: bool,
        primary: bool,
    ) -> Transaction:
        host = self._host_for(collective)
        fx_rate = self.writer.converter.fx_rate(currency, host.currency, as_of=self.created_at)
        amount_in_host_currency = self.writer.converter.convert(
            amount, currency, host.currency, as_of=self.created_at
        )
        return Transaction(
            type=side,
            kind=kind,
            amount=amount,
            currency=currency,
            amount_in_host_currency=amount_in_host_currency,
            host_currency=host.currency,
            host_currency_fx_rate=fx_rate,
            net_amount_in_collective_currency=amount,
            is_debt=is_debt,
            transaction_group=self.group,
            collective=collective,
            from_collective=from_collective,
            host=host,
            order_id=self.draft.order_id,
            expense_id=self.draft.expense_id,
            description=self.draft.description,
            data=dict(self.draft.data) if primary else {},
            created_at=self.created_at,
        )

    def pair(
        self,
        kind: str,
        credited: Collective,
        debited: Collective,
        amount: int,
        currency: str,
        is_debt: bool = False,
        primary: bool = False,
    ) -> None:
        """Add CREDIT `credited` +amount and DEBIT `debited` -amount."""
        self.rows.append(
            self._row(TransactionType.CREDIT, kind, credited, debited, amount, currency, is_debt, primary)
        )
        self.rows.append(
            self._row(TransactionType.DEBIT, kind, debited, credited, -amount, currency, is_debt, primary)
        )


def record_economic_event(
    draft: TransactionDraft,
    converter: CurrencyConverter | None = None,
) -> uuid.UUID:
    """Module-level shortcut for LedgerWriter(converter).record_economic_event(draft)."""
    return LedgerWriter(converter=converter).record_economic_event(draft)


def refund_transaction_group(
    transaction_group: uuid.UUID,
    soft_delete: bool = False,
    converter: CurrencyConverter | None = None,
) -> uuid.UUID:
    return LedgerWriter(converter=converter).refund_transaction_group(
        transaction_group, soft_delete=soft_delete
    )
