"""
Fee derivation for primary ledger rows.

Fees of a contribution are stored in two ways: older rows carry them in
dedicated legacy fields, newer rows are followed by sibling fee rows in
the same transaction group. FeeResolver reads either and checks that
they agree when both exist.

Usage:
    from ledger.services.fees import FeeResolver

    resolver = FeeResolver()
    host_fees = resolver.resolve_fees(transactions, TransactionKind.HOST_FEE)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ledger.exceptions import FeeInconsistencyError, LedgerError
from ledger.models import Transaction
from ledger.state_machines import TransactionKind

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

logger = logging.getLogger(__name__)


# Every kind must appear here; a missing kind is a programming error
_CAN_HAVE_FEES: dict[str, bool] = {
    TransactionKind.CONTRIBUTION: True,
    TransactionKind.ADDED_FUNDS: True,
    TransactionKind.EXPENSE: False,
    TransactionKind.BALANCE_CARRYFORWARD: False,
    TransactionKind.PREPAID_PAYMENT_METHOD: False,
    TransactionKind.HOST_FEE: False,
    TransactionKind.HOST_FEE_SHARE: False,
    TransactionKind.HOST_FEE_SHARE_DEBT: False,
    TransactionKind.PLATFORM_FEE: False,
    TransactionKind.PLATFORM_TIP: False,
    TransactionKind.PLATFORM_TIP_DEBT: False,
    TransactionKind.PAYMENT_PROCESSOR_FEE: False,
    TransactionKind.PAYMENT_PROCESSOR_COVER: False,
    TransactionKind.TAX: False,
}

# Legacy field holding each fee on the primary row
LEGACY_FEE_FIELDS = {
    TransactionKind.HOST_FEE: "host_fee_in_host_currency",
    TransactionKind.PAYMENT_PROCESSOR_FEE: "payment_processor_fee_in_host_currency",
    TransactionKind.TAX: "tax_amount",
}

# Sibling row field holding the same value
SIBLING_FEE_FIELDS = {
    TransactionKind.HOST_FEE: "amount_in_host_currency",
    TransactionKind.PAYMENT_PROCESSOR_FEE: "amount_in_host_currency",
    TransactionKind.TAX: "amount",
}


def can_have_fees(transaction: Transaction) -> bool:
    """Whether fee rows can be attached to this transaction's kind."""
    try:
        return _CAN_HAVE_FEES[transaction.kind]
    except KeyError:
        raise LedgerError(
            f"Unknown transaction kind {transaction.kind}",
            error_code="UNKNOWN_TRANSACTION_KIND",
            details={"kind": transaction.kind, "transaction_id": transaction.pk},
        ) from None


class FeeResolver:
    """
    Resolves fee amounts for primary transactions.

    Sibling lookups are batched (one query per call) and memoized per
    resolver instance, so resolving host fees, processor fees and taxes
    for the same rows costs at most three queries.
    """

    def __init__(self) -> None:
        self._siblings: dict[tuple[UUID, int, str], int | None] = {}

    def resolve_fees(
        self,
        transactions: Sequence[Transaction],
        fee_kind: str,
    ) -> list[int]:
        """
        Return one fee per transaction, in input order.

        Values are negative (fees reduce the collective's net) or 0.

        Raises:
            LedgerError: fee_kind is not HOST_FEE, PAYMENT_PROCESSOR_FEE or TAX
            FeeInconsistencyError: Legacy field and sibling row disagree
        """
        if fee_kind not in LEGACY_FEE_FIELDS:
            raise LedgerError(
                f"Cannot resolve fees of kind {fee_kind}",
                error_code="INVALID_FEE_KIND",
                details={"fee_kind": fee_kind},
            )

        self._load_siblings(transactions, fee_kind)

        legacy_field = LEGACY_FEE_FIELDS[fee_kind]
        results = []
        for transaction in transactions:
            legacy = getattr(transaction, legacy_field) or 0
            sibling = None
            if can_have_fees(transaction):
                sibling = self._siblings.get(
                    (transaction.transaction_group, transaction.collective_id, fee_kind)
                )

            if sibling is None:
                results.append(legacy)
            elif legacy == 0 or legacy == sibling:
                results.append(sibling)
            else:
                logger.error(
                    "Fee mismatch between legacy field and sibling row",
                    extra={
                        "transaction_id": transaction.pk,
                        "fee_kind": fee_kind,
                        "legacy": legacy,
                        "sibling": sibling,
                    },
                )
                raise FeeInconsistencyError(
                    f"Transaction {transaction.pk} has {legacy_field}={legacy} "
                    f"but its {fee_kind} row says {sibling}",
                    details={
                        "transaction_id": transaction.pk,
                        "fee_kind": fee_kind,
                        "legacy": legacy,
                        "sibling": sibling,
                    },
                )
        return results

    def _load_siblings(self, transactions: Sequence[Transaction], fee_kind: str) -> None:
        keys = {
            (t.transaction_group, t.collective_id)
            for t in transactions
            if can_have_fees(t) and (t.transaction_group, t.collective_id, fee_kind) not in self._siblings
        }
        if not keys:
            return

        groups = {group for group, _ in keys}
        collective_ids = {collective_id for _, collective_id in keys}
        value_field = SIBLING_FEE_FIELDS[fee_kind]

        for group, collective_id in keys:
            self._siblings[(group, collective_id, fee_kind)] = None

        rows = (
            Transaction.objects.filter(
                kind=fee_kind,
                transaction_group__in=groups,
                collective_id__in=collective_ids,
            )
            .order_by("id")
            .values_list("transaction_group", "collective_id", value_field)
        )
        for group, collective_id, value in rows:
            key = (group, collective_id, fee_kind)
            # First match wins
            if (group, collective_id) in keys and self._siblings.get(key) is None:
                self._siblings[key] = value


def resolve_fees(
    transactions: Sequence[Transaction],
    fee_kind: str,
    resolver: FeeResolver | None = None,
) -> list[int]:
    """Resolve fees with a throwaway resolver unless one is passed in."""
    return (resolver or FeeResolver()).resolve_fees(transactions, fee_kind)
