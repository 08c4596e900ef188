"""
Data types for ledger operations.

Dataclasses passed between the payment layer, the ledger services and
the settlement run.

Types:
    Amount: Minor-unit value with its currency (aggregation results)
    FeeSchedule: Fees to derive from a primary economic event
    TransactionDraft: Input of LedgerWriter.record_economic_event()
    AggregationOptions: Filters shared by the balance engine queries
    SettlementOptions: Parameters of one settlement run
    BillingPeriod: Half-open [start, end) month being settled

Usage:
    from ledger.types import FeeSchedule, TransactionDraft

    draft = TransactionDraft(
        kind=TransactionKind.CONTRIBUTION,
        amount=10000,
        currency="USD",
        from_collective_id=backer.id,
        collective_id=collective.id,
        host_id=host.id,
        fees=FeeSchedule(host_fee_percent=Decimal("10"), platform_fee_percent=Decimal("5")),
    )
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from decimal import Decimal
from typing import Any

from core.exceptions import ValidationError
from ledger.exceptions import InvalidTransactionDraft
from ledger.state_machines import TransactionKind

# Kinds the ledger writer accepts as the primary row of an event
WRITABLE_KINDS = frozenset(
    {
        TransactionKind.CONTRIBUTION,
        TransactionKind.ADDED_FUNDS,
        TransactionKind.EXPENSE,
    }
)


@dataclass
class Amount:
    """
    A monetary value in minor units.

    Example:
        Amount(value=8500, currency="USD")  # "85.00 USD"
    """

    value: int
    currency: str

    def __str__(self) -> str:
        return f"{self.value / 100:.2f} {self.currency}"

    def __add__(self, other: Amount) -> Amount:
        if not isinstance(other, Amount):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot add amounts with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Amount(value=self.value + other.value, currency=self.currency)

    def __sub__(self, other: Amount) -> Amount:
        if not isinstance(other, Amount):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot subtract amounts with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Amount(value=self.value - other.value, currency=self.currency)


def _check_percent(name: str, value: Decimal | None) -> None:
    if value is not None and not (Decimal("0") <= Decimal(value) <= Decimal("100")):
        raise InvalidTransactionDraft(
            f"{name} must be between 0 and 100",
            details={name: str(value)},
        )


def _check_non_negative(name: str, value: int | None) -> None:
    if value is not None and value < 0:
        raise InvalidTransactionDraft(
            f"{name} must not be negative",
            details={name: value},
        )


@dataclass
class FeeSchedule:
    """
    Fees derived from a primary economic event.

    Percentages apply to the gross amount. An explicit amount takes
    precedence over the matching percentage. All amounts are minor units
    of the draft currency.

    Attributes:
        host_fee_percent: Host fee; None falls back to the collective's
            (then the host's) configured percentage
        platform_fee_percent / platform_fee: Platform fee
        platform_tip: Tip added by the contributor on top of the amount
        platform_tip_collected_by_platform: True when the platform received
            the tip directly, so the host owes nothing for it
        host_fee_share_collected_by_platform: Same for the host fee share
        payment_processor_fee: Processor fee paid out of the gross amount
        payment_processor_collective_id: Recipient of the processor fee
            (defaults to the host)
        tax_percent / tax_amount: Tax (VAT, GST) collected on the amount
        tax_collective_id: Recipient of the tax (defaults to the host)
    """

    host_fee_percent: Decimal | None = None
    platform_fee_percent: Decimal = Decimal("0")
    platform_fee: int | None = None
    platform_tip: int = 0
    platform_tip_collected_by_platform: bool = False
    host_fee_share_collected_by_platform: bool = False
    payment_processor_fee: int = 0
    payment_processor_collective_id: int | None = None
    tax_percent: Decimal = Decimal("0")
    tax_amount: int | None = None
    tax_collective_id: int | None = None

    def __post_init__(self) -> None:
        _check_percent("host_fee_percent", self.host_fee_percent)
        _check_percent("platform_fee_percent", self.platform_fee_percent)
        _check_percent("tax_percent", self.tax_percent)
        _check_non_negative("platform_fee", self.platform_fee)
        _check_non_negative("platform_tip", self.platform_tip)
        _check_non_negative("payment_processor_fee", self.payment_processor_fee)
        _check_non_negative("tax_amount", self.tax_amount)


@dataclass
class TransactionDraft:
    """
    Description of one economic event to record.

    Required Attributes:
        kind: CONTRIBUTION, ADDED_FUNDS or EXPENSE
        amount: Gross amount in minor units (positive, tip excluded)
        currency: ISO 4217 code of the amount
        from_collective_id: Paying party (contributor, or payee for expenses)
        collective_id: Receiving collective (or paying collective for expenses)

    Optional Attributes:
        host_id: Fiscal host; defaults to the collective's host
        fees: FeeSchedule
        order_id / expense_id: Source records
        description: Copied on every row
        created_at: Event time (defaults to now)
        data: Extra JSON copied on the primary rows
    """

    kind: str
    amount: int
    currency: str
    from_collective_id: int
    collective_id: int
    host_id: int | None = None
    fees: FeeSchedule = field(default_factory=FeeSchedule)
    order_id: int | None = None
    expense_id: int | None = None
    description: str = ""
    created_at: datetime | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in WRITABLE_KINDS:
            raise InvalidTransactionDraft(
                f"Cannot record an economic event of kind {self.kind}",
                details={"kind": str(self.kind)},
            )
        if self.amount <= 0:
            raise InvalidTransactionDraft(
                "amount must be positive",
                details={"amount": self.amount},
            )
        if self.from_collective_id == self.collective_id:
            raise InvalidTransactionDraft(
                "from_collective_id and collective_id must be different",
                details={"collective_id": self.collective_id},
            )
        self.currency = (self.currency or "").upper()


@dataclass
class AggregationOptions:
    """
    Filters shared by the balance and aggregation queries.

    Attributes:
        net: Net of fees (True) or gross (False)
        kinds: Restrict to these transaction kinds
        start_date / end_date: Half-open [start_date, end_date) window
        include_children: Roll EVENT/PROJECT accounts into their parent
        with_blocked_funds: Subtract funds committed to in-flight expenses
            and disputed contributions (balances only, no date window)
        exclude_refunds: Ignore refunds and refunded rows
        exclude_internals: Ignore transfers between a parent and its children
        currency: Result currency; defaults to each collective's currency
    """

    net: bool = True
    kinds: list[str] | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    include_children: bool = False
    with_blocked_funds: bool = False
    exclude_refunds: bool = False
    exclude_internals: bool = False
    currency: str | None = None


@dataclass
class BillingPeriod:
    """
    The calendar month being settled: [start, end).

    Example:
        BillingPeriod.previous_month(datetime(2026, 10, 17))
        # start=2026-09-01, end=2026-10-01, tag="2026-09"
    """

    start: datetime
    end: datetime

    @classmethod
    def previous_month(cls, base_date: datetime | date) -> BillingPeriod:
        if isinstance(base_date, datetime):
            base_day = base_date.date()
        else:
            base_day = base_date
        end = datetime.combine(base_day.replace(day=1), time.min, tzinfo=dt_timezone.utc)
        start_day = (end - timedelta(days=1)).date().replace(day=1)
        start = datetime.combine(start_day, time.min, tzinfo=dt_timezone.utc)
        return cls(start=start, end=end)

    @property
    def tag(self) -> str:
        return f"{self.start:%Y-%m}"

    @property
    def label(self) -> str:
        return f"{calendar.month_name[self.start.month]} {self.start.year}"


@dataclass
class SettlementOptions:
    """
    Parameters of a settlement run.

    Attributes:
        base_date: Reference date; the previous calendar month is billed
        host_id: Only settle this host
        slugs: Only settle hosts with these slugs
        skip_slugs: Never settle hosts with these slugs
        kind: Only settle one debt kind (PLATFORM_TIP_DEBT or
            HOST_FEE_SHARE_DEBT); the fixed per-collective fee is omitted
        dry_run: Compute and log everything, write nothing
        minimum_amount_usd: Settlement floor in USD minor units
    """

    base_date: datetime | None = None
    host_id: int | None = None
    slugs: list[str] = field(default_factory=list)
    skip_slugs: list[str] = field(default_factory=list)
    kind: str | None = None
    dry_run: bool = False
    minimum_amount_usd: int | None = None

    def __post_init__(self) -> None:
        if self.kind is not None and self.kind not in (
            TransactionKind.PLATFORM_TIP_DEBT,
            TransactionKind.HOST_FEE_SHARE_DEBT,
        ):
            raise ValidationError(
                f"Cannot settle transactions of kind {self.kind}",
                error_code="INVALID_SETTLEMENT_KIND",
                details={"kind": self.kind},
            )
