"""
Enums for ledger models.

TransactionKind is a closed set: every kind is handled explicitly by the
writer, the fee resolver and the balance engine, so a new kind means
touching each of those matches.

State Machines Overview:

TransactionSettlement:
    owed → invoiced → settled
    (forward only; refunds move owed → settled directly)

Expense (settlement expenses only go as far as pending here):
    draft → pending → approved → scheduled_for_payment → processing → paid
    pending → rejected
"""

from django.db import models


class TransactionType(models.TextChoices):
    """Side of a double-entry pair."""

    CREDIT = "CREDIT", "Credit"
    DEBIT = "DEBIT", "Debit"


class TransactionKind(models.TextChoices):
    """
    What a ledger row represents.

    Primary kinds:
        CONTRIBUTION, ADDED_FUNDS, EXPENSE, BALANCE_CARRYFORWARD,
        PREPAID_PAYMENT_METHOD

    Fee kinds (taken from the receiving collective):
        HOST_FEE, PLATFORM_FEE, PAYMENT_PROCESSOR_FEE, TAX

    Platform revenue kinds:
        PLATFORM_TIP, HOST_FEE_SHARE

    Debt kinds (owed by the host, tracked by TransactionSettlement):
        PLATFORM_TIP_DEBT, HOST_FEE_SHARE_DEBT
    """

    CONTRIBUTION = "CONTRIBUTION", "Contribution"
    ADDED_FUNDS = "ADDED_FUNDS", "Added funds"
    EXPENSE = "EXPENSE", "Expense"
    BALANCE_CARRYFORWARD = "BALANCE_CARRYFORWARD", "Balance carryforward"
    PREPAID_PAYMENT_METHOD = "PREPAID_PAYMENT_METHOD", "Prepaid payment method"
    HOST_FEE = "HOST_FEE", "Host fee"
    HOST_FEE_SHARE = "HOST_FEE_SHARE", "Host fee share"
    HOST_FEE_SHARE_DEBT = "HOST_FEE_SHARE_DEBT", "Host fee share debt"
    PLATFORM_FEE = "PLATFORM_FEE", "Platform fee"
    PLATFORM_TIP = "PLATFORM_TIP", "Platform tip"
    PLATFORM_TIP_DEBT = "PLATFORM_TIP_DEBT", "Platform tip debt"
    PAYMENT_PROCESSOR_FEE = "PAYMENT_PROCESSOR_FEE", "Payment processor fee"
    PAYMENT_PROCESSOR_COVER = "PAYMENT_PROCESSOR_COVER", "Payment processor cover"
    TAX = "TAX", "Tax"


# Fee kinds deducted from the receiving collective's gross amount
FEE_KINDS = frozenset(
    {
        TransactionKind.HOST_FEE,
        TransactionKind.PLATFORM_FEE,
        TransactionKind.PAYMENT_PROCESSOR_FEE,
        TransactionKind.TAX,
    }
)

# Kinds that create an OWED TransactionSettlement for the host
DEBT_KINDS = frozenset(
    {
        TransactionKind.PLATFORM_TIP_DEBT,
        TransactionKind.HOST_FEE_SHARE_DEBT,
    }
)


class TransactionSettlementStatus(models.TextChoices):
    """
    Invoicing status of a debt transaction group.

    State Flow:
        OWED → INVOICED → SETTLED
        OWED → SETTLED (debt cancelled by a refund)
    """

    OWED = "OWED", "Owed"
    INVOICED = "INVOICED", "Invoiced"
    SETTLED = "SETTLED", "Settled"


class ExpenseType(models.TextChoices):
    INVOICE = "INVOICE", "Invoice"
    RECEIPT = "RECEIPT", "Receipt"
    SETTLEMENT = "SETTLEMENT", "Settlement"
    PLATFORM_BILLING = "PLATFORM_BILLING", "Platform billing"


class ExpenseStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    SCHEDULED_FOR_PAYMENT = "SCHEDULED_FOR_PAYMENT", "Scheduled for payment"
    PROCESSING = "PROCESSING", "Processing"
    PAID = "PAID", "Paid"
    ERROR = "ERROR", "Error"


class OrderStatus(models.TextChoices):
    NEW = "NEW", "New"
    ACTIVE = "ACTIVE", "Active"
    PAID = "PAID", "Paid"
    CANCELLED = "CANCELLED", "Cancelled"
    DISPUTED = "DISPUTED", "Disputed"
    ERROR = "ERROR", "Error"


class OrderInterval(models.TextChoices):
    MONTH = "month", "Monthly"
    YEAR = "year", "Yearly"
