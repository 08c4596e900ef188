"""
Django admin configuration for ledger models.

Transactions and settlements are read-only: the ledger is only written
through LedgerWriter and the settlement run. Corrections are made with
refunds, never by editing rows.
"""

from django.contrib import admin

from .models import (
    CurrencyExchangeRate,
    Expense,
    ExpenseAttachedFile,
    ExpenseItem,
    Order,
    Transaction,
    TransactionSettlement,
)


class ReadOnlyAdminMixin:
    """Disables add, change and delete in the admin."""

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Transaction)
class TransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for Transaction.

    Shows soft-deleted rows too, so refunded history stays visible.
    """

    list_display = [
        "id",
        "created_at",
        "type",
        "kind",
        "amount_display",
        "collective",
        "from_collective",
        "host",
        "is_debt",
        "is_refund",
        "is_deleted",
    ]
    list_filter = ["type", "kind", "is_debt", "is_refund", "is_disputed", "is_deleted", "currency"]
    search_fields = ["id", "transaction_group", "description"]
    raw_id_fields = ["collective", "from_collective", "host", "order", "expense", "refund_transaction"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def get_queryset(self, request):
        return Transaction.all_objects.all()

    def amount_display(self, obj: Transaction) -> str:
        return f"{obj.amount / 100:.2f} {obj.currency}"

    amount_display.short_description = "Amount"


@admin.register(TransactionSettlement)
class TransactionSettlementAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ["id", "transaction_group", "kind", "status", "expense", "created_at"]
    list_filter = ["kind", "status"]
    search_fields = ["transaction_group"]
    raw_id_fields = ["expense"]


class ExpenseItemInline(admin.TabularInline):
    model = ExpenseItem
    extra = 0


class ExpenseAttachedFileInline(admin.TabularInline):
    model = ExpenseAttachedFile
    extra = 0


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    """
    Admin configuration for Expense.

    Settlement expenses are filtered by `settlement_period` to check
    which hosts were billed for a month.
    """

    list_display = [
        "id",
        "description",
        "type",
        "status",
        "amount_display",
        "collective",
        "from_collective",
        "settlement_period",
        "created_at",
    ]
    list_filter = ["type", "status", "settlement_period"]
    search_fields = ["description", "collective__slug"]
    raw_id_fields = ["collective", "from_collective", "payout_method"]
    inlines = [ExpenseItemInline, ExpenseAttachedFileInline]

    def amount_display(self, obj: Expense) -> str:
        return f"{obj.amount / 100:.2f} {obj.currency}"

    amount_display.short_description = "Amount"


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ["id", "collective", "from_collective", "total_amount", "currency", "interval", "status", "is_active"]
    list_filter = ["status", "interval", "is_active"]
    raw_id_fields = ["collective", "from_collective"]


@admin.register(CurrencyExchangeRate)
class CurrencyExchangeRateAdmin(admin.ModelAdmin):
    list_display = ["from_currency", "to_currency", "rate", "created_at"]
    list_filter = ["from_currency", "to_currency"]
    date_hierarchy = "created_at"
