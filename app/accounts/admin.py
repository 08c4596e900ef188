"""
Django admin configuration for account models.

Hosts are the main operator entry point: the list shows the plan and
the number of active hosted collectives the fixed settlement fee is
computed from.
"""

from django.contrib import admin

from .models import Collective, ConnectedAccount, HostPlan, PayoutMethod


@admin.register(HostPlan)
class HostPlanAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "price_per_collective",
        "currency",
        "host_fee_share_percent",
        "platform_tips",
    ]
    search_fields = ["name"]


@admin.register(Collective)
class CollectiveAdmin(admin.ModelAdmin):
    """
    Admin configuration for Collective.

    Parent and host are raw id fields since there can be many thousands
    of collectives.
    """

    list_display = [
        "id",
        "slug",
        "name",
        "type",
        "currency",
        "host",
        "is_host_account",
        "is_active",
        "plan",
    ]
    list_filter = ["type", "currency", "is_host_account", "is_active"]
    search_fields = ["slug", "name"]
    raw_id_fields = ["parent", "host"]
    readonly_fields = ["created_at", "updated_at", "hosted_count_display"]

    @admin.display(description="Active hosted collectives")
    def hosted_count_display(self, obj: Collective) -> int | None:
        return obj.hosted_collectives_count()


@admin.register(ConnectedAccount)
class ConnectedAccountAdmin(admin.ModelAdmin):
    list_display = ["id", "collective", "service", "is_deleted", "created_at"]
    list_filter = ["service", "is_deleted"]
    raw_id_fields = ["collective"]

    def get_queryset(self, request):
        return ConnectedAccount.all_objects.all()


@admin.register(PayoutMethod)
class PayoutMethodAdmin(admin.ModelAdmin):
    list_display = ["id", "collective", "type", "is_saved", "is_deleted", "created_at"]
    list_filter = ["type", "is_saved", "is_deleted"]
    raw_id_fields = ["collective"]

    def get_queryset(self, request):
        return PayoutMethod.all_objects.all()
