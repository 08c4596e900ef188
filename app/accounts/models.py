"""
Account models: collectives, hosts, plans and payout destinations.

A Collective is any account that can hold money on the platform. Hosts
are collectives with `is_host_account=True` that fiscally sponsor other
collectives; the platform itself is the collective whose slug matches
settings.PLATFORM_COLLECTIVE_SLUG.

Usage:
    from accounts.models import Collective

    platform = Collective.get_platform()
    host = Collective.objects.get(slug="open-source-host")
    host.hosted_collectives_count()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings as django_settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from core.managers import SoftDeleteManager
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel


class CollectiveType(models.TextChoices):
    """Account types. EVENT and PROJECT are children of a parent collective."""

    USER = "USER", "User"
    ORGANIZATION = "ORGANIZATION", "Organization"
    COLLECTIVE = "COLLECTIVE", "Collective"
    FUND = "FUND", "Fund"
    EVENT = "EVENT", "Event"
    PROJECT = "PROJECT", "Project"


class ConnectedAccountService(models.TextChoices):
    TRANSFERWISE = "transferwise", "Wise"
    PAYPAL = "paypal", "PayPal"
    STRIPE = "stripe", "Stripe"


class PayoutMethodType(models.TextChoices):
    BANK_ACCOUNT = "BANK_ACCOUNT", "Bank account"
    PAYPAL = "PAYPAL", "PayPal"
    OTHER = "OTHER", "Other"
    ACCOUNT_BALANCE = "ACCOUNT_BALANCE", "Account balance"


class HostPlan(BaseModel):
    """
    Pricing plan for a host.

    Fields:
        name: Plan identifier (e.g. "start-plan-2021")
        price_per_collective: Fixed monthly fee per active hosted collective,
            in minor units of `currency`
        currency: Currency of price_per_collective
        host_fee_share_percent: Share of every host fee owed to the platform
        platform_tips: Whether contributors can add platform tips
    """

    name = models.CharField(max_length=100, unique=True)
    price_per_collective = models.PositiveIntegerField(
        default=0,
        help_text="Fixed monthly fee per hosted collective (minor units)",
    )
    currency = models.CharField(max_length=3, default="USD")
    host_fee_share_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0"),
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Percentage of host fees shared with the platform",
    )
    platform_tips = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Collective(BaseModel):
    """
    An account that can receive and spend money.

    Fields:
        slug: Unique handle
        type: CollectiveType
        currency: Display/accounting currency (ISO 4217, upper-case)
        parent: Parent collective for EVENT/PROJECT accounts
        host: Fiscal host holding this collective's money
        is_host_account: Whether this collective acts as a host
        is_active: Whether the collective is active under its host
        approved_at: When the host approved the collective
        host_fee_percent: Default host fee applied to contributions
        plan: Host pricing plan (hosts only)
        settings: Free-form flags (e.g. disablePaypalPayouts)
    """

    slug = models.SlugField(max_length=255, unique=True)
    name = models.CharField(max_length=255)
    type = models.CharField(
        max_length=20,
        choices=CollectiveType.choices,
        default=CollectiveType.COLLECTIVE,
        db_index=True,
    )
    currency = models.CharField(max_length=3, default="USD")
    parent = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="children",
    )
    host = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="hosted_collectives",
    )
    is_host_account = models.BooleanField(default=False, db_index=True)
    is_active = models.BooleanField(default=False)
    approved_at = models.DateTimeField(null=True, blank=True)
    host_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
    )
    plan = models.ForeignKey(
        HostPlan,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="hosts",
    )
    settings = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["slug"]
        indexes = [
            models.Index(fields=["host", "type", "is_active"]),
        ]

    def __str__(self) -> str:
        return f"{self.name} (#{self.pk})"

    @classmethod
    def get_platform(cls) -> Collective:
        """Return the platform collective (raises DoesNotExist if missing)."""
        return cls.objects.get(slug=django_settings.PLATFORM_COLLECTIVE_SLUG)

    @property
    def is_platform(self) -> bool:
        return self.slug == django_settings.PLATFORM_COLLECTIVE_SLUG

    @property
    def is_child(self) -> bool:
        return self.type in (CollectiveType.EVENT, CollectiveType.PROJECT)

    def hosted_collectives_count(self) -> int | None:
        """
        Count active, approved collectives and funds hosted by this account.

        Returns None for accounts that are not hosts.
        """
        if not self.is_host_account:
            return None
        return (
            Collective.objects.filter(
                host=self,
                type__in=[CollectiveType.COLLECTIVE, CollectiveType.FUND],
                is_active=True,
                approved_at__isnull=False,
            )
            .exclude(pk=self.pk)
            .count()
        )


class ConnectedAccount(SoftDeleteMixin, BaseModel):
    """Link between a collective and an external payment provider account."""

    collective = models.ForeignKey(
        Collective,
        on_delete=models.CASCADE,
        related_name="connected_accounts",
    )
    service = models.CharField(max_length=20, choices=ConnectedAccountService.choices)
    username = models.CharField(max_length=255, blank=True, default="")

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    def __str__(self) -> str:
        return f"{self.service} for {self.collective_id}"


class PayoutMethod(SoftDeleteMixin, BaseModel):
    """
    Destination where an expense can be paid.

    Bank accounts carry their currency in `data["currency"]`; PayPal
    methods carry `data["email"]`.
    """

    collective = models.ForeignKey(
        Collective,
        on_delete=models.CASCADE,
        related_name="payout_methods",
    )
    type = models.CharField(max_length=20, choices=PayoutMethodType.choices)
    name = models.CharField(max_length=255, blank=True, default="")
    is_saved = models.BooleanField(default=True)
    data = models.JSONField(default=dict, blank=True)

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.type} #{self.pk} ({self.collective_id})"

    @property
    def currency(self) -> str | None:
        return (self.data or {}).get("currency")
