"""
Order model: a contributor's (possibly recurring) commitment to a collective.

Only the fields the balance engine needs are kept: yearly budgets read
active recurring orders, and blocked funds read disputed orders.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel

from ledger.state_machines import OrderInterval, OrderStatus


class Order(BaseModel):
    """
    Fields:
        from_collective: Contributor
        collective: Receiving collective
        total_amount: Amount per occurrence, minor units of `currency`
        currency: ISO 4217 code
        status: OrderStatus
        interval: month, year, or null for one-time orders
        is_active: Whether the recurring subscription is still running
    """

    from_collective = models.ForeignKey(
        "accounts.Collective",
        on_delete=models.PROTECT,
        related_name="orders_made",
    )
    collective = models.ForeignKey(
        "accounts.Collective",
        on_delete=models.PROTECT,
        related_name="orders_received",
    )
    total_amount = models.BigIntegerField()
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.NEW,
        db_index=True,
    )
    interval = models.CharField(
        max_length=10,
        choices=OrderInterval.choices,
        null=True,
        blank=True,
    )
    is_active = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        interval = f"/{self.interval}" if self.interval else ""
        return f"Order({self.pk}, {self.total_amount} {self.currency}{interval}, {self.status})"

    @property
    def is_recurring(self) -> bool:
        return self.interval is not None
