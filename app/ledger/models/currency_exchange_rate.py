"""
Stored FX rates, used when no live FX provider is configured.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class CurrencyExchangeRate(models.Model):
    """
    One observed rate: 1 `from_currency` = `rate` `to_currency`.

    `created_at` is settable so historical rates can be imported.
    """

    from_currency = models.CharField(max_length=3)
    to_currency = models.CharField(max_length=3)
    rate = models.FloatField()
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["from_currency", "to_currency", "created_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(rate__gt=0),
                name="ledger_fx_rate_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"1 {self.from_currency} = {self.rate} {self.to_currency} ({self.created_at:%Y-%m-%d})"
