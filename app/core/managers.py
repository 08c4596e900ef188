"""
Custom QuerySet and Manager classes for soft-deletable models.

Usage:
    from core.managers import SoftDeleteManager

    class Transaction(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()  # Default: excludes deleted
        all_objects = models.Manager()  # Includes deleted

    Transaction.objects.filter(transaction_group=group)  # live rows
    Transaction.objects.deleted()                         # refunded/removed rows
    Transaction.objects.with_deleted()                    # everything
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    """
    QuerySet that provides soft delete operations.

    Note:
        The default filtering of deleted records happens in SoftDeleteManager,
        not in this QuerySet, so all_objects can reuse it unfiltered.
    """

    def delete(self) -> tuple[int, dict[str, int]]:
        """
        Soft delete all objects in queryset.

        Returns:
            Tuple of (count, {model_label: count}) matching Django's delete()
        """
        count = self.filter(is_deleted=False).update(
            is_deleted=True,
            deleted_at=timezone.now(),
        )
        return count, {self.model._meta.label: count}

    def hard_delete(self) -> tuple[int, dict[str, int]]:
        """Permanently delete all objects in queryset."""
        return super().delete()

    def restore(self) -> int:
        """Restore all soft-deleted objects in queryset."""
        return self.filter(is_deleted=True).update(is_deleted=False, deleted_at=None)

    def deleted(self) -> SoftDeleteQuerySet:
        return self.filter(is_deleted=True)

    def active(self) -> SoftDeleteQuerySet:
        return self.filter(is_deleted=False)


class SoftDeleteManager(models.Manager):
    """
    Manager that filters out soft-deleted records by default.

    Always pair with a standard Manager (all_objects) for admin access
    to deleted records.
    """

    def get_queryset(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db).filter(is_deleted=False)

    def deleted(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db).filter(is_deleted=True)

    def with_deleted(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db)
