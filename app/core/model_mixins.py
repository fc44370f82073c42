"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    VersionedMixin: Optimistic locking via an auto-incremented version field
    ImmutableMixin: Reject updates and deletes of append-only records

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

    class PayoutRequest(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
        amount_cents = models.PositiveBigIntegerField()

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Fields:
        id: UUIDField as primary key (auto-generated)

    Usage:
        class Payment(UUIDPrimaryKeyMixin, BaseModel):
            amount_cents = models.PositiveBigIntegerField()

        payment = Payment.objects.create(amount_cents=10000)
        print(payment.id)  # UUID like: 550e8400-e29b-41d4-a716-446655440000
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Optimistic locking through a monotonically increasing version.

    On every update the version is incremented atomically in the database
    with F("version") + 1 and re-read afterwards, so two writers that
    loaded the same version can detect each other (see escrow.locks.check_version).

    Fields:
        version: Incremented on each save of an existing row

    Note:
        Re-fetch instances with Model.objects.get() rather than
        refresh_from_db() when the model carries a protected FSMField.
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.

        Inserts keep the default version; updates increment it in SQL.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])


class ImmutableMixin(models.Model):
    """
    Append-only records: inserts are allowed, updates and deletes are not.

    Subclasses may list fields in ``mutable_fields`` that can still be
    written with save(update_fields=[...]) after creation.
    """

    mutable_fields: tuple[str, ...] = ()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """Reject updates outside of the declared mutable fields."""
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            allowed = set(self.mutable_fields) | {"updated_at"}
            if update_fields is None or not set(update_fields) <= allowed:
                raise ValueError(
                    f"{self.__class__.__name__} records are immutable once created"
                )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Reject deletes; corrections are recorded as new rows."""
        raise ValueError(f"{self.__class__.__name__} records cannot be deleted")
