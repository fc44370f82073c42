"""
PlatformConfig model: runtime overrides for fee, tax and escrow policy.

The newest active row wins. Reads go through
escrow.platform_config.PlatformConfigProvider, which caches the resolved
values and drops them whenever a row is saved.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class PlatformConfig(UUIDPrimaryKeyMixin, BaseModel):
    """Operator-editable platform policy."""

    platform_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("15"),
        help_text="Commission on payments to firms",
    )

    individual_platform_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("10"),
        help_text="Commission on payments to individual professionals",
    )

    tax_withholding_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("10"),
        help_text="Withholding on professional fees",
    )

    auto_release_days = models.PositiveIntegerField(
        default=7,
        help_text="Days funds stay held before auto-release",
    )

    min_payout_amount_cents = models.PositiveBigIntegerField(
        default=1000,
        help_text="Smallest payout a payee may request",
    )

    refund_processing_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("2"),
        help_text="Refund processing fee rate",
    )

    refund_processing_fee_min_cents = models.PositiveBigIntegerField(
        default=10,
        help_text="Lower clamp for the refund processing fee",
    )

    refund_processing_fee_max_cents = models.PositiveBigIntegerField(
        default=100,
        help_text="Upper clamp for the refund processing fee",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Only the newest active row applies",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Platform Config"
        verbose_name_plural = "Platform Config"

    def __str__(self) -> str:
        return f"PlatformConfig({self.id}, active={self.is_active})"
