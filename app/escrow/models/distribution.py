"""
Distribution models: multi-party split of a payment's net proceeds.

- Distribution: one split per Payment, with commission and bonus pool
- DistributionShare: one payee's percentage and computed amounts
- DistributionTemplate: per-firm default percentage for each role

Usage:
    from escrow.models import Distribution, DistributionShare

    distribution = payment.distribution
    for share in distribution.shares.all():
        print(share.payee_id, share.percentage, share.total_amount_cents)
"""

from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from escrow.state_machines import DistributionMode, FirmRole


class Distribution(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Agreed split of one Payment among several payees.

    Amounts:
        total_amount_cents = payment amount
        platform_commission_cents = total x commission rate
        distributable_amount_cents = total - commission
        bonus_pool_cents = early_completion + quality + referral bonuses

    Invariants:
        - sum(shares.percentage) == 100 within PERCENTAGE_TOLERANCE
        - sum(shares.total_amount_cents) == distributable + bonus pool
        - immutable once is_distributed
    """

    payment = models.OneToOneField(
        "escrow.Payment",
        on_delete=models.PROTECT,
        related_name="distribution",
        help_text="Payment whose proceeds are split",
    )

    group_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Firm whose wallet receives the gross amount",
    )

    mode = models.CharField(
        max_length=20,
        choices=DistributionMode.choices,
        help_text="Whether shares came from templates or were supplied explicitly",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    total_amount_cents = models.PositiveBigIntegerField(
        help_text="Payment amount being split",
    )

    commission_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Commission rate applied to the total",
    )

    platform_commission_cents = models.PositiveBigIntegerField(
        help_text="Commission retained by the platform",
    )

    distributable_amount_cents = models.PositiveBigIntegerField(
        help_text="Total minus platform commission",
    )

    early_completion_bonus_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Bonus for finishing ahead of schedule",
    )

    quality_bonus_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Bonus for a high quality rating",
    )

    referral_bonus_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Bonus for bringing in the client",
    )

    bonus_pool_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Sum of all bonuses, spread over shares by percentage",
    )

    # ==========================================================================
    # Approval & Execution
    # ==========================================================================

    requires_approval = models.BooleanField(
        default=False,
        help_text="Whether every payee must approve their share before execution",
    )

    is_approved = models.BooleanField(
        default=False,
        help_text="Set when the last outstanding share is approved",
    )

    approved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the distribution became fully approved",
    )

    is_distributed = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the split has been credited to wallets",
    )

    distributed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When wallets were credited",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Distribution"
        verbose_name_plural = "Distributions"
        indexes = [
            models.Index(fields=["group_id", "is_distributed"], name="escrow_dist_group_idx"),
        ]

    def __str__(self) -> str:
        return f"Distribution({self.id}, payment={self.payment_id}, distributed={self.is_distributed})"

    @property
    def is_executable(self) -> bool:
        return not self.is_distributed and (
            not self.requires_approval or self.is_approved
        )


class DistributionShare(UUIDPrimaryKeyMixin, BaseModel):
    """One payee's portion of a Distribution."""

    distribution = models.ForeignKey(
        Distribution,
        on_delete=models.CASCADE,
        related_name="shares",
        help_text="Distribution this share belongs to",
    )

    payee_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Professional receiving this share",
    )

    role = models.CharField(
        max_length=20,
        choices=FirmRole.choices,
        null=True,
        blank=True,
        help_text="Firm role used for template lookups",
    )

    percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Percentage of the distributable amount",
    )

    base_amount_cents = models.PositiveBigIntegerField(
        help_text="Distributable amount x percentage",
    )

    bonus_amount_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="This share's part of the bonus pool",
    )

    total_amount_cents = models.PositiveBigIntegerField(
        help_text="Base plus bonus, before withholding",
    )

    tax_withheld_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Withholding deducted at execution",
    )

    net_amount_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Amount credited to the payee wallet at execution",
    )

    contribution_hours = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Hours the payee reported working on the request",
    )

    approved = models.BooleanField(
        default=False,
        help_text="Whether the payee accepted this share",
    )

    approved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payee accepted",
    )

    signature = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Approval signature supplied by the payee",
    )

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name = "Distribution Share"
        verbose_name_plural = "Distribution Shares"
        constraints = [
            models.UniqueConstraint(
                fields=["distribution", "payee_id"],
                name="unique_share_per_payee",
            ),
        ]

    def __str__(self) -> str:
        return f"DistributionShare({self.payee_id}, {self.percentage}%)"


class DistributionTemplate(UUIDPrimaryKeyMixin, BaseModel):
    """Default split percentage for a role within a firm."""

    group_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Firm this template applies to",
    )

    role = models.CharField(
        max_length=20,
        choices=FirmRole.choices,
        help_text="Role the percentage applies to",
    )

    default_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Percentage assigned to payees holding this role",
    )

    min_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0"),
        help_text="Lowest percentage this role may be given",
    )

    max_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("100"),
        help_text="Highest percentage this role may be given",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Inactive templates are ignored by template mode",
    )

    class Meta:
        ordering = ["group_id", "role"]
        verbose_name = "Distribution Template"
        verbose_name_plural = "Distribution Templates"
        constraints = [
            models.UniqueConstraint(
                fields=["group_id", "role"],
                name="unique_template_per_group_role",
            ),
        ]

    def __str__(self) -> str:
        return f"DistributionTemplate({self.group_id}, {self.role}, {self.default_percentage}%)"

    def clean(self) -> None:
        """Require 0 <= min <= default <= max <= 100."""
        if not (
            Decimal("0")
            <= self.min_percentage
            <= self.default_percentage
            <= self.max_percentage
            <= Decimal("100")
        ):
            raise DjangoValidationError(
                "Template percentages must satisfy 0 <= min <= default <= max <= 100"
            )
