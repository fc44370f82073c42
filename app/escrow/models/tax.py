"""
TaxRecord model: withholding computed at distribution or direct release.

Records are append-only; the certificate reference is the one field that
can be filled in afterwards (see TaxService.attach_certificate).
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import ImmutableMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from escrow.constants import TAX_SECTION_194J


class TaxRecord(UUIDPrimaryKeyMixin, ImmutableMixin, BaseModel):
    """
    Withholding deducted from one payee credit.

    Fields:
        taxable_amount_cents: Gross amount the rate was applied to
        tax_rate: Withholding percentage
        tax_amount_cents: Amount withheld
        net_amount_cents: Amount actually credited
        financial_year: Indian financial year label, e.g. "FY 2024-2025"
        quarter: Q1 (Apr-Jun) .. Q4 (Jan-Mar)
    """

    mutable_fields = ("certificate_reference",)

    payee_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Professional the tax was withheld from",
    )

    payment = models.ForeignKey(
        "escrow.Payment",
        on_delete=models.PROTECT,
        related_name="tax_records",
        help_text="Payment the taxable income came from",
    )

    share = models.OneToOneField(
        "escrow.DistributionShare",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="tax_record",
        help_text="Distribution share this record belongs to. Null for direct release",
    )

    section = models.CharField(
        max_length=10,
        default=TAX_SECTION_194J,
        help_text="Statutory section the withholding falls under",
    )

    taxable_amount_cents = models.PositiveBigIntegerField(
        help_text="Gross amount before withholding",
    )

    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Withholding rate in percent",
    )

    tax_amount_cents = models.PositiveBigIntegerField(
        help_text="Amount withheld",
    )

    net_amount_cents = models.PositiveBigIntegerField(
        help_text="Amount credited after withholding",
    )

    financial_year = models.CharField(
        max_length=12,
        db_index=True,
        help_text="Financial year label, April to March",
    )

    quarter = models.CharField(
        max_length=2,
        help_text="Quarter of the financial year (Q1-Q4)",
    )

    tax_identifier = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Payee PAN at the time of withholding",
    )

    certificate_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Reference of the issued withholding certificate",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Tax Record"
        verbose_name_plural = "Tax Records"
        indexes = [
            models.Index(
                fields=["payee_id", "financial_year", "quarter"],
                name="escrow_tax_payee_period_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"TaxRecord({self.payee_id}, {self.financial_year} {self.quarter}, {self.tax_amount_cents})"
