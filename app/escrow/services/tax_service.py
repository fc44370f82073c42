"""
Tax withholding: computation and the append-only TaxRecord trail.

Withholding on professional fees falls under section 194J. Records are
grouped by the Indian financial year (April to March) and its quarters.

Usage:
    from escrow.services.tax_service import TaxService

    withholding = TaxService.compute_withholding(5100, Decimal("10"))
    # Withholding(taxable_amount_cents=5100, tax_amount_cents=510, net_amount_cents=4590, ...)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from django.core.paginator import Paginator
from django.utils import timezone

from core.services import BaseService

from escrow.constants import TAX_SECTION_194J
from escrow.exceptions import NotFound
from escrow.models import TaxRecord
from escrow.wallet.types import percent_of, to_percentage

if TYPE_CHECKING:
    from django.core.paginator import Page

    from escrow.models import DistributionShare, Payment


@dataclass(frozen=True)
class Withholding:
    """Result of applying a withholding rate to a gross amount."""

    taxable_amount_cents: int
    tax_rate: Decimal
    tax_amount_cents: int
    net_amount_cents: int


def financial_year_for(moment: datetime | None = None) -> str:
    """
    Financial year label for a moment, e.g. "FY 2026-2027".

    The year starts in April.
    """
    moment = timezone.localtime(moment) if moment else timezone.localtime()
    start = moment.year if moment.month >= 4 else moment.year - 1
    return f"FY {start}-{start + 1}"


def quarter_for(moment: datetime | None = None) -> str:
    """Financial quarter: Q1 Apr-Jun, Q2 Jul-Sep, Q3 Oct-Dec, Q4 Jan-Mar."""
    moment = timezone.localtime(moment) if moment else timezone.localtime()
    if 4 <= moment.month <= 6:
        return "Q1"
    if 7 <= moment.month <= 9:
        return "Q2"
    if 10 <= moment.month <= 12:
        return "Q3"
    return "Q4"


class TaxService(BaseService):
    """Withholding computation and TaxRecord persistence."""

    @staticmethod
    def compute_withholding(amount_cents: int, rate: Decimal | int | str) -> Withholding:
        rate = to_percentage(rate)
        tax = percent_of(amount_cents, rate)
        return Withholding(
            taxable_amount_cents=amount_cents,
            tax_rate=rate,
            tax_amount_cents=tax,
            net_amount_cents=amount_cents - tax,
        )

    @classmethod
    def record(
        cls,
        payee_id: str,
        payment: Payment,
        withholding: Withholding,
        share: DistributionShare | None = None,
        tax_identifier: str = "",
    ) -> TaxRecord:
        """
        Persist one withholding record.

        Called inside the release or distribution transaction so the record
        commits together with the credit it describes.
        """
        now = timezone.now()
        record = TaxRecord.objects.create(
            payee_id=str(payee_id),
            payment=payment,
            share=share,
            section=TAX_SECTION_194J,
            taxable_amount_cents=withholding.taxable_amount_cents,
            tax_rate=withholding.tax_rate,
            tax_amount_cents=withholding.tax_amount_cents,
            net_amount_cents=withholding.net_amount_cents,
            financial_year=financial_year_for(now),
            quarter=quarter_for(now),
            tax_identifier=tax_identifier or "",
        )
        cls.get_logger().info(
            "Tax withheld",
            extra={
                "tax_record_id": str(record.id),
                "payee_id": str(payee_id),
                "payment_id": str(payment.id),
                "tax_amount_cents": withholding.tax_amount_cents,
            },
        )
        return record

    @classmethod
    def attach_certificate(cls, record_id, certificate_reference: str) -> TaxRecord:
        """
        Attach the issued certificate reference to a record.

        This is the only change a TaxRecord accepts after creation.

        Raises:
            NotFound: If the record does not exist
        """
        try:
            record = TaxRecord.objects.get(id=record_id)
        except TaxRecord.DoesNotExist:
            raise NotFound(
                f"Tax record {record_id} not found",
                error_code="TAX_RECORD_NOT_FOUND",
                details={"tax_record_id": str(record_id)},
            )
        record.certificate_reference = certificate_reference
        record.save(update_fields=["certificate_reference", "updated_at"])
        return record

    @staticmethod
    def list_for_payee(
        payee_id: str,
        financial_year: str | None = None,
        quarter: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        records = TaxRecord.objects.filter(payee_id=str(payee_id))
        if financial_year:
            records = records.filter(financial_year=financial_year)
        if quarter:
            records = records.filter(quarter=quarter)
        return Paginator(records.order_by("-created_at", "id"), page_size).get_page(page)
