"""
Refund calculator: how much of a held payment goes back to the client.

Pure functions, no database access. The escrow service applies the result
through the payment gateway and records it on the Payment.

Policy:
    refund_amount = original_amount x percentage / 100
    processing_fee = clamp(refund_amount x fee_percent, fee_min, fee_max)
    final_refund_amount = refund_amount - processing_fee

    The fee is waived for a full refund of work that never started.

Usage:
    from escrow.services.refund_calculator import calculate_refund

    breakdown = calculate_refund(10000, 0, WorkProgress.IN_PROGRESS, Decimal("50"))
    breakdown.final_refund_amount_cents  # 4900
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from core.exceptions import ValidationError

from escrow.constants import HUNDRED
from escrow.state_machines import WorkProgress
from escrow.wallet.types import percent_of, to_percentage

# Default fee policy; the platform config supplies runtime values
DEFAULT_FEE_PERCENT = Decimal("2")
DEFAULT_FEE_MIN_CENTS = 10
DEFAULT_FEE_MAX_CENTS = 100

RECOMMENDED_REFUND_PERCENTAGE = {
    WorkProgress.NOT_STARTED: Decimal("100"),
    WorkProgress.ACCEPTED: Decimal("100"),
    WorkProgress.IN_PROGRESS: Decimal("50"),
    WorkProgress.COMPLETED: Decimal("0"),
    WorkProgress.CANCELLED: Decimal("100"),
}


@dataclass(frozen=True)
class RefundBreakdown:
    """
    Computed refund amounts for one payment.

    Attributes:
        original_amount_cents: Captured amount
        platform_fee_cents: Platform fee recorded on the payment
        percentage: Percentage of the original amount refunded
        refund_amount_cents: Refund before the processing fee
        processing_fee_cents: Fee retained by the platform
        final_refund_amount_cents: Amount returned to the client
        work_progress: Progress the calculation was based on
    """

    original_amount_cents: int
    platform_fee_cents: int
    percentage: Decimal
    refund_amount_cents: int
    processing_fee_cents: int
    final_refund_amount_cents: int
    work_progress: str

    @property
    def is_full_refund(self) -> bool:
        return self.percentage == HUNDRED


def parse_progress(work_progress: WorkProgress | str) -> WorkProgress:
    """Accepts "not_started", "not-started" and "Not Started" alike."""
    try:
        return WorkProgress.parse(work_progress)
    except ValueError:
        raise ValidationError(
            f"Unknown work progress '{work_progress}'",
            details={"work_progress": str(work_progress)},
        )


def recommended_refund_percentage(work_progress: WorkProgress | str) -> Decimal:
    """
    Percentage the client should get back for a given work progress.

    Raises:
        ValidationError: If the progress value is unknown
    """
    return RECOMMENDED_REFUND_PERCENTAGE[parse_progress(work_progress)]


def processing_fee(
    refund_amount_cents: int,
    fee_percent: Decimal = DEFAULT_FEE_PERCENT,
    fee_min_cents: int = DEFAULT_FEE_MIN_CENTS,
    fee_max_cents: int = DEFAULT_FEE_MAX_CENTS,
) -> int:
    """Clamped processing fee, never larger than the refund itself."""
    if refund_amount_cents <= 0:
        return 0
    fee = percent_of(refund_amount_cents, fee_percent)
    fee = min(max(fee, fee_min_cents), fee_max_cents)
    return min(fee, refund_amount_cents)


def calculate_refund(
    original_amount_cents: int,
    platform_fee_cents: int,
    work_progress: WorkProgress | str,
    requested_percentage: Decimal | int | str | None = None,
    *,
    fee_percent: Decimal = DEFAULT_FEE_PERCENT,
    fee_min_cents: int = DEFAULT_FEE_MIN_CENTS,
    fee_max_cents: int = DEFAULT_FEE_MAX_CENTS,
) -> RefundBreakdown:
    """
    Compute the refund for a payment.

    Args:
        original_amount_cents: Captured amount
        platform_fee_cents: Platform fee recorded on the payment
        work_progress: Current unit-of-work progress
        requested_percentage: Percentage to refund; defaults to the
            recommended percentage for ``work_progress``
        fee_percent: Processing fee rate
        fee_min_cents: Lower clamp for the processing fee
        fee_max_cents: Upper clamp for the processing fee

    Returns:
        RefundBreakdown with the refund, fee and final amounts

    Raises:
        ValidationError: If the percentage is outside 0-100 or the
            progress value is unknown

    Example:
        calculate_refund(10000, 0, WorkProgress.NOT_STARTED, 100)
        # refund 10000, fee 0, final 10000
    """
    progress = parse_progress(work_progress)

    if requested_percentage is None:
        percentage = recommended_refund_percentage(progress)
    else:
        percentage = to_percentage(requested_percentage)

    if percentage < 0 or percentage > HUNDRED:
        raise ValidationError(
            "Refund percentage must be between 0 and 100",
            details={"percentage": str(percentage)},
        )

    refund_amount = percent_of(original_amount_cents, percentage)

    if progress == WorkProgress.NOT_STARTED and percentage == HUNDRED:
        fee = 0
    else:
        fee = processing_fee(refund_amount, fee_percent, fee_min_cents, fee_max_cents)

    return RefundBreakdown(
        original_amount_cents=original_amount_cents,
        platform_fee_cents=platform_fee_cents,
        percentage=percentage,
        refund_amount_cents=refund_amount,
        processing_fee_cents=fee,
        final_refund_amount_cents=refund_amount - fee,
        work_progress=str(progress),
    )
