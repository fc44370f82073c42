"""
Data types and money arithmetic for wallet operations.

Types:
    LedgerEntryMeta: Reference data attached to a wallet credit or debit

Functions:
    percent_of: Percentage of an amount, rounded half-up to whole minor units
    to_percentage: Normalize a percentage input to a two-place Decimal

Usage:
    from escrow.wallet.types import LedgerEntryMeta, percent_of

    commission = percent_of(10000, Decimal("15"))  # 1500
    meta = LedgerEntryMeta(reference_type="payment", reference_id=str(payment.id))
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from escrow.constants import HUNDRED, PERCENTAGE_QUANTUM


def to_percentage(value: Decimal | int | float | str) -> Decimal:
    """Convert to a Decimal percentage with two decimal places."""
    # str() first so floats like 33.33 don't carry binary noise
    return Decimal(str(value)).quantize(PERCENTAGE_QUANTUM, rounding=ROUND_HALF_UP)


def percent_of(amount_cents: int, percentage: Decimal | int | str) -> int:
    """
    Return ``percentage`` percent of ``amount_cents``, rounded half-up.

    Example:
        percent_of(8500, Decimal("60"))  # 5100
        percent_of(333, Decimal("50"))   # 167
    """
    raw = Decimal(amount_cents) * Decimal(str(percentage)) / HUNDRED
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class LedgerEntryMeta:
    """
    Reference data recorded on a WalletTransaction.

    Attributes:
        reference_type: Kind of entity that caused the movement
        reference_id: Identifier of that entity
        description: Human-readable description
        tax_withheld_cents: Withholding deducted before this credit
        idempotency_key: Optional unique key; a repeated key returns the
            existing entry instead of writing a new one
    """

    reference_type: str = ""
    reference_id: str = ""
    description: str = ""
    tax_withheld_cents: int = 0
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        if self.tax_withheld_cents < 0:
            raise ValueError("tax_withheld_cents cannot be negative")
