"""
Escrow services.

- EscrowService: Payment custody (capture, hold, release, disputes, refunds, sweep)
- DistributionService: Multi-party splits and their execution
- PayoutService: Withdrawals from payee wallets
- TaxService: Withholding records
- calculate_refund: Pure refund policy
"""

from escrow.services.distribution_service import DistributionService, ShareSpec
from escrow.services.escrow_service import EscrowService, ReleaseResult
from escrow.services.payout_service import PayoutDestination, PayoutService
from escrow.services.refund_calculator import (
    RefundBreakdown,
    calculate_refund,
    recommended_refund_percentage,
)
from escrow.services.tax_service import TaxService

__all__ = [
    "DistributionService",
    "EscrowService",
    "PayoutDestination",
    "PayoutService",
    "RefundBreakdown",
    "ReleaseResult",
    "ShareSpec",
    "TaxService",
    "calculate_refund",
    "recommended_refund_percentage",
]
