"""
Escrow domain models.

This module contains all escrow-related models:
- Payment: Captured money held in escrow for one unit of work
- Distribution / DistributionShare: Multi-party split of a payment
- DistributionTemplate: Per-firm default percentages by role
- WalletBalance / WalletTransaction: Payee balances and their ledger
- PayoutRequest: Withdrawals against a wallet
- TaxRecord: Withholding records
- PlatformConfig: Runtime fee and policy overrides
"""

from escrow.models.distribution import (
    Distribution,
    DistributionShare,
    DistributionTemplate,
)
from escrow.models.payment import Payment
from escrow.models.payout import PayoutRequest
from escrow.models.platform_config import PlatformConfig
from escrow.models.tax import TaxRecord
from escrow.wallet.models import WalletBalance, WalletTransaction

__all__ = [
    "Distribution",
    "DistributionShare",
    "DistributionTemplate",
    "Payment",
    "PayoutRequest",
    "PlatformConfig",
    "TaxRecord",
    "WalletBalance",
    "WalletTransaction",
]
