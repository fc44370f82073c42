"""
State machine enums and helpers for escrow models.

This module defines the state enums used by escrow models with django-fsm.
"""

from escrow.state_machines.states import (
    BALANCE_SIGN,
    DisputeResolution,
    DistributionMode,
    FirmRole,
    PayeeType,
    PaymentStatus,
    PayoutMethod,
    PayoutRequestStatus,
    WalletTransactionType,
    WorkProgress,
)

__all__ = [
    "BALANCE_SIGN",
    "DisputeResolution",
    "DistributionMode",
    "FirmRole",
    "PayeeType",
    "PaymentStatus",
    "PayoutMethod",
    "PayoutRequestStatus",
    "WalletTransactionType",
    "WorkProgress",
]
