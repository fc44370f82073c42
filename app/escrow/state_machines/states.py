"""
State enums for escrow models.

This module defines all state and choice enums used by escrow models with
django-fsm. These are Django TextChoices for database storage and admin
integration.

State Machines Overview:

Payment States:
    captured → escrow_held → pending_release → completed
    escrow_held → dispute_held → pending_release (release resolution)
    escrow_held/dispute_held → refunded / partially_refunded

PayoutRequest States:
    requested → approved → processing → completed
    requested/approved → rejected
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for the Payment custody lifecycle.

    Terminal states: COMPLETED, REFUNDED, PARTIALLY_REFUNDED

    State Flow (normal):
        CAPTURED → ESCROW_HELD → PENDING_RELEASE → COMPLETED

    Dispute Flow:
        ESCROW_HELD → DISPUTE_HELD → PENDING_RELEASE
        ESCROW_HELD → DISPUTE_HELD → REFUNDED / PARTIALLY_REFUNDED

    Cancellation Flow:
        ESCROW_HELD → REFUNDED / PARTIALLY_REFUNDED
    """

    CAPTURED = "captured", "Captured"
    ESCROW_HELD = "escrow_held", "Escrow Held"
    PENDING_RELEASE = "pending_release", "Pending Release"
    COMPLETED = "completed", "Completed"
    REFUNDED = "refunded", "Refunded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    DISPUTE_HELD = "dispute_held", "Dispute Held"


class PayoutRequestStatus(models.TextChoices):
    """
    States for the PayoutRequest lifecycle.

    Terminal states: COMPLETED, REJECTED

    State Flow:
        REQUESTED → APPROVED → PROCESSING → COMPLETED
        REQUESTED/APPROVED → REJECTED
    """

    REQUESTED = "requested", "Requested"
    APPROVED = "approved", "Approved"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    REJECTED = "rejected", "Rejected"


class PayeeType(models.TextChoices):
    """Kind of wallet owner receiving money."""

    PROFESSIONAL = "professional", "Professional"
    FIRM = "firm", "Firm"


class DistributionMode(models.TextChoices):
    """How a distribution's shares were assigned."""

    TEMPLATE = "template", "Template"
    CUSTOM = "custom", "Custom"


class FirmRole(models.TextChoices):
    """Roles a payee can hold inside a firm, used by distribution templates."""

    FIRM_ADMIN = "firm_admin", "Firm Admin"
    SENIOR_CA = "senior_ca", "Senior CA"
    JUNIOR_CA = "junior_ca", "Junior CA"
    CONSULTANT = "consultant", "Consultant"


class WalletTransactionType(models.TextChoices):
    """
    Ledger entry types.

    The sign applied to the wallet balance is given by BALANCE_SIGN.
    WITHDRAWAL_REQUESTED is a zero-delta entry: it reserves funds in
    pending_payouts without moving the balance.
    """

    RECEIVED = "received", "Received"
    DISTRIBUTED = "distributed", "Distributed"
    COMMISSION_DEDUCTED = "commission_deducted", "Commission Deducted"
    WITHDRAWAL_REQUESTED = "withdrawal_requested", "Withdrawal Requested"
    WITHDRAWAL_COMPLETED = "withdrawal_completed", "Withdrawal Completed"


BALANCE_SIGN = {
    WalletTransactionType.RECEIVED: 1,
    WalletTransactionType.DISTRIBUTED: 1,
    WalletTransactionType.COMMISSION_DEDUCTED: -1,
    WalletTransactionType.WITHDRAWAL_REQUESTED: 0,
    WalletTransactionType.WITHDRAWAL_COMPLETED: -1,
}


class PayoutMethod(models.TextChoices):
    """Destination rail for a payout."""

    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    UPI = "upi", "UPI"
    NEFT = "neft", "NEFT"
    RTGS = "rtgs", "RTGS"
    IMPS = "imps", "IMPS"


class WorkProgress(models.TextChoices):
    """
    Unit-of-work progress as reported by the work status provider.

    Drives both the release precondition and the refund policy.
    """

    NOT_STARTED = "not_started", "Not Started"
    ACCEPTED = "accepted", "Accepted"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"

    @classmethod
    def parse(cls, value) -> "WorkProgress":
        """
        Coerce a provider value such as "not-started" or "In Progress".

        Raises:
            ValueError: If the value names no known progress
        """
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower().replace("-", "_").replace(" ", "_"))


class DisputeResolution(models.TextChoices):
    """Outcome chosen when a dispute is closed."""

    RELEASE = "release", "Release"
    REFUND = "refund", "Refund"
    PARTIAL_REFUND = "partial_refund", "Partial Refund"
