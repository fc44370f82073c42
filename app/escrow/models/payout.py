"""
PayoutRequest model: a payee's withdrawal ask against their wallet.

Usage:
    from escrow.models import PayoutRequest

    payout.approve(approved_by="ops-42")  # requested -> approved
    payout.save()

    payout.start_processing()             # approved -> processing
    payout.complete(transaction_reference="UTR123")
    payout.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from escrow.state_machines import PayoutMethod, PayoutRequestStatus


class PayoutRequest(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Withdrawal request against a WalletBalance.

    State Flow:
        REQUESTED -> APPROVED -> PROCESSING -> COMPLETED
        REQUESTED/APPROVED -> REJECTED

    Invariants:
        - amount <= wallet balance at approval time
        - the wallet is debited exactly once, on COMPLETED
    """

    wallet = models.ForeignKey(
        "escrow.WalletBalance",
        on_delete=models.PROTECT,
        related_name="payout_requests",
        help_text="Wallet the money is withdrawn from",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Requested withdrawal in smallest currency unit",
    )

    status = FSMField(
        default=PayoutRequestStatus.REQUESTED,
        choices=PayoutRequestStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the request (managed by FSM)",
    )

    # ==========================================================================
    # Destination
    # ==========================================================================

    method = models.CharField(
        max_length=20,
        choices=PayoutMethod.choices,
        help_text="Payout rail",
    )

    account_holder_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Name on the destination bank account",
    )

    account_number = models.CharField(
        max_length=34,
        blank=True,
        default="",
        help_text="Destination bank account number",
    )

    ifsc_code = models.CharField(
        max_length=11,
        blank=True,
        default="",
        help_text="Destination bank branch code",
    )

    bank_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Destination bank name",
    )

    upi_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Destination UPI address",
    )

    # ==========================================================================
    # Processing
    # ==========================================================================

    approved_by = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Operator who approved the request",
    )

    approved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the request was approved",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the money was sent",
    )

    transaction_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Bank or rail reference of the transfer",
    )

    rejection_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Why the request was rejected",
    )

    rejected_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the request was rejected",
    )

    notes = models.TextField(
        blank=True,
        default="",
        help_text="Free-form notes from the payee",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout Request"
        verbose_name_plural = "Payout Requests"
        indexes = [
            models.Index(fields=["wallet", "status"], name="escrow_payout_wallet_idx"),
            models.Index(fields=["status", "approved_at"], name="escrow_payout_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="payout_request_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"PayoutRequest({self.id}, {self.status}, {self.amount_cents})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PayoutRequestStatus.REQUESTED,
        target=PayoutRequestStatus.APPROVED,
    )
    def approve(self, approved_by: str):
        """Transition: REQUESTED -> APPROVED"""
        self.approved_by = approved_by
        self.approved_at = timezone.now()

    @transition(
        field=status,
        source=PayoutRequestStatus.APPROVED,
        target=PayoutRequestStatus.PROCESSING,
    )
    def start_processing(self):
        """
        Claim the request for processing.

        Transition: APPROVED -> PROCESSING

        Only one processor can win this edge because callers make it under
        select_for_update.
        """

    @transition(
        field=status,
        source=PayoutRequestStatus.PROCESSING,
        target=PayoutRequestStatus.COMPLETED,
    )
    def complete(self, transaction_reference: str):
        """Transition: PROCESSING -> COMPLETED"""
        self.transaction_reference = transaction_reference
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutRequestStatus.REQUESTED, PayoutRequestStatus.APPROVED],
        target=PayoutRequestStatus.REJECTED,
    )
    def reject(self, reason: str):
        """Transition: REQUESTED/APPROVED -> REJECTED"""
        self.rejection_reason = reason
        self.rejected_at = timezone.now()
