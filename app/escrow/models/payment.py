"""
Payment model: one captured sum held in escrow for one unit of work.

A Payment is created when a capture is confirmed and is mutated only by
the escrow services. It is never deleted.

Usage:
    from escrow.models import Payment
    from escrow.state_machines import PaymentStatus

    payment = Payment.objects.create(
        request_id=request.id,
        client_id=str(client.id),
        payee_id=str(firm.id),
        payee_type=PayeeType.FIRM,
        amount_cents=10000,
        provider_payment_id="pi_123",
    )

    # State transitions using django-fsm
    payment.hold(provider_reference="ch_123", auto_release_at=deadline)
    payment.save()
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from escrow.constants import SYSTEM_AUTO_RELEASE_ACTOR
from escrow.state_machines import PayeeType, PaymentStatus


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Money captured from a client and held until release or refund.

    State Flow:
        CAPTURED -> ESCROW_HELD -> PENDING_RELEASE -> COMPLETED
        ESCROW_HELD -> DISPUTE_HELD -> PENDING_RELEASE | REFUNDED | PARTIALLY_REFUNDED
        ESCROW_HELD -> REFUNDED | PARTIALLY_REFUNDED

    Invariants:
        - released_to_payee implies status in {PENDING_RELEASE, COMPLETED}
        - refund fields are only set in REFUNDED / PARTIALLY_REFUNDED
    """

    # ==========================================================================
    # Parties
    # ==========================================================================

    request_id = models.UUIDField(
        unique=True,
        default=uuid.uuid4,
        help_text="Unit of work this payment pays for",
    )

    client_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Identifier of the paying client",
    )

    payee_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Professional or firm the payment is owed to",
    )

    payee_type = models.CharField(
        max_length=20,
        choices=PayeeType.choices,
        default=PayeeType.PROFESSIONAL,
        help_text="Whether the payee is an individual professional or a firm",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Captured amount in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="inr",
        help_text="ISO 4217 currency code (lowercase)",
    )

    platform_fee_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Platform commission taken at release",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.CAPTURED,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current custody state (managed by FSM)",
    )

    # ==========================================================================
    # Gateway
    # ==========================================================================

    provider_payment_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway payment identifier returned by capture",
    )

    provider_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Gateway reference recorded when funds were put on hold",
    )

    # ==========================================================================
    # Escrow Timeline
    # ==========================================================================

    captured_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the gateway confirmed capture",
    )

    escrow_held_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When funds entered escrow",
    )

    auto_release_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Deadline after which the sweep releases funds. Null disables it",
    )

    # ==========================================================================
    # Release
    # ==========================================================================

    released_to_payee = models.BooleanField(
        default=False,
        help_text="Whether funds have been released to the payee side",
    )

    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the release happened",
    )

    release_approved_by = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Actor who released the funds. Null for system auto-release",
    )

    released_amount_cents = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Amount credited to the payee side at release, after commission",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the release was settled",
    )

    # ==========================================================================
    # Dispute
    # ==========================================================================

    dispute_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the payment was put on dispute hold",
    )

    disputed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the dispute hold started",
    )

    # ==========================================================================
    # Refund
    # ==========================================================================

    refund_requested_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a gateway refund was claimed. Blocks release while set on a held payment",
    )

    refund_amount_cents = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Refund before processing fee",
    )

    refund_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Percentage of the original amount refunded",
    )

    refund_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Reason given for the refund",
    )

    processing_fee_cents = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Fee retained from the refund",
    )

    final_refund_amount_cents = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Amount actually returned to the client",
    )

    provider_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Gateway refund identifier",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the refund was executed",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["status", "auto_release_at"], name="escrow_pay_status_release_idx"),
            models.Index(fields=["client_id", "status"], name="escrow_pay_client_status_idx"),
            models.Index(fields=["payee_id", "status"], name="escrow_pay_payee_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="escrow_payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payment({self.id}, {self.status}, {amount_display})"

    @property
    def refund_in_flight(self) -> bool:
        """A refund was claimed and the payment has not left escrow yet."""
        return self.refund_requested_at is not None and self.status in (
            PaymentStatus.ESCROW_HELD,
            PaymentStatus.DISPUTE_HELD,
        )

    @property
    def is_refunded(self) -> bool:
        return self.status in (
            PaymentStatus.REFUNDED,
            PaymentStatus.PARTIALLY_REFUNDED,
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.CAPTURED,
        target=PaymentStatus.ESCROW_HELD,
    )
    def hold(self, provider_reference: str, auto_release_at):
        """
        Put captured funds into escrow.

        Transition: CAPTURED -> ESCROW_HELD
        """
        self.provider_reference = provider_reference or ""
        self.escrow_held_at = timezone.now()
        self.auto_release_at = auto_release_at

    @transition(
        field=status,
        source=[PaymentStatus.ESCROW_HELD, PaymentStatus.DISPUTE_HELD],
        target=PaymentStatus.PENDING_RELEASE,
    )
    def release(self, released_by: str | None, released_amount_cents: int):
        """
        Release held funds to the payee side.

        Transition: ESCROW_HELD/DISPUTE_HELD -> PENDING_RELEASE

        Args:
            released_by: Releasing actor; the system auto-release actor is
                stored as null
            released_amount_cents: Amount credited after commission
        """
        self.released_to_payee = True
        self.released_at = timezone.now()
        self.release_approved_by = (
            None if released_by == SYSTEM_AUTO_RELEASE_ACTOR else released_by
        )
        self.released_amount_cents = released_amount_cents
        self.platform_fee_cents = self.amount_cents - released_amount_cents
        self.auto_release_at = None

    @transition(
        field=status,
        source=PaymentStatus.PENDING_RELEASE,
        target=PaymentStatus.COMPLETED,
    )
    def complete(self):
        """
        Settle a released payment.

        Transition: PENDING_RELEASE -> COMPLETED
        """
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=PaymentStatus.ESCROW_HELD,
        target=PaymentStatus.DISPUTE_HELD,
    )
    def hold_for_dispute(self, reason: str):
        """
        Freeze the payment pending dispute resolution.

        Transition: ESCROW_HELD -> DISPUTE_HELD

        Clears auto_release_at so the sweep ignores the payment.
        """
        self.dispute_reason = reason
        self.disputed_at = timezone.now()
        self.auto_release_at = None

    @transition(
        field=status,
        source=[PaymentStatus.ESCROW_HELD, PaymentStatus.DISPUTE_HELD],
        target=PaymentStatus.REFUNDED,
    )
    def refund(self, **refund_fields):
        """
        Record a full refund.

        Transition: ESCROW_HELD/DISPUTE_HELD -> REFUNDED
        """
        self._apply_refund(**refund_fields)

    @transition(
        field=status,
        source=[PaymentStatus.ESCROW_HELD, PaymentStatus.DISPUTE_HELD],
        target=PaymentStatus.PARTIALLY_REFUNDED,
    )
    def partially_refund(self, **refund_fields):
        """
        Record a partial refund.

        Transition: ESCROW_HELD/DISPUTE_HELD -> PARTIALLY_REFUNDED
        """
        self._apply_refund(**refund_fields)

    def _apply_refund(
        self,
        refund_amount_cents: int,
        percentage,
        processing_fee_cents: int,
        final_refund_amount_cents: int,
        reason: str,
        provider_refund_id: str | None,
    ) -> None:
        self.refund_amount_cents = refund_amount_cents
        self.refund_percentage = percentage
        self.processing_fee_cents = processing_fee_cents
        self.final_refund_amount_cents = final_refund_amount_cents
        self.refund_reason = reason
        self.provider_refund_id = provider_refund_id
        self.refunded_at = timezone.now()
        self.auto_release_at = None
