"""
Escrow service: the custody lifecycle of a Payment.

Covers capture, hold, release (direct credit for a single payee, handover to
the distribution engine for several), dispute holds and their resolution,
cancellation refunds and the auto-release sweep.

Release and refund are the two money-moving paths and use different
concurrency patterns:

- Release never leaves the database. The payment row is locked, the status
  flips and the wallet credit is written in one transaction.
- Refund calls the payment gateway. A DistributedLock serializes refunds for
  one payment. The refund is first claimed under a row lock (refund_requested_at),
  which release and dispute holds refuse, then the gateway call runs outside
  any transaction and the state change is committed afterwards.

Usage:
    from escrow.services import EscrowService

    payment = EscrowService.capture_confirmed(
        request_id, "pi_123", amount_cents=10000, client_id=client_id,
        payee_id=firm_id, payee_type=PayeeType.FIRM,
    )
    EscrowService.mark_held(payment.id, provider_reference="ch_123")

    result = EscrowService.release(request_id, released_by=str(client_id))
    result.released_amount_cents  # 8500 with a 15% firm commission
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.module_loading import import_string

from django_fsm import TransitionNotAllowed

from core.exceptions import ValidationError
from core.services import BaseService

from escrow.adapters import IdempotencyKeyGenerator, StripeGateway
from escrow.constants import DISPUTE_RESOLUTION_ACTOR, SYSTEM_AUTO_RELEASE_ACTOR
from escrow.exceptions import AlreadyReleased, GatewayError, InvalidTransition, NotFound
from escrow.locks import DistributedLock
from escrow.models import Payment
from escrow.platform_config import get_provider
from escrow.services.refund_calculator import RefundBreakdown, calculate_refund
from escrow.services.tax_service import TaxService
from escrow.signals import payment_released, send_on_commit
from escrow.state_machines import (
    DisputeResolution,
    PayeeType,
    PaymentStatus,
    WalletTransactionType,
    WorkProgress,
)
from escrow.wallet.services import WalletLedger
from escrow.wallet.types import LedgerEntryMeta, percent_of, to_percentage

if TYPE_CHECKING:
    from escrow.protocols import Assignee, PaymentGateway, WorkStatusProvider


# =============================================================================
# Constants
# =============================================================================

# Maximum payments released per sweep run
BATCH_SIZE = 100

# Distributed lock TTL for a refund (seconds); covers the gateway call
REFUND_LOCK_TTL = 60

HELD_STATUSES = (PaymentStatus.ESCROW_HELD, PaymentStatus.DISPUTE_HELD)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ReleaseResult:
    """
    Outcome of a release call.

    Attributes:
        payment: The released Payment
        released_amount_cents: Amount left after commission
        already_released: True when the call found an earlier release and
            returned its result unchanged
    """

    payment: Payment
    released_amount_cents: int
    already_released: bool = False


# =============================================================================
# Escrow Service
# =============================================================================


class EscrowService(BaseService):
    """
    Service for payment custody transitions.

    Collaborators are injected at class level:
        set_gateway: PaymentGateway used for capture and refund (Stripe by default)
        set_work_status_provider: WorkStatusProvider for unit-of-work status
            and assignees (ESCROW_WORK_STATUS_PROVIDER by default)
    """

    _gateway: PaymentGateway | None = None
    _work_status_provider: WorkStatusProvider | None = None

    @classmethod
    def get_gateway(cls) -> PaymentGateway:
        return cls._gateway or StripeGateway()

    @classmethod
    def set_gateway(cls, gateway: PaymentGateway | None) -> None:
        """Set the payment gateway (for testing or alternative providers)."""
        cls._gateway = gateway

    @classmethod
    def get_work_status_provider(cls) -> WorkStatusProvider:
        """
        Get the unit-of-work status provider.

        Raises:
            ImproperlyConfigured: If none was injected and
                ESCROW_WORK_STATUS_PROVIDER is empty
        """
        if cls._work_status_provider is not None:
            return cls._work_status_provider
        path = getattr(settings, "ESCROW_WORK_STATUS_PROVIDER", "")
        if not path:
            raise ImproperlyConfigured(
                "ESCROW_WORK_STATUS_PROVIDER must name a WorkStatusProvider class"
            )
        return import_string(path)()

    @classmethod
    def set_work_status_provider(cls, provider: WorkStatusProvider | None) -> None:
        cls._work_status_provider = provider

    # =========================================================================
    # Lookups
    # =========================================================================

    @staticmethod
    def get_payment(request_id: uuid.UUID) -> Payment:
        try:
            return Payment.objects.get(request_id=request_id)
        except Payment.DoesNotExist:
            raise NotFound(
                f"No payment for request {request_id}",
                error_code="PAYMENT_NOT_FOUND",
                details={"request_id": str(request_id)},
            )

    @staticmethod
    def _lock_payment(**lookup) -> Payment:
        try:
            return Payment.objects.select_for_update().get(**lookup)
        except Payment.DoesNotExist:
            raise NotFound(
                "Payment not found",
                error_code="PAYMENT_NOT_FOUND",
                details={key: str(value) for key, value in lookup.items()},
            )

    @staticmethod
    def _is_completed(progress) -> bool:
        try:
            return WorkProgress.parse(progress) == WorkProgress.COMPLETED
        except ValueError:
            return False

    @staticmethod
    def _transition(payment: Payment, name: str, *args, **kwargs) -> None:
        """Run a django-fsm transition, translating refusals."""
        try:
            getattr(payment, name)(*args, **kwargs)
        except TransitionNotAllowed:
            raise InvalidTransition(
                f"Cannot {name} payment in '{payment.status}' state",
                details={
                    "payment_id": str(payment.id),
                    "current_state": payment.status,
                    "transition": name,
                },
            )

    # =========================================================================
    # Capture & Hold
    # =========================================================================

    @classmethod
    def capture(
        cls,
        request_id: uuid.UUID,
        order_ref: str,
        amount_cents: int,
        client_id: str,
        payee_id: str,
        payee_type: PayeeType | str = PayeeType.PROFESSIONAL,
        currency: str = "inr",
    ) -> Payment:
        """
        Capture an authorized order at the gateway and record the Payment.

        Raises:
            GatewayError: If the gateway refuses or fails the capture
        """
        provider_payment_id = cls.get_gateway().capture(order_ref)
        return cls.capture_confirmed(
            request_id,
            provider_payment_id,
            amount_cents=amount_cents,
            client_id=client_id,
            payee_id=payee_id,
            payee_type=payee_type,
            currency=currency,
        )

    @classmethod
    def capture_confirmed(
        cls,
        request_id: uuid.UUID,
        provider_payment_id: str,
        amount_cents: int,
        client_id: str,
        payee_id: str,
        payee_type: PayeeType | str = PayeeType.PROFESSIONAL,
        currency: str = "inr",
    ) -> Payment:
        """
        Record a capture the gateway has confirmed.

        Idempotent on provider_payment_id: a repeated confirmation returns
        the existing Payment.
        """
        existing = Payment.objects.filter(provider_payment_id=provider_payment_id).first()
        if existing is not None:
            cls.get_logger().info(
                "Capture already recorded",
                extra={"payment_id": str(existing.id), "provider_payment_id": provider_payment_id},
            )
            return existing

        if amount_cents <= 0:
            raise ValidationError(
                "Captured amount must be positive",
                details={"amount_cents": amount_cents},
            )

        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    request_id=request_id,
                    client_id=str(client_id),
                    payee_id=str(payee_id),
                    payee_type=payee_type,
                    amount_cents=amount_cents,
                    currency=currency,
                    provider_payment_id=provider_payment_id,
                )
        except IntegrityError:
            # Concurrent confirmation of the same capture
            return Payment.objects.get(provider_payment_id=provider_payment_id)

        cls.get_logger().info(
            "Payment captured",
            extra={
                "payment_id": str(payment.id),
                "request_id": str(request_id),
                "amount_cents": amount_cents,
            },
        )
        return payment

    @classmethod
    def mark_held(cls, payment_id: uuid.UUID, provider_reference: str = "") -> Payment:
        """
        Move captured funds into escrow and start the auto-release clock.

        A payment already in ESCROW_HELD is returned unchanged with a warning.

        Raises:
            NotFound: If the payment does not exist
            InvalidTransition: If the payment is neither CAPTURED nor ESCROW_HELD
        """
        with transaction.atomic():
            payment = cls._lock_payment(id=payment_id)

            if payment.status == PaymentStatus.ESCROW_HELD:
                cls.get_logger().warning(
                    "Payment already held in escrow",
                    extra={"payment_id": str(payment.id)},
                )
                return payment

            days = get_provider().get().auto_release_days
            cls._transition(
                payment,
                "hold",
                provider_reference=provider_reference,
                auto_release_at=timezone.now() + timedelta(days=days),
            )
            payment.save()

        cls.get_logger().info(
            "Payment held in escrow",
            extra={
                "payment_id": str(payment.id),
                "auto_release_at": payment.auto_release_at.isoformat(),
            },
        )
        return payment

    @classmethod
    def set_auto_release_date(cls, request_id: uuid.UUID, days: int) -> Payment:
        """
        Move the auto-release deadline of a held payment to now + ``days``.

        Raises:
            InvalidTransition: If the payment is not in ESCROW_HELD
        """
        with transaction.atomic():
            payment = cls._lock_payment(request_id=request_id)
            if payment.status != PaymentStatus.ESCROW_HELD:
                raise InvalidTransition(
                    f"Cannot reschedule payment in '{payment.status}' state",
                    details={"payment_id": str(payment.id), "current_state": payment.status},
                )
            payment.auto_release_at = timezone.now() + timedelta(days=days)
            payment.save(update_fields=["auto_release_at", "updated_at"])
        return payment

    # =========================================================================
    # Release
    # =========================================================================

    @classmethod
    def release(
        cls,
        request_id: uuid.UUID,
        released_by: str | None,
        is_auto_release: bool = False,
        commission_percent: Decimal | None = None,
        withholding_percent: Decimal | None = None,
    ) -> ReleaseResult:
        """
        Release held funds to the payee side.

        The unit of work must be completed unless this is a deadline
        release. A single payee is credited directly (after commission,
        and after withholding for individual professionals); with several
        assignees the funds wait for the distribution engine.

        Safe to call repeatedly: a second call returns the first result
        with ``already_released=True`` and writes nothing.

        Args:
            request_id: Unit of work the payment belongs to
            released_by: Releasing actor
            is_auto_release: Deadline release; skips the completion check
                and records a null releaser
            commission_percent: Override of the platform commission
            withholding_percent: Override of the withholding rate

        Raises:
            NotFound: If no held payment exists for the request
            InvalidTransition: If the unit of work is not completed
        """
        actor = SYSTEM_AUTO_RELEASE_ACTOR if is_auto_release else released_by
        try:
            return cls._release(
                request_id,
                actor,
                require_completion=not is_auto_release,
                is_auto_release=is_auto_release,
                commission_percent=commission_percent,
                withholding_percent=withholding_percent,
            )
        except AlreadyReleased as e:
            cls.get_logger().info(
                "Payment already released",
                extra={"request_id": str(request_id), "payment_id": str(e.result.payment.id)},
            )
            return e.result

    @classmethod
    def _release(
        cls,
        request_id: uuid.UUID,
        actor: str | None,
        require_completion: bool = True,
        is_auto_release: bool = False,
        allow_disputed: bool = False,
        commission_percent: Decimal | None = None,
        withholding_percent: Decimal | None = None,
    ) -> ReleaseResult:
        provider = cls.get_work_status_provider()
        policy = get_provider().get()

        with transaction.atomic():
            payment = cls._lock_payment(request_id=request_id)

            if payment.released_to_payee:
                raise AlreadyReleased(
                    f"Payment {payment.id} was already released",
                    result=ReleaseResult(
                        payment=payment,
                        released_amount_cents=payment.released_amount_cents or 0,
                        already_released=True,
                    ),
                )

            allowed = HELD_STATUSES if allow_disputed else (PaymentStatus.ESCROW_HELD,)
            if payment.status not in allowed:
                raise NotFound(
                    f"No held payment for request {request_id}",
                    error_code="PAYMENT_NOT_HELD",
                    details={"request_id": str(request_id), "current_state": payment.status},
                )

            if payment.refund_in_flight:
                raise InvalidTransition(
                    "A refund is in progress for this payment",
                    error_code="REFUND_IN_PROGRESS",
                    details={"payment_id": str(payment.id), "request_id": str(request_id)},
                )

            if require_completion:
                status = provider.get_status(request_id)
                if not cls._is_completed(status):
                    raise InvalidTransition(
                        "Funds can only be released for completed work",
                        error_code="WORK_NOT_COMPLETED",
                        details={"request_id": str(request_id), "work_status": str(status)},
                    )

            rate = (
                to_percentage(commission_percent)
                if commission_percent is not None
                else policy.commission_percent_for(payment.payee_type)
            )
            commission = percent_of(payment.amount_cents, rate)
            released_amount = payment.amount_cents - commission

            assignees = provider.get_assignees(request_id)
            if len(assignees) <= 1:
                cls._credit_single_payee(
                    payment,
                    released_amount,
                    assignees,
                    withholding_percent
                    if withholding_percent is not None
                    else policy.tax_withholding_percent,
                )

            cls._transition(payment, "release", actor, released_amount)
            payment.save()

            send_on_commit(
                payment_released,
                sender=Payment,
                payment=payment,
                released_amount_cents=released_amount,
                auto_release=is_auto_release,
            )

        cls.get_logger().info(
            "Escrow released",
            extra={
                "payment_id": str(payment.id),
                "request_id": str(request_id),
                "released_amount_cents": released_amount,
                "commission_cents": commission,
                "auto_release": is_auto_release,
                "payee_count": max(len(assignees), 1),
            },
        )
        return ReleaseResult(payment=payment, released_amount_cents=released_amount)

    @classmethod
    def _credit_single_payee(
        cls,
        payment: Payment,
        released_amount: int,
        assignees: list[Assignee],
        withholding_percent: Decimal,
    ) -> None:
        """Credit the one payee inside the release transaction."""
        payee_id = assignees[0].payee_id if assignees else payment.payee_id
        owner_type = payment.payee_type if payee_id == payment.payee_id else PayeeType.PROFESSIONAL
        if released_amount <= 0:
            return

        meta_kwargs = {
            "reference_type": "payment",
            "reference_id": str(payment.id),
            "description": f"Escrow release for request {payment.request_id}",
            "idempotency_key": f"release:{payment.id}",
        }

        if owner_type == PayeeType.FIRM:
            WalletLedger.credit(
                payee_id,
                released_amount,
                LedgerEntryMeta(**meta_kwargs),
                owner_type=owner_type,
                transaction_type=WalletTransactionType.RECEIVED,
            )
            return

        wallet = WalletLedger.get_or_create_wallet(payee_id, owner_type)
        withholding = TaxService.compute_withholding(released_amount, withholding_percent)
        if withholding.net_amount_cents > 0:
            WalletLedger.credit(
                payee_id,
                withholding.net_amount_cents,
                LedgerEntryMeta(tax_withheld_cents=withholding.tax_amount_cents, **meta_kwargs),
                owner_type=owner_type,
                transaction_type=WalletTransactionType.RECEIVED,
            )
        TaxService.record(payee_id, payment, withholding, tax_identifier=wallet.tax_identifier)

    @classmethod
    def complete_release(cls, request_id: uuid.UUID) -> Payment:
        """
        Settle a released payment, making it distributable.

        Transition: PENDING_RELEASE -> COMPLETED. A completed payment is
        returned unchanged.
        """
        with transaction.atomic():
            payment = cls._lock_payment(request_id=request_id)
            if payment.status == PaymentStatus.COMPLETED:
                return payment
            cls._transition(payment, "complete")
            payment.save()

        cls.get_logger().info(
            "Release settled",
            extra={"payment_id": str(payment.id), "request_id": str(request_id)},
        )
        return payment

    # =========================================================================
    # Disputes
    # =========================================================================

    @classmethod
    def hold_for_dispute(cls, request_id: uuid.UUID, reason: str) -> Payment:
        """
        Freeze a held payment and stop its auto-release clock.

        Raises:
            NotFound: If the request has no payment
            InvalidTransition: If the payment is not in ESCROW_HELD or a
                refund is in progress
        """
        with transaction.atomic():
            payment = cls._lock_payment(request_id=request_id)
            if payment.refund_in_flight:
                raise InvalidTransition(
                    "A refund is in progress for this payment",
                    error_code="REFUND_IN_PROGRESS",
                    details={"payment_id": str(payment.id), "request_id": str(request_id)},
                )
            cls._transition(payment, "hold_for_dispute", reason)
            payment.save()

        cls.get_logger().warning(
            "Payment put on dispute hold",
            extra={"payment_id": str(payment.id), "request_id": str(request_id)},
        )
        return payment

    @classmethod
    def resolve_dispute(
        cls,
        request_id: uuid.UUID,
        resolution: DisputeResolution | str,
        percentage: Decimal | int | str | None = None,
    ) -> Payment:
        """
        Close a dispute by releasing or refunding the held funds.

        RELEASE goes through release without the completion check.
        REFUND refunds 100% unless a percentage is given; PARTIAL_REFUND
        requires one.

        Raises:
            InvalidTransition: If the payment is not in DISPUTE_HELD
            ValidationError: If a partial refund has no percentage
        """
        payment = cls.get_payment(request_id)
        if payment.status != PaymentStatus.DISPUTE_HELD:
            raise InvalidTransition(
                f"Payment in '{payment.status}' state has no open dispute",
                details={"payment_id": str(payment.id), "current_state": payment.status},
            )

        resolution = DisputeResolution(resolution)
        cls.get_logger().info(
            "Resolving dispute",
            extra={
                "payment_id": str(payment.id),
                "resolution": str(resolution),
                "percentage": str(percentage) if percentage is not None else None,
            },
        )

        if resolution == DisputeResolution.RELEASE:
            try:
                result = cls._release(
                    request_id,
                    DISPUTE_RESOLUTION_ACTOR,
                    require_completion=False,
                    allow_disputed=True,
                )
            except AlreadyReleased as e:
                result = e.result
            return result.payment

        if resolution == DisputeResolution.PARTIAL_REFUND and percentage is None:
            raise ValidationError(
                "A partial refund needs a percentage",
                details={"resolution": str(resolution)},
            )
        if percentage is None:
            percentage = Decimal("100")

        return cls.refund(
            request_id,
            reason=f"Dispute resolved: {payment.dispute_reason}".strip(),
            percentage=percentage,
        )

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def get_refund_eligibility(cls, request_id: uuid.UUID) -> dict:
        """
        Recommended refund for a payment, without moving money.

        Returns:
            Dict with eligible, payment_status, work_progress and, when
            eligible, the computed RefundBreakdown
        """
        payment = cls.get_payment(request_id)
        progress = cls.get_work_status_provider().get_status(request_id)
        eligible = payment.status in HELD_STATUSES

        breakdown = None
        if eligible:
            breakdown = cls._calculate(payment, progress, None)

        return {
            "eligible": eligible,
            "payment_status": payment.status,
            "work_progress": breakdown.work_progress if breakdown else str(progress),
            "recommended_percentage": breakdown.percentage if breakdown else None,
            "breakdown": breakdown,
        }

    @staticmethod
    def _calculate(payment: Payment, progress, percentage) -> RefundBreakdown:
        policy = get_provider().get()
        return calculate_refund(
            payment.amount_cents,
            payment.platform_fee_cents,
            progress,
            percentage,
            fee_percent=policy.refund_processing_fee_percent,
            fee_min_cents=policy.refund_processing_fee_min_cents,
            fee_max_cents=policy.refund_processing_fee_max_cents,
        )

    @classmethod
    def refund(
        cls,
        request_id: uuid.UUID,
        reason: str,
        percentage: Decimal | int | str | None = None,
    ) -> Payment:
        """
        Refund a held payment to the client.

        The percentage defaults to the recommendation for the current work
        progress. 100% ends in REFUNDED, anything less in PARTIALLY_REFUNDED.
        Funds are still in escrow, so no wallet entry is written.

        Raises:
            NotFound: If the request has no payment
            InvalidTransition: If the payment is not held
            ValidationError: If the refund amount works out to zero
            LockAcquisitionError: If another refund holds the payment
            GatewayError: If the gateway refund fails. A permanent failure drops
                the claim; a transient one keeps it, so release stays blocked
                until the refund is retried
        """
        payment = cls.get_payment(request_id)

        with DistributedLock(f"escrow:refund:{payment.id}", ttl=REFUND_LOCK_TTL):
            progress = cls.get_work_status_provider().get_status(request_id)

            # Phase 1: claim the refund under the row lock. Release and
            # dispute holds refuse a payment with a claim in flight.
            with transaction.atomic():
                payment = cls._lock_payment(id=payment.id)
                if payment.status not in HELD_STATUSES:
                    raise InvalidTransition(
                        f"Cannot refund payment in '{payment.status}' state",
                        details={"payment_id": str(payment.id), "current_state": payment.status},
                    )

                breakdown = cls._calculate(payment, progress, percentage)
                if breakdown.final_refund_amount_cents <= 0:
                    raise ValidationError(
                        "Refund amount must be positive",
                        error_code="NOTHING_TO_REFUND",
                        details={"percentage": str(breakdown.percentage)},
                    )

                payment.refund_requested_at = timezone.now()
                payment.save(update_fields=["refund_requested_at", "updated_at"])

            # Phase 2: gateway call outside any transaction
            try:
                provider_refund_id = cls.get_gateway().refund(
                    payment.provider_payment_id,
                    breakdown.final_refund_amount_cents,
                    idempotency_key=IdempotencyKeyGenerator.generate("refund", payment.id),
                )
            except GatewayError as e:
                if e.is_retryable:
                    # Outcome unknown; the claim stays until refund is retried
                    cls.get_logger().warning(
                        f"Transient gateway error during refund, claim kept: {type(e).__name__}",
                        extra={"payment_id": str(payment.id), "error": str(e)},
                    )
                else:
                    Payment.objects.filter(id=payment.id).update(
                        refund_requested_at=None,
                        version=F("version") + 1,
                    )
                    cls.get_logger().error(
                        f"Gateway refused refund: {type(e).__name__}",
                        extra={"payment_id": str(payment.id), "error": str(e)},
                    )
                raise

            # Phase 3: record the outcome
            with transaction.atomic():
                payment = cls._lock_payment(id=payment.id)
                transition = "refund" if breakdown.is_full_refund else "partially_refund"
                cls._transition(
                    payment,
                    transition,
                    refund_amount_cents=breakdown.refund_amount_cents,
                    percentage=breakdown.percentage,
                    processing_fee_cents=breakdown.processing_fee_cents,
                    final_refund_amount_cents=breakdown.final_refund_amount_cents,
                    reason=reason,
                    provider_refund_id=provider_refund_id,
                )
                payment.save()

        cls.get_logger().info(
            "Payment refunded",
            extra={
                "payment_id": str(payment.id),
                "percentage": str(breakdown.percentage),
                "final_refund_amount_cents": breakdown.final_refund_amount_cents,
                "processing_fee_cents": breakdown.processing_fee_cents,
                "provider_refund_id": provider_refund_id,
            },
        )
        return payment

    # =========================================================================
    # Auto-Release Sweep
    # =========================================================================

    @classmethod
    def run_auto_release_sweep(cls, now=None) -> int:
        """
        Release every held payment whose deadline has passed.

        Oldest deadline first, at most BATCH_SIZE per run. A failing payment
        is logged and left for the next run; payments released concurrently
        are counted as already handled.

        Returns:
            Number of payments released by this run
        """
        now = now or timezone.now()
        due = list(
            Payment.objects.filter(
                status=PaymentStatus.ESCROW_HELD,
                auto_release_at__lte=now,
                refund_requested_at__isnull=True,
            )
            .order_by("auto_release_at")
            .values_list("request_id", flat=True)[:BATCH_SIZE]
        )

        cls.get_logger().info(
            f"Auto-release sweep found {len(due)} due payment(s)",
            extra={"due_count": len(due)},
        )

        released = 0
        already_handled = 0
        for request_id in due:
            try:
                result = cls.release(request_id, SYSTEM_AUTO_RELEASE_ACTOR, is_auto_release=True)
            except Exception as e:
                cls.get_logger().error(
                    f"Failed to auto-release payment: {e}",
                    extra={"request_id": str(request_id)},
                    exc_info=True,
                )
                continue

            if result.already_released:
                already_handled += 1
            else:
                released += 1

        cls.get_logger().info(
            f"Auto-release sweep complete: released {released}/{len(due)}",
            extra={
                "released_count": released,
                "already_handled_count": already_handled,
                "failed_count": len(due) - released - already_handled,
            },
        )
        return released
