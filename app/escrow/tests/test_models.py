"""
Tests for escrow models and their django-fsm transitions.

Covers:
- Payment custody transitions and the fields each one sets
- PayoutRequest lifecycle
- Protected status fields and version increments
- Append-only WalletTransaction / TaxRecord rows
- DistributionTemplate validation
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from escrow.constants import SYSTEM_AUTO_RELEASE_ACTOR
from escrow.models import DistributionTemplate, TaxRecord
from escrow.state_machines import PaymentStatus, PayoutRequestStatus
from escrow.tests.factories import PaymentFactory, PayoutRequestFactory
from escrow.wallet.services import WalletLedger


@pytest.mark.django_db
class TestPaymentTransitions:
    """Tests for Payment state transitions."""

    def test_hold_moves_captured_to_escrow_held(self):
        payment = PaymentFactory()
        deadline = timezone.now() + timedelta(days=7)

        payment.hold(provider_reference="ch_123", auto_release_at=deadline)
        payment.save()

        assert payment.status == PaymentStatus.ESCROW_HELD
        assert payment.provider_reference == "ch_123"
        assert payment.escrow_held_at is not None
        assert payment.auto_release_at == deadline

    def test_release_records_actor_and_commission(self):
        payment = PaymentFactory(held=True)

        payment.release("client-7", 8500)
        payment.save()

        assert payment.status == PaymentStatus.PENDING_RELEASE
        assert payment.released_to_payee is True
        assert payment.release_approved_by == "client-7"
        assert payment.released_amount_cents == 8500
        assert payment.platform_fee_cents == 1500
        assert payment.auto_release_at is None

    def test_system_auto_release_stores_null_releaser(self):
        payment = PaymentFactory(held=True)

        payment.release(SYSTEM_AUTO_RELEASE_ACTOR, 9000)

        assert payment.release_approved_by is None

    def test_complete_after_release(self):
        payment = PaymentFactory(held=True)
        payment.release("client-7", 9000)
        payment.complete()
        payment.save()

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.completed_at is not None

    def test_dispute_hold_clears_deadline(self):
        payment = PaymentFactory(held=True)

        payment.hold_for_dispute("Work not delivered")

        assert payment.status == PaymentStatus.DISPUTE_HELD
        assert payment.auto_release_at is None
        assert payment.dispute_reason == "Work not delivered"

    def test_release_from_dispute_is_allowed(self):
        payment = PaymentFactory(held=True)
        payment.hold_for_dispute("Quality")

        payment.release("dispute-resolution", 9000)

        assert payment.status == PaymentStatus.PENDING_RELEASE

    def test_partial_refund_sets_refund_fields(self):
        payment = PaymentFactory(held=True)

        payment.partially_refund(
            refund_amount_cents=5000,
            percentage=Decimal("50.00"),
            processing_fee_cents=100,
            final_refund_amount_cents=4900,
            reason="Cancelled midway",
            provider_refund_id="re_1",
        )

        assert payment.status == PaymentStatus.PARTIALLY_REFUNDED
        assert payment.is_refunded is True
        assert payment.final_refund_amount_cents == 4900
        assert payment.refunded_at is not None

    @pytest.mark.parametrize(
        "transition,args",
        [
            ("release", ("client-1", 9000)),
            ("complete", ()),
            ("hold_for_dispute", ("reason",)),
        ],
    )
    def test_captured_payment_rejects_later_transitions(self, transition, args):
        payment = PaymentFactory()

        with pytest.raises(TransitionNotAllowed):
            getattr(payment, transition)(*args)

    def test_completed_payment_cannot_be_refunded(self):
        payment = PaymentFactory(held=True)
        payment.release("client-1", 9000)
        payment.complete()

        with pytest.raises(TransitionNotAllowed):
            payment.refund(
                refund_amount_cents=10000,
                percentage=Decimal("100"),
                processing_fee_cents=0,
                final_refund_amount_cents=10000,
                reason="late",
                provider_refund_id=None,
            )

    def test_status_cannot_be_assigned_directly(self):
        payment = PaymentFactory()

        with pytest.raises(AttributeError):
            payment.status = PaymentStatus.COMPLETED

    def test_save_increments_version(self):
        payment = PaymentFactory()
        assert payment.version == 1

        payment.hold(provider_reference="", auto_release_at=None)
        payment.save()

        assert payment.version == 2

    def test_amount_must_be_positive(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PaymentFactory(amount_cents=0)

    def test_str_shows_amount(self):
        payment = PaymentFactory(amount_cents=459000)

        assert "4590.00 INR" in str(payment)


@pytest.mark.django_db
class TestPayoutRequestTransitions:
    """Tests for PayoutRequest state transitions."""

    def test_happy_path(self):
        payout = PayoutRequestFactory()

        payout.approve(approved_by="ops-1")
        payout.start_processing()
        payout.complete(transaction_reference="UTR123")
        payout.save()

        assert payout.status == PayoutRequestStatus.COMPLETED
        assert payout.approved_by == "ops-1"
        assert payout.transaction_reference == "UTR123"
        assert payout.processed_at is not None

    def test_reject_from_approved(self):
        payout = PayoutRequestFactory()
        payout.approve(approved_by="ops-1")

        payout.reject(reason="Account closed")

        assert payout.status == PayoutRequestStatus.REJECTED
        assert payout.rejection_reason == "Account closed"

    def test_processing_cannot_be_rejected(self):
        payout = PayoutRequestFactory()
        payout.approve(approved_by="ops-1")
        payout.start_processing()

        with pytest.raises(TransitionNotAllowed):
            payout.reject(reason="too late")

    def test_requested_cannot_start_processing(self):
        payout = PayoutRequestFactory()

        with pytest.raises(TransitionNotAllowed):
            payout.start_processing()


@pytest.mark.django_db
class TestAppendOnlyRecords:
    """Tests for ImmutableMixin on ledger and tax rows."""

    def test_wallet_transaction_cannot_be_updated(self):
        entry = WalletLedger.credit("pro-1", 500)
        entry.description = "edited"

        with pytest.raises(ValueError, match="immutable"):
            entry.save()

    def test_wallet_transaction_cannot_be_deleted(self):
        entry = WalletLedger.credit("pro-1", 500)

        with pytest.raises(ValueError, match="cannot be deleted"):
            entry.delete()

    def test_tax_record_accepts_certificate_reference_only(self):
        record = TaxRecord.objects.create(
            payee_id="pro-1",
            payment=PaymentFactory(),
            taxable_amount_cents=5100,
            tax_rate=Decimal("10"),
            tax_amount_cents=510,
            net_amount_cents=4590,
            financial_year="FY 2026-2027",
            quarter="Q1",
        )

        record.certificate_reference = "CERT-1"
        record.save(update_fields=["certificate_reference"])

        record.tax_amount_cents = 0
        with pytest.raises(ValueError):
            record.save(update_fields=["tax_amount_cents"])


class TestDistributionTemplateClean:
    """Tests for DistributionTemplate.clean (no database needed)."""

    def test_valid_bounds(self):
        template = DistributionTemplate(
            group_id="firm-1",
            role="senior_ca",
            default_percentage=Decimal("60"),
            min_percentage=Decimal("40"),
            max_percentage=Decimal("80"),
        )

        template.clean()

    @pytest.mark.parametrize(
        "minimum,default,maximum",
        [
            ("70", "60", "80"),
            ("40", "90", "80"),
            ("0", "60", "120"),
        ],
    )
    def test_invalid_bounds(self, minimum, default, maximum):
        template = DistributionTemplate(
            group_id="firm-1",
            role="senior_ca",
            default_percentage=Decimal(default),
            min_percentage=Decimal(minimum),
            max_percentage=Decimal(maximum),
        )

        with pytest.raises(DjangoValidationError):
            template.clean()
