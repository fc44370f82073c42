"""
End-to-end money flows through the escrow engine.

Each test walks one payment from capture to its final resting place:
a firm payment split across its team, an individual professional paid
by deadline release, and a cancellation refunded to the client.
"""

import uuid
from decimal import Decimal

import pytest
from freezegun import freeze_time

from escrow.exceptions import NotFound
from escrow.models import Payment, TaxRecord, WalletBalance
from escrow.protocols import Assignee
from escrow.services import (
    DistributionService,
    EscrowService,
    PayoutDestination,
    PayoutService,
)
from escrow.state_machines import (
    DistributionMode,
    FirmRole,
    PayeeType,
    PaymentStatus,
    PayoutMethod,
    PayoutRequestStatus,
    WorkProgress,
)
from escrow.wallet.services import WalletLedger
from escrow.workers import process_due_releases, process_single_payout

UPI = PayoutDestination(method=PayoutMethod.UPI, upi_id="payee@okbank")


def pay_out(payee_id, amount_cents):
    payout = PayoutService.request_payout(payee_id, amount_cents, UPI).data
    PayoutService.approve_payout(payout.id, approved_by="ops-1")
    assert process_single_payout(str(payout.id))["status"] == "completed"
    return payout


@pytest.mark.django_db
class TestFirmJourney:
    """Capture, release to a firm, distribute to its team, pay out a member."""

    def test_full_flow(self, work_status, captured_signals, django_capture_on_commit_callbacks):
        request_id = uuid.uuid4()
        work_status.assignees[request_id] = [
            Assignee("pro-a", role=FirmRole.SENIOR_CA),
            Assignee("pro-b", role=FirmRole.JUNIOR_CA),
        ]
        DistributionService.upsert_template("firm-1", FirmRole.SENIOR_CA, 60)
        DistributionService.upsert_template("firm-1", FirmRole.JUNIOR_CA, 40)

        with django_capture_on_commit_callbacks(execute=True):
            payment = EscrowService.capture(
                request_id, "pi_firm", 10000, "client-1", "firm-1", payee_type=PayeeType.FIRM
            )
            EscrowService.mark_held(payment.id, provider_reference="ch_firm")

            # Two assignees: the release waits for the distribution engine
            release = EscrowService.release(request_id, released_by="client-1")
            assert release.released_amount_cents == 8500
            assert not WalletBalance.objects.exists()

            EscrowService.complete_release(request_id)

            distribution = DistributionService.setup_distribution(
                request_id, DistributionMode.TEMPLATE, requires_approval=True
            )
            DistributionService.approve_share(distribution.id, "pro-a", signature="sig-a")
            DistributionService.approve_share(distribution.id, "pro-b", signature="sig-b")
            DistributionService.distribute(payment.id)

            pay_out("pro-a", 4000)

        assert WalletLedger.get_wallet("firm-1", PayeeType.FIRM).balance_cents == 7000
        assert WalletLedger.get_wallet("pro-b").balance_cents == 3060

        pro_a = WalletLedger.get_wallet("pro-a")
        assert pro_a.balance_cents == 590
        assert pro_a.total_withdrawn_cents == 4000
        assert pro_a.pending_payouts_cents == 0

        taxes = dict(TaxRecord.objects.values_list("payee_id", "tax_amount_cents"))
        assert taxes == {"pro-a": 510, "pro-b": 340}

        for wallet in WalletBalance.objects.all():
            assert WalletLedger.verify_chain(wallet)

        assert len(captured_signals["payment_released"]) == 1
        assert len(captured_signals["distribution_executed"]) == 1
        assert len(captured_signals["payout_completed"]) == 1


@pytest.mark.django_db
class TestProfessionalJourney:
    """A client never confirms; the deadline releases the funds."""

    def test_auto_release_then_payout(self, work_status):
        request_id = uuid.uuid4()
        work_status.statuses[request_id] = WorkProgress.IN_PROGRESS

        with freeze_time("2026-06-01 10:00:00"):
            payment = EscrowService.capture_confirmed(
                request_id, "pi_pro", 10000, "client-1", "pro-1"
            )
            EscrowService.mark_held(payment.id)

        with freeze_time("2026-06-07 10:00:00"):
            assert process_due_releases()["released_count"] == 0

        with freeze_time("2026-06-08 10:00:01"):
            assert process_due_releases() == {"status": "completed", "released_count": 1}

        payment = Payment.objects.get(pk=payment.pk)
        assert payment.status == PaymentStatus.PENDING_RELEASE
        assert payment.release_approved_by is None
        assert payment.platform_fee_cents == 1000

        record = TaxRecord.objects.get(payee_id="pro-1")
        assert record.financial_year == "FY 2026-2027"
        assert record.quarter == "Q1"
        assert record.tax_amount_cents == 900

        EscrowService.complete_release(request_id)
        payout = pay_out("pro-1", 8100)

        assert WalletLedger.get_wallet("pro-1").balance_cents == 0
        completed = PayoutService.list_payout_requests(
            payee_id="pro-1", status=PayoutRequestStatus.COMPLETED
        )
        assert [p.id for p in completed] == [payout.id]


@pytest.mark.django_db
class TestCancellationJourney:
    """Work never starts; the client gets everything back."""

    def test_refund_before_work_starts(self, gateway, work_status):
        request_id = uuid.uuid4()
        work_status.statuses[request_id] = WorkProgress.NOT_STARTED
        payment = EscrowService.capture(request_id, "pi_cancel", 10000, "client-1", "pro-1")
        EscrowService.mark_held(payment.id)

        eligibility = EscrowService.get_refund_eligibility(request_id)
        assert eligibility["recommended_percentage"] == Decimal("100")

        refunded = EscrowService.refund(request_id, reason="Client cancelled")

        assert refunded.status == PaymentStatus.REFUNDED
        assert refunded.final_refund_amount_cents == 10000
        assert gateway.refunds[0]["amount_cents"] == 10000
        assert not WalletBalance.objects.exists()

        with pytest.raises(NotFound):
            EscrowService.release(request_id, released_by="client-1")
