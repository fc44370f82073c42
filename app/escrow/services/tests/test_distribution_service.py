"""
Tests for the distribution engine.

The worked example used throughout: a firm payment of 100.00 INR at 15%
commission split 60/40 between two professionals with 10% withholding.

    distributable      = 10000 - 1500      = 8500
    shares             = 5100 / 3400
    tax withheld       = 510 / 340
    credited           = 4590 / 3060
    group wallet       = 8500 - 1500       = 7000
"""

import uuid
from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from escrow.exceptions import (
    AlreadyDistributed,
    InvalidTransition,
    MissingTemplate,
    NotFound,
    PercentageMismatch,
    Unauthorized,
)
from escrow.models import Distribution, DistributionShare, Payment, TaxRecord, WalletTransaction
from escrow.protocols import Assignee
from escrow.services import DistributionService, ShareSpec, TaxService
from escrow.services.distribution_service import allocate, validate_percentages
from escrow.state_machines import (
    DistributionMode,
    FirmRole,
    PayeeType,
    PaymentStatus,
    WalletTransactionType,
)
from escrow.tests.factories import DistributionTemplateFactory, PaymentFactory
from escrow.wallet.services import WalletLedger

SIXTY_FORTY = [ShareSpec("pro-a", Decimal("60")), ShareSpec("pro-b", Decimal("40"))]


@pytest.fixture
def firm_payment():
    """Settled firm payment, ready for distribution."""
    return PaymentFactory(
        payee_id="firm-1",
        payee_type=PayeeType.FIRM,
        status=PaymentStatus.COMPLETED,
    )


def shares_by_payee(distribution):
    return {share.payee_id: share for share in distribution.shares.all()}


class TestAllocationHelpers:
    def test_allocate_exact(self):
        assert allocate(8500, [Decimal("60"), Decimal("40")]) == [5100, 3400]

    def test_allocate_last_share_takes_remainder(self):
        thirds = [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]

        parts = allocate(1000, thirds)

        assert parts == [333, 333, 334]
        assert sum(parts) == 1000

    def test_allocate_empty(self):
        assert allocate(1000, []) == []

    def test_validate_percentages_tolerance(self):
        assert validate_percentages([Decimal("33.33")] * 3) == Decimal("99.99")

    def test_validate_percentages_mismatch(self):
        with pytest.raises(PercentageMismatch) as exc_info:
            validate_percentages([Decimal("50"), Decimal("49.98")])

        assert exc_info.value.total == Decimal("99.98")


# =============================================================================
# Setup
# =============================================================================


@pytest.mark.django_db
class TestSetupDistribution:
    """Tests for setup_distribution."""

    def test_custom_split(self, firm_payment):
        distribution = DistributionService.setup_distribution(
            firm_payment.request_id, DistributionMode.CUSTOM, shares=SIXTY_FORTY
        )

        assert distribution.group_id == "firm-1"
        assert distribution.commission_percent == Decimal("15.00")
        assert distribution.platform_commission_cents == 1500
        assert distribution.distributable_amount_cents == 8500
        assert distribution.is_approved is True

        shares = shares_by_payee(distribution)
        assert shares["pro-a"].total_amount_cents == 5100
        assert shares["pro-b"].total_amount_cents == 3400

    def test_bonus_pool_is_split_by_percentage(self, firm_payment):
        distribution = DistributionService.setup_distribution(
            firm_payment.request_id,
            "custom",
            shares=SIXTY_FORTY,
            early_completion_bonus_cents=600,
            quality_bonus_cents=400,
        )

        assert distribution.bonus_pool_cents == 1000
        shares = shares_by_payee(distribution)
        assert shares["pro-a"].bonus_amount_cents == 600
        assert shares["pro-a"].total_amount_cents == 5700
        assert shares["pro-b"].bonus_amount_cents == 400
        assert shares["pro-b"].total_amount_cents == 3800

    def test_mismatched_percentages_persist_nothing(self, firm_payment):
        with pytest.raises(PercentageMismatch):
            DistributionService.setup_distribution(
                firm_payment.request_id,
                DistributionMode.CUSTOM,
                shares=[ShareSpec("pro-a", 60), ShareSpec("pro-b", 30)],
            )

        assert not Distribution.objects.exists()
        assert not DistributionShare.objects.exists()

    def test_thirds_within_tolerance(self, firm_payment):
        distribution = DistributionService.setup_distribution(
            firm_payment.request_id,
            DistributionMode.CUSTOM,
            shares=[ShareSpec(f"pro-{n}", "33.33") for n in range(3)],
        )

        totals = [s.total_amount_cents for s in distribution.shares.all()]
        assert sum(totals) == 8500

    @pytest.mark.parametrize(
        "shares",
        [
            [],
            [ShareSpec("pro-a", 50), ShareSpec("pro-a", 50)],
            [ShareSpec("pro-a", 110), ShareSpec("pro-b", -10)],
            [ShareSpec("pro-a", 100), ShareSpec("pro-b", 0)],
        ],
    )
    def test_invalid_shares(self, firm_payment, shares):
        with pytest.raises(ValidationError):
            DistributionService.setup_distribution(
                firm_payment.request_id, DistributionMode.CUSTOM, shares=shares
            )

    def test_negative_bonus(self, firm_payment):
        with pytest.raises(ValidationError):
            DistributionService.setup_distribution(
                firm_payment.request_id,
                DistributionMode.CUSTOM,
                shares=SIXTY_FORTY,
                referral_bonus_cents=-1,
            )

    def test_template_mode_reads_assignee_roles(self, firm_payment, work_status):
        DistributionTemplateFactory(
            group_id="firm-1", role=FirmRole.SENIOR_CA, default_percentage=Decimal("70")
        )
        DistributionTemplateFactory(
            group_id="firm-1", role=FirmRole.JUNIOR_CA, default_percentage=Decimal("30")
        )
        work_status.assignees[firm_payment.request_id] = [
            Assignee("pro-a", role=FirmRole.SENIOR_CA),
            Assignee("pro-b", role=FirmRole.JUNIOR_CA),
        ]

        distribution = DistributionService.setup_distribution(
            firm_payment.request_id, DistributionMode.TEMPLATE
        )

        shares = shares_by_payee(distribution)
        assert shares["pro-a"].role == FirmRole.SENIOR_CA
        assert shares["pro-a"].percentage == Decimal("70.00")
        assert shares["pro-a"].total_amount_cents == 5950
        assert shares["pro-b"].total_amount_cents == 2550

    def test_template_mode_missing_role(self, firm_payment, work_status):
        DistributionTemplateFactory(group_id="firm-1", role=FirmRole.SENIOR_CA)
        work_status.assignees[firm_payment.request_id] = [
            Assignee("pro-a", role=FirmRole.SENIOR_CA),
            Assignee("pro-b", role=FirmRole.CONSULTANT),
        ]

        with pytest.raises(MissingTemplate):
            DistributionService.setup_distribution(
                firm_payment.request_id, DistributionMode.TEMPLATE
            )

    def test_setup_again_replaces_pending_distribution(self, firm_payment):
        first = DistributionService.setup_distribution(
            firm_payment.request_id, DistributionMode.CUSTOM, shares=SIXTY_FORTY
        )

        second = DistributionService.setup_distribution(
            firm_payment.request_id,
            DistributionMode.CUSTOM,
            shares=[ShareSpec("pro-c", 100)],
        )

        assert second.id == first.id
        assert list(second.shares.values_list("payee_id", flat=True)) == ["pro-c"]
        assert Distribution.objects.count() == 1

    def test_setup_after_execution_is_rejected(self, firm_payment):
        DistributionService.setup_distribution(
            firm_payment.request_id, DistributionMode.CUSTOM, shares=SIXTY_FORTY
        )
        DistributionService.distribute(firm_payment.id)

        with pytest.raises(AlreadyDistributed):
            DistributionService.setup_distribution(
                firm_payment.request_id, DistributionMode.CUSTOM, shares=SIXTY_FORTY
            )

    def test_unknown_request(self):
        with pytest.raises(NotFound):
            DistributionService.setup_distribution(
                uuid.uuid4(), DistributionMode.CUSTOM, shares=SIXTY_FORTY
            )


# =============================================================================
# Approval
# =============================================================================


@pytest.mark.django_db
class TestApproveShare:
    """Tests for approve_share."""

    @pytest.fixture
    def pending(self, firm_payment):
        return DistributionService.setup_distribution(
            firm_payment.request_id,
            DistributionMode.CUSTOM,
            shares=SIXTY_FORTY,
            requires_approval=True,
        )

    def test_needs_every_share(self, pending):
        DistributionService.approve_share(pending.id, "pro-a", signature="sig-a")
        pending.refresh_from_db()
        assert pending.is_approved is False

        DistributionService.approve_share(pending.id, "pro-b")
        pending.refresh_from_db()
        assert pending.is_approved is True
        assert pending.approved_at is not None

        shares = shares_by_payee(pending)
        assert shares["pro-a"].signature == "sig-a"
        assert shares["pro-b"].signature.startswith("auto-")

    def test_stranger_cannot_approve(self, pending):
        with pytest.raises(Unauthorized):
            DistributionService.approve_share(pending.id, "pro-z")

    def test_cannot_approve_someone_elses_share(self, pending):
        other = pending.shares.get(payee_id="pro-b")

        with pytest.raises(Unauthorized):
            DistributionService.approve_share(pending.id, "pro-a", share_id=other.id)

    def test_repeat_approval_is_harmless(self, pending):
        DistributionService.approve_share(pending.id, "pro-a", signature="first")
        DistributionService.approve_share(pending.id, "pro-a", signature="second")

        assert pending.shares.get(payee_id="pro-a").signature == "first"

    def test_unapproved_distribution_cannot_run(self, pending, firm_payment):
        DistributionService.approve_share(pending.id, "pro-a")

        with pytest.raises(InvalidTransition) as exc_info:
            DistributionService.distribute(firm_payment.id)

        assert exc_info.value.error_code == "DISTRIBUTION_NOT_APPROVED"

    def test_missing_distribution(self):
        with pytest.raises(NotFound):
            DistributionService.approve_share(uuid.uuid4(), "pro-a")


# =============================================================================
# Execution
# =============================================================================


@pytest.mark.django_db
class TestDistribute:
    """Tests for distribute."""

    @pytest.fixture
    def distribution(self, firm_payment):
        return DistributionService.setup_distribution(
            firm_payment.request_id, DistributionMode.CUSTOM, shares=SIXTY_FORTY
        )

    def test_worked_example(self, firm_payment, distribution):
        result = DistributionService.distribute(firm_payment.id)

        assert result.is_distributed is True
        assert result.distributed_at is not None

        assert WalletLedger.get_wallet("pro-a").balance_cents == 4590
        assert WalletLedger.get_wallet("pro-b").balance_cents == 3060
        group = WalletLedger.get_wallet("firm-1", PayeeType.FIRM)
        assert group.balance_cents == 7000
        assert list(group.transactions.order_by("sequence").values_list("type", flat=True)) == [
            WalletTransactionType.RECEIVED,
            WalletTransactionType.COMMISSION_DEDUCTED,
        ]

        shares = shares_by_payee(result)
        assert shares["pro-a"].tax_withheld_cents == 510
        assert shares["pro-a"].net_amount_cents == 4590
        assert shares["pro-b"].tax_withheld_cents == 340

        records = TaxRecord.objects.filter(payment=firm_payment)
        assert records.count() == 2
        assert {r.share_id for r in records} == {s.id for s in shares.values()}

    def test_every_wallet_chain_is_consistent(self, firm_payment, distribution):
        DistributionService.distribute(firm_payment.id)

        for owner_id, owner_type in [
            ("pro-a", PayeeType.PROFESSIONAL),
            ("pro-b", PayeeType.PROFESSIONAL),
            ("firm-1", PayeeType.FIRM),
        ]:
            assert WalletLedger.verify_chain(WalletLedger.get_wallet(owner_id, owner_type))

    def test_commission_override_reprices_shares(self, firm_payment, distribution):
        result = DistributionService.distribute(firm_payment.id, commission_percent=10)

        assert result.platform_commission_cents == 1000
        assert result.distributable_amount_cents == 9000
        shares = shares_by_payee(result)
        assert shares["pro-a"].total_amount_cents == 5400
        assert shares["pro-b"].total_amount_cents == 3600
        assert WalletLedger.get_wallet("firm-1", PayeeType.FIRM).balance_cents == 8000

        payment = Payment.objects.get(pk=firm_payment.id)
        assert payment.platform_fee_cents == 1000
        assert payment.released_amount_cents == 9000

    def test_no_override_leaves_payment_snapshot(self, firm_payment, distribution):
        before = Payment.objects.get(pk=firm_payment.id)

        DistributionService.distribute(firm_payment.id)

        payment = Payment.objects.get(pk=firm_payment.id)
        assert payment.platform_fee_cents == before.platform_fee_cents
        assert payment.released_amount_cents == before.released_amount_cents

    def test_failure_rolls_back_everything(self, firm_payment, distribution, mocker):
        mocker.patch.object(TaxService, "record", side_effect=RuntimeError("tax store down"))

        with pytest.raises(RuntimeError):
            DistributionService.distribute(firm_payment.id)

        distribution.refresh_from_db()
        assert distribution.is_distributed is False
        assert not WalletTransaction.objects.exists()
        assert not TaxRecord.objects.exists()

    def test_runs_once(self, firm_payment, distribution):
        DistributionService.distribute(firm_payment.id)

        with pytest.raises(AlreadyDistributed):
            DistributionService.distribute(firm_payment.id)

        assert WalletLedger.get_wallet("pro-a").balance_cents == 4590

    def test_requires_completed_payment(self):
        payment = PaymentFactory(held=True, payee_id="firm-2", payee_type=PayeeType.FIRM)
        DistributionService.setup_distribution(
            payment.request_id, DistributionMode.CUSTOM, shares=SIXTY_FORTY
        )

        with pytest.raises(InvalidTransition):
            DistributionService.distribute(payment.id)

    def test_requires_distribution(self, firm_payment):
        with pytest.raises(NotFound) as exc_info:
            DistributionService.distribute(firm_payment.id)

        assert exc_info.value.error_code == "DISTRIBUTION_NOT_FOUND"

    def test_signal_after_commit(
        self, firm_payment, distribution, captured_signals, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            DistributionService.distribute(firm_payment.id)

        [sent] = captured_signals["distribution_executed"]
        assert sent["distribution"].id == distribution.id

    def test_stats(self, firm_payment, distribution):
        DistributionService.distribute(firm_payment.id)
        other = PaymentFactory(payee_id="firm-1", payee_type=PayeeType.FIRM, amount_cents=5000)
        DistributionService.setup_distribution(
            other.request_id, DistributionMode.CUSTOM, shares=SIXTY_FORTY
        )

        stats = DistributionService.get_distribution_stats("firm-1")

        assert stats == {
            "total": 2,
            "approved": 2,
            "distributed": 1,
            "pending": 1,
            "total_amount_cents": 15000,
        }


# =============================================================================
# Templates
# =============================================================================


@pytest.mark.django_db
class TestTemplates:
    """Tests for template management."""

    def test_upsert_creates_then_updates(self):
        created = DistributionService.upsert_template("firm-1", FirmRole.SENIOR_CA, 60)
        updated = DistributionService.upsert_template(
            "firm-1", FirmRole.SENIOR_CA, 55, min_percentage=40, max_percentage=70
        )

        assert updated.id == created.id
        assert updated.default_percentage == Decimal("55.00")
        assert updated.min_percentage == Decimal("40.00")

    def test_upsert_rejects_inconsistent_bounds(self):
        with pytest.raises(ValidationError):
            DistributionService.upsert_template(
                "firm-1", FirmRole.SENIOR_CA, 80, max_percentage=70
            )

    def test_list_and_deactivate(self):
        DistributionService.upsert_template("firm-1", FirmRole.SENIOR_CA, 60)
        DistributionService.upsert_template("firm-1", FirmRole.JUNIOR_CA, 40)

        DistributionService.deactivate_template("firm-1", FirmRole.JUNIOR_CA)

        active = DistributionService.list_templates("firm-1")
        assert [t.role for t in active] == [FirmRole.SENIOR_CA]
        assert DistributionService.list_templates("firm-1", include_inactive=True).count() == 2

    def test_deactivate_missing_template(self):
        with pytest.raises(NotFound) as exc_info:
            DistributionService.deactivate_template("firm-1", FirmRole.CONSULTANT)

        assert exc_info.value.error_code == "TEMPLATE_NOT_FOUND"
