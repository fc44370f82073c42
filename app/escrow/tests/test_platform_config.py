"""
Tests for the cached platform policy.
"""

from decimal import Decimal

import pytest
from django.test import override_settings

from escrow.platform_config import PlatformPolicy, get_provider
from escrow.state_machines import PayeeType
from escrow.tests.factories import PlatformConfigFactory


@pytest.mark.django_db
class TestPlatformConfigProvider:
    """Tests for PlatformConfigProvider resolution and invalidation."""

    def test_falls_back_to_settings(self):
        policy = get_provider().get()

        assert policy.platform_fee_percent == Decimal("15.00")
        assert policy.individual_platform_fee_percent == Decimal("10.00")
        assert policy.tax_withholding_percent == Decimal("10.00")
        assert policy.auto_release_days == 7
        assert policy.min_payout_amount_cents == 1000

    @override_settings(PLATFORM_FEE_PERCENT=20, ESCROW_AUTO_RELEASE_DAYS=3)
    def test_settings_defaults_are_read_at_load(self):
        policy = get_provider().get()

        assert policy.platform_fee_percent == Decimal("20.00")
        assert policy.auto_release_days == 3

    def test_active_row_overrides_settings(self):
        PlatformConfigFactory(platform_fee_percent=Decimal("12.5"), auto_release_days=5)

        policy = get_provider().get()

        assert policy.platform_fee_percent == Decimal("12.50")
        assert policy.auto_release_days == 5

    def test_inactive_row_is_ignored(self):
        PlatformConfigFactory(platform_fee_percent=Decimal("30"), is_active=False)

        assert get_provider().get().platform_fee_percent == Decimal("15.00")

    def test_saving_a_row_invalidates_cached_policy(self):
        assert get_provider().get().tax_withholding_percent == Decimal("10.00")

        config = PlatformConfigFactory(tax_withholding_percent=Decimal("5"))
        assert get_provider().get().tax_withholding_percent == Decimal("5.00")

        config.tax_withholding_percent = Decimal("7")
        config.save()
        assert get_provider().get().tax_withholding_percent == Decimal("7.00")

    def test_policy_is_cached_between_reads(self, django_assert_num_queries):
        get_provider().get()

        with django_assert_num_queries(0):
            get_provider().get()


class TestPlatformPolicy:
    def test_commission_by_payee_type(self):
        policy = PlatformPolicy(
            platform_fee_percent=Decimal("15"),
            individual_platform_fee_percent=Decimal("10"),
            tax_withholding_percent=Decimal("10"),
            auto_release_days=7,
            min_payout_amount_cents=1000,
            refund_processing_fee_percent=Decimal("2"),
            refund_processing_fee_min_cents=10,
            refund_processing_fee_max_cents=100,
        )

        assert policy.commission_percent_for(PayeeType.FIRM) == Decimal("15")
        assert policy.commission_percent_for(PayeeType.PROFESSIONAL) == Decimal("10")
