"""
Resolved platform policy with an explicit, invalidated cache.

PlatformConfigProvider is built once in EscrowConfig.ready(), stored on
the app config, and reached by the services through ``get_provider()``. It reads the newest active
PlatformConfig row (falling back to settings when none exists), caches the
resolved values in a TTLCache, and drops the cache whenever a
PlatformConfig row is saved or deleted.

Usage:
    from escrow.platform_config import get_provider

    policy = get_provider().get()
    fee = policy.commission_percent_for(PayeeType.FIRM)  # Decimal("15.00")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.apps import apps
from django.conf import settings

from escrow.state_machines import PayeeType
from escrow.wallet.types import to_percentage

if TYPE_CHECKING:
    from core.cache import TTLCache

logger = logging.getLogger(__name__)

CACHE_KEY = "current"


@dataclass(frozen=True)
class PlatformPolicy:
    """Immutable snapshot of fee, tax and escrow policy."""

    platform_fee_percent: Decimal
    individual_platform_fee_percent: Decimal
    tax_withholding_percent: Decimal
    auto_release_days: int
    min_payout_amount_cents: int
    refund_processing_fee_percent: Decimal
    refund_processing_fee_min_cents: int
    refund_processing_fee_max_cents: int

    def commission_percent_for(self, payee_type: PayeeType | str) -> Decimal:
        """Firms pay the platform fee; individual professionals pay the individual fee."""
        if payee_type == PayeeType.FIRM:
            return self.platform_fee_percent
        return self.individual_platform_fee_percent

    @classmethod
    def from_settings(cls) -> PlatformPolicy:
        return cls(
            platform_fee_percent=to_percentage(
                getattr(settings, "PLATFORM_FEE_PERCENT", 15)
            ),
            individual_platform_fee_percent=to_percentage(
                getattr(settings, "INDIVIDUAL_PLATFORM_FEE_PERCENT", 10)
            ),
            tax_withholding_percent=to_percentage(
                getattr(settings, "TAX_WITHHOLDING_PERCENT", 10)
            ),
            auto_release_days=getattr(settings, "ESCROW_AUTO_RELEASE_DAYS", 7),
            min_payout_amount_cents=getattr(settings, "MIN_PAYOUT_AMOUNT_CENTS", 1000),
            refund_processing_fee_percent=to_percentage(
                getattr(settings, "REFUND_PROCESSING_FEE_PERCENT", 2)
            ),
            refund_processing_fee_min_cents=getattr(
                settings, "REFUND_PROCESSING_FEE_MIN_CENTS", 10
            ),
            refund_processing_fee_max_cents=getattr(
                settings, "REFUND_PROCESSING_FEE_MAX_CENTS", 100
            ),
        )

    @classmethod
    def from_model(cls, config) -> PlatformPolicy:
        return cls(
            platform_fee_percent=to_percentage(config.platform_fee_percent),
            individual_platform_fee_percent=to_percentage(
                config.individual_platform_fee_percent
            ),
            tax_withholding_percent=to_percentage(config.tax_withholding_percent),
            auto_release_days=config.auto_release_days,
            min_payout_amount_cents=config.min_payout_amount_cents,
            refund_processing_fee_percent=to_percentage(
                config.refund_processing_fee_percent
            ),
            refund_processing_fee_min_cents=config.refund_processing_fee_min_cents,
            refund_processing_fee_max_cents=config.refund_processing_fee_max_cents,
        )


class PlatformConfigProvider:
    """
    Cached access to the current PlatformPolicy.

    Args:
        cache: TTLCache the resolved policy is stored in
    """

    def __init__(self, cache: TTLCache[PlatformPolicy]) -> None:
        self.cache = cache

    def get(self) -> PlatformPolicy:
        return self.cache.get_or_load(CACHE_KEY, self._load)

    def invalidate(self) -> None:
        self.cache.invalidate(CACHE_KEY)

    def connect(self) -> None:
        """Invalidate the cached policy whenever PlatformConfig changes."""
        from escrow.models import PlatformConfig

        self.cache.invalidate_on_save(PlatformConfig, key=CACHE_KEY)

    @staticmethod
    def _load() -> PlatformPolicy:
        from escrow.models import PlatformConfig

        config = PlatformConfig.objects.filter(is_active=True).order_by("-created_at").first()
        if config is None:
            return PlatformPolicy.from_settings()
        logger.debug("Platform config loaded", extra={"config_id": str(config.id)})
        return PlatformPolicy.from_model(config)


def get_provider() -> PlatformConfigProvider:
    """Return the provider the escrow AppConfig built at startup."""
    return apps.get_app_config("escrow").platform_config
