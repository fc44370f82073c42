"""
Escrow app configuration.

On startup the app builds the platform policy cache and connects its
invalidation hooks, so every consumer shares one explicitly constructed
PlatformConfigProvider (``apps.get_app_config("escrow").platform_config``).
"""

from django.apps import AppConfig
from django.conf import settings


class EscrowConfig(AppConfig):
    """Configuration for the escrow application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "escrow"
    verbose_name = "Escrow"

    def ready(self) -> None:
        from django.core.cache import caches

        from core.cache import TTLCache
        from escrow.platform_config import PlatformConfigProvider

        cache = TTLCache(
            caches["default"],
            prefix="escrow:platform_config",
            ttl=getattr(settings, "PLATFORM_CONFIG_CACHE_TTL", 300),
        )
        self.platform_config = PlatformConfigProvider(cache)
        self.platform_config.connect()
